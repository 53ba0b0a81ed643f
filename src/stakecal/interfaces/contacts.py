"""ContactSource protocol - external address books to import from."""

from __future__ import annotations

from typing import Protocol

from stakecal.models.records import Contact


class ContactSource(Protocol):
    async def fetch_contacts(self, organizer_wallet: str) -> list[Contact]:
        """All contacts of the organizer's connected account. Raises UpstreamError."""
        ...
