"""CalendarProvider protocol - creates events in the organizer's calendar."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from stakecal.models.records import EventDraft


@dataclass
class CreatedEvent:
    event_id: str
    html_link: str | None = None


class CalendarProvider(Protocol):
    """Keyed by the organizer wallet whose stored credential is used."""

    async def create_event(
        self, organizer_wallet: str, draft: EventDraft, description: str
    ) -> CreatedEvent:
        """Create the event and invite its attendees. Raises UpstreamError."""
        ...

    async def add_attendee(self, organizer_wallet: str, event_id: str, email: str) -> None:
        ...
