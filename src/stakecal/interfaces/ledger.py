"""ExternalLedger protocol - read-only view of the on-chain stake contract."""

from __future__ import annotations

from typing import Protocol


class ExternalLedger(Protocol):
    """Independent record of meeting existence and stake transfers.

    Never written by stakecal. Failures raise UpstreamError.
    """

    async def meeting_exists(self, meeting_id: str) -> bool:
        ...

    async def get_stakers(self, meeting_id: str) -> list[str]:
        """Canonical (lowercased) addresses that staked on chain."""
        ...

    async def has_staked(self, meeting_id: str, wallet_address: str) -> bool:
        ...
