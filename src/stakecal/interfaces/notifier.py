"""Notifier protocol - fire-and-forget emails about staked meetings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol


@dataclass
class StakeInvitation:
    """Content of a stake invitation email."""

    title: str
    start_time: datetime
    end_time: datetime
    stake_amount: Decimal
    meeting_id: str
    stake_link: str
    organizer_name: str | None = None
    location: str | None = None


class Notifier(Protocol):
    """Sends email on behalf of an organizer. Returns False on failure."""

    async def send_invitation(
        self, organizer_wallet: str, recipient: str, invitation: StakeInvitation
    ) -> bool:
        ...

    async def send_confirmation(
        self, organizer_wallet: str, recipient: str, title: str, stake_amount: Decimal
    ) -> bool:
        ...
