"""StakeStore protocol - persists meetings, stakes, tokens and contacts."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from stakecal.models.records import (
    ActivityRecord,
    Contact,
    InvitationToken,
    MeetingStake,
    PendingMeeting,
    StakeRecord,
    WalletEmailAssociation,
)
from stakecal.models.status import PendingStatus


class StakeStore(Protocol):
    """Persistent store for the staking lifecycle.

    Every write that guards an invariant is a single conditional statement
    or runs inside one transaction; callers never check-then-write.
    """

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        """Close the database connection."""
        ...

    # ── Pending meetings ───────────────────────────────────

    async def save_pending_meeting(self, meeting: PendingMeeting) -> None:
        ...

    async def get_pending_meeting(self, meeting_id: str) -> PendingMeeting | None:
        ...

    async def get_pending_meetings_by_organizer(
        self, organizer_wallet: str
    ) -> list[PendingMeeting]:
        ...

    async def compare_and_set_pending_status(
        self, meeting_id: str, expected: PendingStatus, new: PendingStatus
    ) -> bool:
        """Move status from ``expected`` to ``new``. False if it was not ``expected``."""
        ...

    async def set_calendar_event_id(self, meeting_id: str, event_id: str) -> None:
        """Attach the calendar event to both the draft and the meeting stake."""
        ...

    # ── Meeting stakes ─────────────────────────────────────

    async def create_meeting_stake(self, meeting: MeetingStake) -> bool:
        """Insert unless present. True if this call created the row."""
        ...

    async def get_meeting_stake(self, meeting_id: str) -> MeetingStake | None:
        ...

    async def get_meeting_stakes_for_wallet(self, wallet_address: str) -> list[MeetingStake]:
        ...

    async def set_attendance_code(
        self, meeting_id: str, code: str, generated_at: datetime
    ) -> bool:
        """Overwrite the code of an unsettled meeting. False if settled or missing."""
        ...

    # ── Stakes ─────────────────────────────────────────────

    async def insert_stake(self, stake: StakeRecord) -> None:
        """Append a stake.

        Raises ConflictError if the wallet already staked or the meeting is
        settled; the settled check and the insert are one statement.
        """
        ...

    async def insert_stake_with_token(
        self, stake: StakeRecord, token: str, now: datetime
    ) -> InvitationToken | None:
        """Redeem ``token`` for this meeting and append the stake in one transaction.

        The stake takes the token's email and the wallet/email association is
        upserted. Returns None, writing nothing, when the token cannot be
        redeemed; a rejected stake leaves the token unused.
        """
        ...

    async def get_stake(self, meeting_id: str, wallet_address: str) -> StakeRecord | None:
        ...

    async def mark_checked_in(
        self, meeting_id: str, wallet_address: str, check_in_time: datetime
    ) -> bool:
        """Flag a stake as checked in. False if the wallet has no stake."""
        ...

    async def settle_meeting(self, meeting_id: str, settled_at: datetime) -> bool:
        """Flip is_settled and refund checked-in stakes atomically.

        True only for the call that performed the flip.
        """
        ...

    # ── Invitation tokens ──────────────────────────────────

    async def save_invitation_tokens(self, tokens: list[InvitationToken]) -> None:
        ...

    async def get_invitation_token(self, token: str) -> InvitationToken | None:
        ...

    async def get_tokens_for_meeting(self, meeting_id: str) -> list[InvitationToken]:
        ...

    async def redeem_invitation_token(
        self, token: str, wallet_address: str, now: datetime
    ) -> InvitationToken | None:
        """Mark an unused, unexpired token used and associate wallet and email.

        Returns None when nothing was redeemed.
        """
        ...

    # ── Wallet/email associations ──────────────────────────

    async def get_association_by_wallet(
        self, wallet_address: str
    ) -> WalletEmailAssociation | None:
        ...

    async def get_associations_by_email(self, email: str) -> list[WalletEmailAssociation]:
        ...

    # ── Contacts ───────────────────────────────────────────

    async def save_contacts(self, account_id: str, contacts: list[Contact]) -> int:
        ...

    async def get_contacts(self, account_id: str) -> list[Contact]:
        ...

    async def clear_contacts(self, account_id: str) -> None:
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        meeting_id: str | None = None,
        wallet_address: str | None = None,
        amount: str | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...
