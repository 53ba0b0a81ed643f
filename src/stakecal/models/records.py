"""Internal record types for state persistence and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from stakecal.models.status import PendingStatus


def canonical_wallet(address: str) -> str:
    """Wallet addresses compare case-insensitively; store them lowercased."""
    return address.strip().lower()


def canonical_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class EventDraft:
    """Calendar event details captured before the meeting is scheduled."""

    summary: str
    start_time: datetime
    end_time: datetime
    attendees: list[str] = field(default_factory=list)
    description: str | None = None
    location: str | None = None
    timezone: str = "UTC"


@dataclass
class PendingMeeting:
    """Pre-confirmation form of a meeting, created when staking is initiated."""

    meeting_id: str
    organizer_wallet: str
    event: EventDraft
    stake_amount: Decimal
    status: PendingStatus = PendingStatus.PENDING
    organizer_email: str | None = None
    calendar_event_id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class StakeRecord:
    """One wallet's stake for one meeting."""

    meeting_id: str
    wallet_address: str
    amount: Decimal
    staked_at: datetime
    email: str | None = None
    has_checked_in: bool = False
    check_in_time: datetime | None = None
    is_refunded: bool = False


@dataclass
class MeetingStake:
    """Fully-initialized staking state of a meeting."""

    meeting_id: str
    organizer: str
    required_stake: Decimal
    start_time: datetime
    end_time: datetime
    event_id: str = ""
    attendance_code: str | None = None
    code_generated_at: datetime | None = None
    is_settled: bool = False
    settled_at: datetime | None = None
    total_refunded: Decimal | None = None
    total_forfeited: Decimal | None = None
    stakes: list[StakeRecord] = field(default_factory=list)

    @property
    def total_staked(self) -> Decimal:
        return sum((s.amount for s in self.stakes), Decimal("0"))

    def find_stake(self, wallet_address: str) -> StakeRecord | None:
        wallet = canonical_wallet(wallet_address)
        for stake in self.stakes:
            if stake.wallet_address == wallet:
                return stake
        return None


@dataclass
class InvitationToken:
    """Single-use credential binding an invited email to a meeting."""

    token: str
    meeting_id: str
    email: str
    expires_at: datetime
    used: bool = False
    used_by_wallet: str | None = None
    used_at: datetime | None = None
    created_at: str = ""


@dataclass
class WalletEmailAssociation:
    wallet_address: str
    email: str
    created_from_stake: bool = False
    verified_at: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Contact:
    """Address-book entry of a connected account."""

    account_id: str
    email: str
    name: str | None = None


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    meeting_id: str | None
    wallet_address: str | None
    amount: str | None
    message: str
    created_at: str


@dataclass
class SettlementResult:
    """Outcome of settling a meeting."""

    meeting_id: str
    refunded: Decimal
    forfeited: Decimal
    refunded_wallets: list[str] = field(default_factory=list)
    forfeited_wallets: list[str] = field(default_factory=list)
    already_settled: bool = False


@dataclass
class CheckInResult:
    """Result of an attendance code submission."""

    meeting_id: str
    wallet_address: str
    checked_in: bool
    check_in_time: datetime | None = None
