"""JSON-serializable snapshot models for the HTTP API and the CLI."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


def to_dict(obj: Any) -> dict:
    """Recursively convert a snapshot dataclass to a plain dict."""
    return asdict(obj)


@dataclass
class StakeSnapshot:
    amount: str
    staked_at: str
    has_checked_in: bool
    check_in_time: str | None
    is_refunded: bool


@dataclass
class ParticipantSnapshot:
    wallet_address: str  # masked: "gdnag4...o4gd"
    has_checked_in: bool
    is_refunded: bool


@dataclass
class MeetingStats:
    total_staked: str = "0"
    total_stakers: int = 0
    total_attended: int = 0
    total_absent: int = 0


@dataclass
class MeetingSnapshot:
    meeting_id: str
    event_id: str
    organizer: str
    required_stake: str
    start_time: str
    end_time: str
    status: str
    is_settled: bool
    has_attendance_code: bool
    staking_deadline: str
    check_in_deadline: str
    initialized: bool
    stats: MeetingStats = field(default_factory=MeetingStats)
    user_stake: StakeSnapshot | None = None
    participants: list[ParticipantSnapshot] = field(default_factory=list)


@dataclass
class ReconcileReport:
    """Comparison of the local store with the on-chain stake contract."""

    meeting_id: str
    in_store: bool
    on_chain: bool | None
    pending_status: str | None = None
    calendar_event_id: str | None = None
    store_stakers: list[str] = field(default_factory=list)
    chain_stakers: list[str] = field(default_factory=list)
    store_only: list[str] = field(default_factory=list)
    chain_only: list[str] = field(default_factory=list)
    wallet_has_staked: dict[str, bool | None] | None = None
    issues: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return (
            self.on_chain is not None
            and self.in_store == self.on_chain
            and not self.store_only
            and not self.chain_only
        )


@dataclass
class InitiateResult:
    meeting_id: str
    stake_amount: str
    stake_link: str
    invitations_sent: int
    invitations_failed: int
    tokens: dict[str, str] = field(default_factory=dict)


@dataclass
class StakeResult:
    meeting_id: str
    wallet_address: str
    amount: str
    email: str | None
    confirmation_sent: bool = False
    added_to_calendar: bool = False


@dataclass
class ScheduleResult:
    meeting_id: str
    calendar_event_id: str
    already_scheduled: bool
    event_link: str | None = None


@dataclass
class ActivityEntry:
    id: int
    event_type: str
    message: str
    created_at: str
    meeting_id: str | None = None
    wallet_address: str | None = None
    amount: str | None = None
