"""Meeting status enums and the pending-meeting transition table."""

from __future__ import annotations

from enum import Enum


class MeetingStatus(str, Enum):
    """Display status derived from the meeting timeline (never stored)."""

    UPCOMING = "upcoming"
    STAKING_CLOSED = "staking_closed"
    IN_PROGRESS = "in_progress"
    CHECK_IN_PERIOD = "check_in_period"
    PENDING_SETTLEMENT = "pending_settlement"
    SETTLED = "settled"


class PendingStatus(str, Enum):
    """Stored lifecycle state of a meeting draft."""

    PENDING = "pending"
    STAKE_CONFIRMED = "stake_confirmed"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


TRANSITIONS: dict[PendingStatus, frozenset[PendingStatus]] = {
    PendingStatus.PENDING: frozenset(
        {PendingStatus.STAKE_CONFIRMED, PendingStatus.CANCELLED}
    ),
    PendingStatus.STAKE_CONFIRMED: frozenset(
        {PendingStatus.SCHEDULED, PendingStatus.CANCELLED}
    ),
    PendingStatus.SCHEDULED: frozenset({PendingStatus.CANCELLED}),
    PendingStatus.CANCELLED: frozenset(),
}


def can_transition(current: PendingStatus, target: PendingStatus) -> bool:
    return target in TRANSITIONS[current]
