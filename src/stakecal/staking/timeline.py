"""Meeting timeline: status derivation and the deadlines it depends on."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from stakecal.models.status import MeetingStatus

# Code validity, status derivation and the settlement guard all use this window.
CHECK_IN_GRACE = timedelta(minutes=15)
STAKING_CUTOFF = timedelta(hours=1)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def staking_deadline(start_time: datetime) -> datetime:
    return start_time - STAKING_CUTOFF


def check_in_deadline(end_time: datetime) -> datetime:
    return end_time + CHECK_IN_GRACE


def compute_meeting_status(
    start_time: datetime,
    end_time: datetime,
    is_settled: bool,
    now: datetime,
) -> MeetingStatus:
    """Derive the display status of a meeting at ``now``.

    The checks run in order and the first match wins; a meeting is only
    ``settled`` once its check-in window has also closed.
    """
    if now > check_in_deadline(end_time):
        return MeetingStatus.SETTLED if is_settled else MeetingStatus.PENDING_SETTLEMENT
    if now > end_time:
        return MeetingStatus.CHECK_IN_PERIOD
    if now >= start_time:
        return MeetingStatus.IN_PROGRESS
    if now > staking_deadline(start_time):
        return MeetingStatus.STAKING_CLOSED
    return MeetingStatus.UPCOMING
