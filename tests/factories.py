"""Record factories and flow helpers for testing."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from stakecal.models.records import (
    Contact,
    EventDraft,
    MeetingStake,
    PendingMeeting,
)

ORGANIZER = "GDNAG4KFFVF5HCSGRWZIXZNL2SR2KBGJSHW2A6FI6DZI62XF6IBLO4GD"
ALICE = "GBALICEXQ5JQ3VYXKPNFZSBPZEVQ6NJMZK3MTRGBXLUWLDJQXQK6AVAB"
BOB = "GBBOBXXH4SDK3CQW6EH2NPJBGWHSRUZOTJ4GZA5BWOAHRJF2VSEF5ZQ2"
CAROL = "GBCAROLMZP3BE4XTGQ3DRQHFYKLWJMV5S7ARKOAEYDHNY3ZTA5JGQHOF"

STAKE = Decimal("0.01")


def make_draft(
    start: datetime,
    duration: timedelta = timedelta(hours=1),
    attendees: list[str] | None = None,
    summary: str = "Quarterly planning",
    location: str | None = "Room 4",
) -> EventDraft:
    return EventDraft(
        summary=summary,
        start_time=start,
        end_time=start + duration,
        attendees=list(attendees) if attendees is not None
        else ["alice@example.com", "bob@example.com"],
        description="Bring numbers.",
        location=location,
    )


def make_pending(
    meeting_id: str,
    start: datetime,
    organizer: str = ORGANIZER,
    stake_amount: Decimal = STAKE,
    attendees: list[str] | None = None,
) -> PendingMeeting:
    return PendingMeeting(
        meeting_id=meeting_id,
        organizer_wallet=organizer.lower(),
        event=make_draft(start, attendees=attendees),
        stake_amount=stake_amount,
    )


def make_meeting_stake(
    meeting_id: str,
    start: datetime,
    duration: timedelta = timedelta(hours=1),
    organizer: str = ORGANIZER,
    required_stake: Decimal = STAKE,
) -> MeetingStake:
    return MeetingStake(
        meeting_id=meeting_id,
        organizer=organizer.lower(),
        required_stake=required_stake,
        start_time=start,
        end_time=start + duration,
    )


def make_contacts(account_id: str, *entries: tuple[str, str | None]) -> list[Contact]:
    return [Contact(account_id=account_id, email=email, name=name) for email, name in entries]


async def draft_meeting(store, meeting_id: str, start: datetime, **kwargs) -> PendingMeeting:
    """Persist a pending meeting and return it."""
    pending = make_pending(meeting_id, start, **kwargs)
    await store.save_pending_meeting(pending)
    return pending
