"""Meeting drafts - the pending lifecycle before and around scheduling."""

from __future__ import annotations

import logging
from decimal import Decimal

from stakecal.errors import InvalidTransition, NotFoundError, ValidationError
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import (
    EventDraft,
    PendingMeeting,
    canonical_email,
    canonical_wallet,
)
from stakecal.models.status import PendingStatus, can_transition
from stakecal.staking.ledger import generate_meeting_id, parse_amount
from stakecal.staking.timeline import Clock, utcnow

log = logging.getLogger(__name__)


class MeetingDrafts:
    """Pending meetings with an enforced transition table.

    Transitions are compare-and-swap updates on the observed status, so two
    concurrent transitions from the same state cannot both succeed.
    """

    def __init__(self, store: StakeStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def create(
        self,
        organizer_wallet: str,
        draft: EventDraft,
        stake_amount: object,
        organizer_email: str | None = None,
    ) -> PendingMeeting:
        organizer = canonical_wallet(organizer_wallet or "")
        if not organizer:
            raise ValidationError("Organizer wallet is required")
        if not draft.summary or not draft.summary.strip():
            raise ValidationError("Meeting summary is required")
        if draft.start_time.tzinfo is None or draft.end_time.tzinfo is None:
            raise ValidationError("Meeting times must include a timezone")
        if draft.end_time <= draft.start_time:
            raise ValidationError("Meeting must end after it starts")
        draft.attendees = _dedupe_emails(draft.attendees)
        if not draft.attendees:
            raise ValidationError("At least one attendee is required")
        amount: Decimal = parse_amount(stake_amount, "stake_amount")

        meeting = PendingMeeting(
            meeting_id=generate_meeting_id(self._clock),
            organizer_wallet=organizer,
            organizer_email=canonical_email(organizer_email) if organizer_email else None,
            event=draft,
            stake_amount=amount,
        )
        await self._store.save_pending_meeting(meeting)
        await self._store.log_activity(
            "meeting_initiated",
            f"Meeting '{draft.summary}' drafted with {len(draft.attendees)} attendees",
            meeting_id=meeting.meeting_id,
            wallet_address=organizer,
            amount=str(amount),
        )
        log.info("Drafted %s for organizer %s", meeting.meeting_id, organizer[:10])
        return meeting

    async def get(self, meeting_id: str) -> PendingMeeting:
        meeting = await self._store.get_pending_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return meeting

    async def list_for_organizer(self, organizer_wallet: str) -> list[PendingMeeting]:
        return await self._store.get_pending_meetings_by_organizer(organizer_wallet)

    async def transition(self, meeting_id: str, target: PendingStatus) -> PendingMeeting:
        meeting = await self.get(meeting_id)
        current = meeting.status
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Cannot move meeting from {current.value} to {target.value}"
            )
        if not await self._store.compare_and_set_pending_status(meeting_id, current, target):
            raise InvalidTransition(
                f"Meeting {meeting_id} changed state concurrently; expected {current.value}"
            )
        log.info("Meeting %s: %s -> %s", meeting_id, current.value, target.value)
        meeting.status = target
        return meeting

    async def cancel(self, meeting_id: str) -> PendingMeeting:
        meeting = await self.transition(meeting_id, PendingStatus.CANCELLED)
        await self._store.log_activity(
            "meeting_cancelled", f"Meeting {meeting_id} cancelled", meeting_id=meeting_id
        )
        return meeting

    async def attach_calendar_event(self, meeting_id: str, event_id: str) -> None:
        await self._store.set_calendar_event_id(meeting_id, event_id)


def _dedupe_emails(emails: list[str]) -> list[str]:
    seen: list[str] = []
    for raw in emails:
        email = canonical_email(raw or "")
        if email and email not in seen:
            seen.append(email)
    return seen
