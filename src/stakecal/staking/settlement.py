"""Settlement - partitions a meeting's stakes into refunds and forfeits."""

from __future__ import annotations

import logging
from decimal import Decimal

from stakecal.errors import ConflictError, NotFoundError
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import MeetingStake, SettlementResult
from stakecal.staking.ledger import meeting_from_pending
from stakecal.staking.timeline import Clock, check_in_deadline, utcnow

log = logging.getLogger(__name__)


def partition(meeting: MeetingStake) -> SettlementResult:
    """Split stakes by check-in. ``refunded + forfeited`` is the total staked."""
    result = SettlementResult(
        meeting_id=meeting.meeting_id, refunded=Decimal("0"), forfeited=Decimal("0")
    )
    for stake in meeting.stakes:
        if stake.has_checked_in:
            result.refunded += stake.amount
            result.refunded_wallets.append(stake.wallet_address)
        else:
            result.forfeited += stake.amount
            result.forfeited_wallets.append(stake.wallet_address)
    return result


class Settlement:
    """Settles a meeting exactly once.

    The store flips ``is_settled`` with a conditional update, so of several
    concurrent callers only one marks refunds; the others get the stored
    outcome with ``already_settled=True``.
    """

    def __init__(self, store: StakeStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def settle(self, meeting_id: str, force: bool = False) -> SettlementResult:
        meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting is None:
            pending = await self._store.get_pending_meeting(meeting_id)
            if pending is None:
                raise NotFoundError(f"Meeting {meeting_id} not found")
            # Nobody staked; settle an empty meeting to 0/0.
            await self._store.create_meeting_stake(meeting_from_pending(pending))
            meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting.is_settled:
            return self._stored(meeting)

        now = self._clock()
        if now <= check_in_deadline(meeting.end_time):
            if not force:
                raise ConflictError("Check-in window is still open")
            log.warning("Force-settling %s before its check-in deadline", meeting_id)

        won = await self._store.settle_meeting(meeting_id, now)
        settled = await self._store.get_meeting_stake(meeting_id)
        if not won:
            return self._stored(settled)

        result = partition(settled)
        await self._store.log_activity(
            "meeting_settled",
            f"Settled {meeting_id}: refunded {result.refunded}, forfeited {result.forfeited}",
            meeting_id=meeting_id,
            amount=str(result.forfeited),
        )
        log.info(
            "Settled %s: %d refunded (%s), %d forfeited (%s)",
            meeting_id, len(result.refunded_wallets), result.refunded,
            len(result.forfeited_wallets), result.forfeited,
        )
        return result

    @staticmethod
    def _stored(meeting: MeetingStake) -> SettlementResult:
        result = partition(meeting)
        if meeting.total_refunded is not None:
            result.refunded = meeting.total_refunded
        if meeting.total_forfeited is not None:
            result.forfeited = meeting.total_forfeited
        result.already_settled = True
        return result
