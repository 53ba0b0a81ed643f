"""Data API aggregator - builds JSON-serializable status snapshots."""

from __future__ import annotations

import logging

from stakecal.interfaces.store import StakeStore
from stakecal.models.records import MeetingStake, StakeRecord, canonical_wallet
from stakecal.models.snapshots import (
    ActivityEntry,
    MeetingSnapshot,
    MeetingStats,
    ParticipantSnapshot,
    StakeSnapshot,
)
from stakecal.staking.ledger import StakeLedger
from stakecal.staking.timeline import (
    Clock,
    check_in_deadline,
    compute_meeting_status,
    staking_deadline,
    utcnow,
)

log = logging.getLogger(__name__)


def mask_wallet(address: str) -> str:
    """Shorten an address for display, e.g. ``gdnag4...o4gd``."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _stake_to_snapshot(stake: StakeRecord) -> StakeSnapshot:
    return StakeSnapshot(
        amount=str(stake.amount),
        staked_at=stake.staked_at.isoformat(),
        has_checked_in=stake.has_checked_in,
        check_in_time=_iso(stake.check_in_time),
        is_refunded=stake.is_refunded,
    )


def _stats(meeting: MeetingStake) -> MeetingStats:
    attended = sum(1 for s in meeting.stakes if s.has_checked_in)
    return MeetingStats(
        total_staked=str(meeting.total_staked),
        total_stakers=len(meeting.stakes),
        total_attended=attended,
        total_absent=len(meeting.stakes) - attended,
    )


class DataAggregator:
    """Builds snapshots from store state for the HTTP API and the CLI.

    Snapshots never expose attendance codes or full participant addresses.
    """

    def __init__(self, store: StakeStore, ledger: StakeLedger, clock: Clock = utcnow) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock

    # ── Snapshots ──────────────────────────────────────────

    async def meeting_snapshot(
        self, meeting_id: str, wallet_address: str | None = None
    ) -> MeetingSnapshot:
        meeting, initialized = await self._ledger.preview_meeting(meeting_id)
        snapshot = self._snapshot(meeting, initialized)
        if wallet_address:
            stake = meeting.find_stake(canonical_wallet(wallet_address))
            if stake is not None:
                snapshot.user_stake = _stake_to_snapshot(stake)
        return snapshot

    async def wallet_meetings(self, wallet_address: str) -> list[MeetingSnapshot]:
        """Initialized meetings the wallet organizes or has staked on."""
        wallet = canonical_wallet(wallet_address)
        snapshots = []
        for meeting in await self._ledger.get_meetings_for_wallet(wallet):
            snapshot = self._snapshot(meeting, True)
            stake = meeting.find_stake(wallet)
            if stake is not None:
                snapshot.user_stake = _stake_to_snapshot(stake)
            snapshots.append(snapshot)
        return snapshots

    async def get_activity(self, limit: int = 50) -> list[ActivityEntry]:
        records = await self._store.get_recent_activity(limit)
        return [
            ActivityEntry(
                id=r.id,
                event_type=r.event_type,
                message=r.message,
                created_at=r.created_at,
                meeting_id=r.meeting_id,
                wallet_address=mask_wallet(r.wallet_address) if r.wallet_address else None,
                amount=r.amount,
            )
            for r in records
        ]

    def _snapshot(self, meeting: MeetingStake, initialized: bool) -> MeetingSnapshot:
        status = compute_meeting_status(
            meeting.start_time, meeting.end_time, meeting.is_settled, self._clock()
        )
        return MeetingSnapshot(
            meeting_id=meeting.meeting_id,
            event_id=meeting.event_id,
            organizer=meeting.organizer,
            required_stake=str(meeting.required_stake),
            start_time=meeting.start_time.isoformat(),
            end_time=meeting.end_time.isoformat(),
            status=status.value,
            is_settled=meeting.is_settled,
            has_attendance_code=bool(meeting.attendance_code),
            staking_deadline=staking_deadline(meeting.start_time).isoformat(),
            check_in_deadline=check_in_deadline(meeting.end_time).isoformat(),
            initialized=initialized,
            stats=_stats(meeting),
            participants=[
                ParticipantSnapshot(
                    wallet_address=mask_wallet(s.wallet_address),
                    has_checked_in=s.has_checked_in,
                    is_refunded=s.is_refunded,
                )
                for s in meeting.stakes
            ],
        )
