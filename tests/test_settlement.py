"""Settlement: refunds for attendees, forfeits for no-shows, exactly once."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from stakecal.errors import ConflictError, NotFoundError
from stakecal.models.records import StakeRecord
from stakecal.staking.attendance import AttendanceFlow
from stakecal.staking.ledger import StakeLedger
from stakecal.staking.settlement import Settlement
from tests.conftest import T0
from tests.factories import ALICE, BOB, CAROL, STAKE, draft_meeting

MEETING = "meeting-1772452800000-settle001"
START = T0 + timedelta(hours=3)
END = START + timedelta(hours=1)
AFTER_WINDOW = END + timedelta(minutes=15, seconds=1)
DAVE = "gbdavexk7mrq2ypzjw4ntvxh5lsg3cbdqeufoa6zwi2rtnkymhpjvdav"


@pytest.fixture
def settlement(store, clock):
    return Settlement(store, clock)


@pytest.fixture
async def attended(store, clock):
    """Alice, Bob and Carol staked; only Alice checked in."""
    await draft_meeting(store, MEETING, START)
    ledger = StakeLedger(store, clock)
    for wallet in (ALICE, BOB, CAROL):
        await ledger.post_stake(MEETING, wallet, STAKE)
    flow = AttendanceFlow(store, clock)
    code = await flow.generate_code(MEETING)
    clock.set(START + timedelta(minutes=5))
    await flow.submit_code(MEETING, code, ALICE)
    return code


# ── Test 1: timing ───────────────────────────────────────────


async def test_refused_while_window_open(settlement, attended, clock):
    clock.set(END + timedelta(minutes=15))
    with pytest.raises(ConflictError, match="still open"):
        await settlement.settle(MEETING)


async def test_force_settles_early(settlement, attended, store):
    result = await settlement.settle(MEETING, force=True)
    assert not result.already_settled
    assert (await store.get_meeting_stake(MEETING)).is_settled


async def test_unknown_meeting(settlement):
    with pytest.raises(NotFoundError):
        await settlement.settle("meeting-0-missing00")


async def test_meeting_without_stakes_settles_empty(settlement, store, clock):
    """Drafted, nobody staked → settles to 0/0 and stays settled."""
    await draft_meeting(store, MEETING, START)
    clock.set(AFTER_WINDOW)
    result = await settlement.settle(MEETING)
    assert not result.already_settled
    assert (result.refunded, result.forfeited) == (Decimal("0"), Decimal("0"))
    assert result.refunded_wallets == result.forfeited_wallets == []

    meeting = await store.get_meeting_stake(MEETING)
    assert meeting.is_settled
    assert meeting.total_refunded == meeting.total_forfeited == Decimal("0")
    assert (await settlement.settle(MEETING)).already_settled
    with pytest.raises(ConflictError, match="settled"):
        await StakeLedger(store, clock).post_stake(MEETING, ALICE, STAKE)


# ── Test 2: partition ────────────────────────────────────────


async def test_partition_after_window(settlement, attended, store, clock):
    """refunded + forfeited == total staked; attendees marked refunded."""
    clock.set(AFTER_WINDOW)
    result = await settlement.settle(MEETING)
    assert result.refunded == Decimal("0.01")
    assert result.forfeited == Decimal("0.02")
    assert result.refunded_wallets == [ALICE.lower()]
    assert sorted(result.forfeited_wallets) == sorted([BOB.lower(), CAROL.lower()])

    meeting = await store.get_meeting_stake(MEETING)
    assert meeting.is_settled
    assert meeting.settled_at == AFTER_WINDOW
    assert result.refunded + result.forfeited == meeting.total_staked
    assert meeting.find_stake(ALICE).is_refunded
    assert not meeting.find_stake(BOB).is_refunded


# ── Test 3: exactly once ─────────────────────────────────────


async def test_second_settle_changes_nothing(settlement, attended, store, clock):
    clock.set(AFTER_WINDOW)
    first = await settlement.settle(MEETING)
    clock.advance(hours=1)
    second = await settlement.settle(MEETING)
    assert second.already_settled
    assert (second.refunded, second.forfeited) == (first.refunded, first.forfeited)
    assert (await store.get_meeting_stake(MEETING)).settled_at == AFTER_WINDOW


async def test_concurrent_settles_apply_once(settlement, attended, store, clock):
    clock.set(AFTER_WINDOW)
    results = await asyncio.gather(*(settlement.settle(MEETING) for _ in range(5)))
    assert sum(1 for r in results if not r.already_settled) == 1
    assert all(r.refunded == Decimal("0.01") for r in results)
    activity = await store.get_recent_activity(50)
    assert sum(1 for a in activity if a.event_type == "meeting_settled") == 1


async def test_check_in_after_settle_rejected(settlement, attended, store):
    await settlement.settle(MEETING, force=True)
    assert not await store.mark_checked_in(MEETING, BOB, START)
    with pytest.raises(ConflictError):
        await AttendanceFlow(store).submit_code(MEETING, attended, BOB)


# ── Test 4: stakes racing settlement ─────────────────────────


async def test_stake_after_settle_rejected(settlement, attended, store, clock):
    await settlement.settle(MEETING, force=True)
    late = StakeRecord(meeting_id=MEETING, wallet_address=DAVE, amount=STAKE, staked_at=T0)
    with pytest.raises(ConflictError, match="settled"):
        await store.insert_stake(late)
    meeting = await store.get_meeting_stake(MEETING)
    assert meeting.find_stake(DAVE) is None
    assert meeting.total_refunded + meeting.total_forfeited == meeting.total_staked


async def test_stake_racing_settle_keeps_partition(settlement, store, clock):
    """post_stake ∥ settle → the late stake is either settled with the rest or rejected."""
    await draft_meeting(store, MEETING, START)
    ledger = StakeLedger(store, clock)
    await ledger.post_stake(MEETING, ALICE, STAKE)

    posted, result = await asyncio.gather(
        ledger.post_stake(MEETING, BOB, STAKE),
        settlement.settle(MEETING, force=True),
        return_exceptions=True,
    )
    assert not isinstance(result, Exception)
    meeting = await store.get_meeting_stake(MEETING)
    assert meeting.is_settled
    assert meeting.total_refunded + meeting.total_forfeited == meeting.total_staked
    assert result.refunded + result.forfeited == meeting.total_staked
    if isinstance(posted, Exception):
        assert isinstance(posted, ConflictError)
        assert meeting.find_stake(BOB) is None
        assert result.forfeited == Decimal("0.01")
    else:
        assert BOB.lower() in result.forfeited_wallets
        assert result.forfeited == Decimal("0.02")
