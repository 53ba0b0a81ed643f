"""Stake posting: lazy initialization, exact amounts, one stake per wallet."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from stakecal.errors import ConflictError, NotFoundError, ValidationError
from stakecal.models.status import PendingStatus
from stakecal.staking.invitations import InvitationManager
from stakecal.staking.ledger import StakeLedger, generate_meeting_id, parse_amount
from tests.conftest import T0
from tests.factories import ALICE, BOB, STAKE, draft_meeting

MEETING = "meeting-1772452800000-abc123xyz"


@pytest.fixture
def ledger(store, clock):
    return StakeLedger(store, clock)


@pytest.fixture
async def pending(store):
    return await draft_meeting(store, MEETING, T0 + timedelta(hours=3))


# ── Test 1: helpers ──────────────────────────────────────────


def test_meeting_id_format(clock):
    meeting_id = generate_meeting_id(clock)
    prefix, millis, suffix = meeting_id.split("-")
    assert prefix == "meeting"
    assert int(millis) == int(T0.timestamp() * 1000)
    assert len(suffix) == 9 and suffix.isalnum() and suffix == suffix.lower()


@pytest.mark.parametrize("value", ["0", "-1", "abc", "NaN", "Infinity", ""])
def test_parse_amount_rejects(value):
    with pytest.raises(ValidationError):
        parse_amount(value)


def test_parse_amount_float_keeps_short_form():
    assert parse_amount(0.01) == Decimal("0.01")


# ── Test 2: first stake initializes ──────────────────────────


async def test_first_stake_initializes_meeting(ledger, store, pending, clock):
    """pending meeting + stake → MeetingStake with one record, draft stake_confirmed."""
    assert await store.get_meeting_stake(MEETING) is None
    meeting, initialized = await ledger.preview_meeting(MEETING)
    assert not initialized and meeting.stakes == []

    record = await ledger.post_stake(MEETING, ALICE, "0.01", email="Alice@Example.com")
    assert record.wallet_address == ALICE.lower()
    assert record.email == "alice@example.com"
    assert record.staked_at == clock.now

    meeting = await ledger.get_meeting(MEETING)
    assert meeting.required_stake == STAKE
    assert meeting.organizer == pending.organizer_wallet
    assert [s.wallet_address for s in meeting.stakes] == [ALICE.lower()]
    assert (await store.get_pending_meeting(MEETING)).status == PendingStatus.STAKE_CONFIRMED


async def test_second_wallet_does_not_reinitialize(ledger, pending):
    await ledger.post_stake(MEETING, ALICE, STAKE)
    await ledger.post_stake(MEETING, BOB, STAKE)
    meeting = await ledger.get_meeting(MEETING)
    assert meeting.total_staked == Decimal("0.02")
    assert len(meeting.stakes) == 2


# ── Test 3: rejections ───────────────────────────────────────


async def test_duplicate_stake_rejected(ledger, pending):
    await ledger.post_stake(MEETING, ALICE, STAKE)
    with pytest.raises(ConflictError, match="Already staked"):
        await ledger.post_stake(MEETING, ALICE, STAKE)


async def test_duplicate_is_case_insensitive(ledger, pending):
    await ledger.post_stake(MEETING, ALICE, STAKE)
    with pytest.raises(ConflictError):
        await ledger.post_stake(MEETING, ALICE.lower(), STAKE)
    assert await ledger.has_staked(MEETING, ALICE.lower())
    assert await ledger.get_stake(MEETING, ALICE) is not None


async def test_concurrent_duplicates_record_once(ledger, pending):
    """Two racing posts for one wallet → exactly one record, one conflict."""
    results = await asyncio.gather(
        ledger.post_stake(MEETING, ALICE, STAKE),
        ledger.post_stake(MEETING, ALICE, STAKE),
        return_exceptions=True,
    )
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(conflicts) == 1
    meeting = await ledger.get_meeting(MEETING)
    assert len(meeting.stakes) == 1


async def test_wrong_amount_rejected(ledger, store, pending):
    with pytest.raises(ValidationError, match="exactly"):
        await ledger.post_stake(MEETING, ALICE, "0.02")
    # No half-state: the pending draft did not advance.
    assert (await store.get_pending_meeting(MEETING)).status == PendingStatus.PENDING


async def test_unknown_meeting(ledger):
    with pytest.raises(NotFoundError):
        await ledger.post_stake("meeting-0-missing00", ALICE, STAKE)
    with pytest.raises(NotFoundError):
        await ledger.get_meeting("meeting-0-missing00")
    with pytest.raises(NotFoundError):
        await ledger.preview_meeting("meeting-0-missing00")


async def test_cancelled_meeting_rejects_stakes(ledger, store, pending):
    await store.compare_and_set_pending_status(
        MEETING, PendingStatus.PENDING, PendingStatus.CANCELLED
    )
    with pytest.raises(ConflictError, match="cancelled"):
        await ledger.post_stake(MEETING, ALICE, STAKE)


async def test_settled_meeting_rejects_stakes(ledger, store, pending, clock):
    await ledger.post_stake(MEETING, ALICE, STAKE)
    await store.settle_meeting(MEETING, clock.now)
    with pytest.raises(ConflictError, match="settled"):
        await ledger.post_stake(MEETING, BOB, STAKE)


async def test_missing_wallet(ledger, pending):
    with pytest.raises(ValidationError):
        await ledger.post_stake(MEETING, "  ", STAKE)


# ── Test 4: wallet queries ───────────────────────────────────


async def test_meetings_for_wallet(ledger, pending):
    await ledger.post_stake(MEETING, ALICE, STAKE)
    staked = await ledger.get_meetings_for_wallet(ALICE)
    organized = await ledger.get_meetings_for_wallet(pending.organizer_wallet.upper())
    assert [m.meeting_id for m in staked] == [MEETING]
    assert [m.meeting_id for m in organized] == [MEETING]
    assert await ledger.get_meetings_for_wallet(BOB) == []


# ── Test 5: stakes carrying an invitation token ──────────────


@pytest.fixture
async def tokens(store, pending, clock):
    return await InvitationManager(store, clock=clock).create_tokens(
        MEETING, ["alice@example.com", "bob@example.com"]
    )


async def test_token_stake_takes_invited_email(ledger, store, tokens):
    token = tokens["alice@example.com"]
    record = await ledger.post_stake(MEETING, ALICE, STAKE, email="other@example.com", token=token)
    assert record.email == "alice@example.com"
    assert (await store.get_stake(MEETING, ALICE)).email == "alice@example.com"
    assert (await store.get_invitation_token(token)).used
    assert (await store.get_association_by_wallet(ALICE)).email == "alice@example.com"


async def test_conflicting_token_stake_leaves_token_unused(ledger, store, tokens):
    """Wallet already staked → token stays redeemable, no association written."""
    await ledger.post_stake(MEETING, ALICE, STAKE)
    token = tokens["alice@example.com"]
    with pytest.raises(ConflictError, match="Already staked"):
        await ledger.post_stake(MEETING, ALICE, STAKE, token=token)

    saved = await store.get_invitation_token(token)
    assert not saved.used and saved.used_by_wallet is None
    assert await store.get_association_by_wallet(ALICE) is None
    assert (await store.get_stake(MEETING, ALICE)).email is None


async def test_token_stake_racing_plain_stake(ledger, store, tokens):
    """plain ∥ tokened stake for one wallet → one stake; a losing token stays unused."""
    token = tokens["alice@example.com"]
    results = await asyncio.gather(
        ledger.post_stake(MEETING, ALICE, STAKE),
        ledger.post_stake(MEETING, ALICE, STAKE, token=token),
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1 and isinstance(failures[0], ConflictError)

    meeting = await store.get_meeting_stake(MEETING)
    assert len(meeting.stakes) == 1
    saved = await store.get_invitation_token(token)
    association = await store.get_association_by_wallet(ALICE)
    if isinstance(results[1], Exception):
        assert not saved.used
        assert association is None
        assert meeting.stakes[0].email is None
    else:
        assert saved.used
        assert association.email == "alice@example.com"
        assert meeting.stakes[0].email == "alice@example.com"


async def test_token_from_other_meeting_not_redeemed(ledger, store, tokens):
    await draft_meeting(store, "meeting-1772452800000-other0001", T0 + timedelta(hours=5))
    token = tokens["alice@example.com"]
    with pytest.raises(ValidationError, match="does not belong"):
        await ledger.post_stake("meeting-1772452800000-other0001", ALICE, STAKE, token=token)
    assert not (await store.get_invitation_token(token)).used
    assert await store.get_stake("meeting-1772452800000-other0001", ALICE) is None


async def test_token_stake_on_settled_meeting_keeps_token(ledger, store, tokens, clock):
    await ledger.post_stake(MEETING, BOB, STAKE)
    await store.settle_meeting(MEETING, clock())
    token = tokens["alice@example.com"]
    with pytest.raises(ConflictError, match="settled"):
        await ledger.post_stake(MEETING, ALICE, STAKE, token=token)
    assert not (await store.get_invitation_token(token)).used
