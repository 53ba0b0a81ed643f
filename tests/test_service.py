"""Service flows: initiate, stake with tokens, schedule, cancel."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from stakecal.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from stakecal.models.status import PendingStatus
from stakecal.service import StakeCalService, stake_link
from tests.conftest import T0
from tests.factories import ALICE, BOB, ORGANIZER, make_draft
from tests.mocks import MockCalendar, MockContactSource, MockNotifier

START = T0 + timedelta(days=1)


async def initiate(service, **kwargs):
    return await service.initiate(
        ORGANIZER, make_draft(START), organizer_email="org@example.com", **kwargs
    )


# ── Test 1: initiate ─────────────────────────────────────────


def test_stake_link():
    assert stake_link("https://x.test/", "m1") == "https://x.test/stake/m1"
    assert stake_link("https://x.test", "m1", "abc") == "https://x.test/stake/m1?token=abc"


async def test_initiate_sends_tokenized_links(service, mock_notifier):
    result = await initiate(service)
    assert result.stake_amount == "0.01"
    assert result.invitations_sent == 2
    assert result.invitations_failed == 0
    assert result.stake_link == f"https://stakecal.test/stake/{result.meeting_id}"

    sent = {recipient: inv for _, recipient, inv in mock_notifier.invitations}
    assert set(sent) == {"alice@example.com", "bob@example.com"}
    alice = sent["alice@example.com"]
    assert alice.stake_link.endswith(f"?token={result.tokens['alice@example.com']}")
    assert alice.organizer_name == "org"
    assert alice.stake_amount == Decimal("0.01")


async def test_initiate_survives_notifier_failure(store, test_config, clock):
    svc = StakeCalService(store, test_config, notifier=MockNotifier(raise_error=True), clock=clock)
    await svc.start()
    result = await initiate(svc)
    assert result.invitations_sent == 0
    assert result.invitations_failed == 2
    assert (await store.get_pending_meeting(result.meeting_id)).status == PendingStatus.PENDING


async def test_initiate_custom_stake(service):
    result = await initiate(service, stake_amount="0.25")
    assert result.stake_amount == "0.25"


# ── Test 2: staking ──────────────────────────────────────────


async def test_stake_with_token_records_email(service, store, mock_notifier):
    init = await initiate(service)
    result = await service.stake(
        init.meeting_id, ALICE, "0.01", token=init.tokens["alice@example.com"]
    )
    assert result.email == "alice@example.com"
    assert result.confirmation_sent
    assert not result.added_to_calendar
    assert mock_notifier.confirmations[-1][1] == "alice@example.com"
    assert (await store.get_stake(init.meeting_id, ALICE)).email == "alice@example.com"


async def test_stake_without_token_uses_association(service, store):
    first = await initiate(service)
    await service.stake(first.meeting_id, ALICE, "0.01", token=first.tokens["alice@example.com"])
    second = await initiate(service)
    result = await service.stake(second.meeting_id, ALICE, "0.01")
    assert result.email == "alice@example.com"


async def test_rejected_stake_keeps_token(service, store):
    """Wrong amount fails before the token is redeemed."""
    init = await initiate(service)
    token = init.tokens["alice@example.com"]
    with pytest.raises(ValidationError):
        await service.stake(init.meeting_id, ALICE, "0.5", token=token)
    assert not (await store.get_invitation_token(token)).used


async def test_duplicate_stake_keeps_token(service, store):
    init = await initiate(service)
    await service.stake(init.meeting_id, ALICE, "0.01")
    token = init.tokens["bob@example.com"]
    with pytest.raises(ConflictError, match="Already staked"):
        await service.stake(init.meeting_id, ALICE, "0.01", token=token)
    assert not (await store.get_invitation_token(token)).used


async def test_racing_stakes_keep_losing_token(service, store):
    """Plain ∥ tokened stake from one wallet → one stake, token burned only if it won."""
    init = await initiate(service)
    token = init.tokens["alice@example.com"]
    results = await asyncio.gather(
        service.stake(init.meeting_id, ALICE, "0.01"),
        service.stake(init.meeting_id, ALICE, "0.01", token=token),
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1 and isinstance(failures[0], ConflictError)

    stake = await store.get_stake(init.meeting_id, ALICE)
    saved = await store.get_invitation_token(token)
    if isinstance(results[1], Exception):
        assert not saved.used
        assert await store.get_association_by_wallet(ALICE) is None
        assert stake.email is None
    else:
        assert saved.used
        assert stake.email == "alice@example.com"


async def test_token_for_other_meeting(service):
    first = await initiate(service)
    second = await initiate(service)
    with pytest.raises(ValidationError, match="does not belong"):
        await service.stake(second.meeting_id, ALICE, "0.01", token=first.tokens["alice@example.com"])


async def test_used_token(service):
    init = await initiate(service)
    token = init.tokens["alice@example.com"]
    await service.stake(init.meeting_id, ALICE, "0.01", token=token)
    with pytest.raises(ConflictError, match="already been used"):
        await service.stake(init.meeting_id, BOB, "0.01", token=token)


async def test_stake_unknown_meeting(service):
    with pytest.raises(NotFoundError):
        await service.stake("meeting-0-missing00", ALICE, "0.01")


# ── Test 3: scheduling ───────────────────────────────────────


async def test_confirm_and_schedule_once(service, store, mock_calendar):
    init = await initiate(service)
    await service.stake(init.meeting_id, ALICE, "0.01")
    first = await service.confirm_and_schedule(init.meeting_id, "alice@example.com")
    assert first.calendar_event_id == "evt-1"
    assert not first.already_scheduled
    assert first.event_link

    second = await service.confirm_and_schedule(init.meeting_id)
    assert second.already_scheduled
    assert second.calendar_event_id == "evt-1"
    assert len(mock_calendar.created) == 1

    pending = await store.get_pending_meeting(init.meeting_id)
    assert pending.status == PendingStatus.SCHEDULED
    assert (await store.get_meeting_stake(init.meeting_id)).event_id == "evt-1"
    _, draft, description = mock_calendar.created[0]
    assert init.meeting_id in description
    assert draft.attendees == ["alice@example.com", "bob@example.com"]


async def test_schedule_straight_from_pending(service, store):
    init = await initiate(service)
    await service.confirm_and_schedule(init.meeting_id)
    assert (await store.get_pending_meeting(init.meeting_id)).status == PendingStatus.SCHEDULED


async def test_schedule_without_calendar(store, test_config, clock):
    svc = StakeCalService(store, test_config, clock=clock)
    await svc.start()
    init = await svc.initiate(ORGANIZER, make_draft(START))
    with pytest.raises(UpstreamError):
        await svc.confirm_and_schedule(init.meeting_id)


async def test_calendar_failure_leaves_draft(store, test_config, clock):
    svc = StakeCalService(store, test_config, calendar=MockCalendar(fail=True), clock=clock)
    await svc.start()
    init = await svc.initiate(ORGANIZER, make_draft(START))
    with pytest.raises(UpstreamError):
        await svc.confirm_and_schedule(init.meeting_id)
    pending = await store.get_pending_meeting(init.meeting_id)
    assert pending.calendar_event_id is None
    assert pending.status == PendingStatus.PENDING


async def test_late_staker_added_to_event(service, mock_calendar):
    init = await initiate(service)
    await service.confirm_and_schedule(init.meeting_id)
    result = await service.stake(
        init.meeting_id, BOB, "0.01", token=init.tokens["bob@example.com"]
    )
    assert result.added_to_calendar
    assert mock_calendar.added == [(ORGANIZER.lower(), "evt-1", "bob@example.com")]


async def test_add_attendee_failure_is_not_fatal(store, test_config, clock):
    calendar = MockCalendar(fail_add=True)
    svc = StakeCalService(store, test_config, calendar=calendar, clock=clock)
    await svc.start()
    init = await svc.initiate(ORGANIZER, make_draft(START))
    await svc.confirm_and_schedule(init.meeting_id)
    result = await svc.stake(init.meeting_id, BOB, "0.01", token=init.tokens["bob@example.com"])
    assert not result.added_to_calendar
    assert await store.get_stake(init.meeting_id, BOB) is not None


# ── Test 4: cancel ───────────────────────────────────────────


async def test_cancel_blocks_stakes_and_schedule(service):
    init = await initiate(service)
    cancelled = await service.cancel(init.meeting_id)
    assert cancelled.status == PendingStatus.CANCELLED
    with pytest.raises(ConflictError, match="cancelled"):
        await service.stake(init.meeting_id, ALICE, "0.01")
    with pytest.raises(ConflictError, match="cancelled"):
        await service.confirm_and_schedule(init.meeting_id)


# ── Test 5: contacts ─────────────────────────────────────────


async def test_import_contacts_from_source(store, test_config, clock):
    source = MockContactSource([("tom.jones@example.com", "Tom Jones"), ("x@example.com", None)])
    svc = StakeCalService(store, test_config, contact_source=source, clock=clock)
    await svc.start()
    assert await svc.import_contacts(ORGANIZER) == 2
    result = await svc.resolve_attendees(["Tom"], ORGANIZER)
    assert result.resolved == ["tom.jones@example.com"]


async def test_import_contacts_without_source(service):
    with pytest.raises(UpstreamError):
        await service.import_contacts(ORGANIZER)
