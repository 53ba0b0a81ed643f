"""Stake ledger - posts stakes and exposes meeting stake state."""

from __future__ import annotations

import logging
import secrets
import string
from decimal import Decimal, InvalidOperation

from stakecal.errors import ConflictError, NotFoundError, ValidationError
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import (
    MeetingStake,
    PendingMeeting,
    StakeRecord,
    canonical_email,
    canonical_wallet,
)
from stakecal.models.status import PendingStatus
from stakecal.staking.invitations import redemption_error
from stakecal.staking.timeline import Clock, utcnow

log = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_meeting_id(clock: Clock = utcnow) -> str:
    """``meeting-<unix ms>-<9 random base36 chars>``."""
    millis = int(clock().timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"meeting-{millis}-{suffix}"


def parse_amount(value: object, field: str = "amount") -> Decimal:
    """Parse a positive, finite decimal amount or raise ValidationError."""
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a decimal number") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a positive amount")
    return amount


def meeting_from_pending(pending: PendingMeeting) -> MeetingStake:
    return MeetingStake(
        meeting_id=pending.meeting_id,
        event_id=pending.calendar_event_id or "",
        organizer=pending.organizer_wallet,
        required_stake=pending.stake_amount,
        start_time=pending.event.start_time,
        end_time=pending.event.end_time,
    )


class StakeLedger:
    """Records stakes against meetings.

    A MeetingStake is created lazily from its pending meeting by the first
    stake. Uniqueness of (meeting, wallet) is enforced by the store, so two
    racing posts for the same wallet produce exactly one record.
    """

    def __init__(self, store: StakeStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def post_stake(
        self,
        meeting_id: str,
        wallet_address: str,
        amount: object,
        email: str | None = None,
        token: str | None = None,
    ) -> StakeRecord:
        """Record a stake, redeeming ``token`` in the same transaction when given.

        With a token the stake takes the invited email and ``email`` is ignored.
        """
        wallet = canonical_wallet(wallet_address or "")
        if not wallet:
            raise ValidationError("Wallet address is required")
        value = parse_amount(amount)

        pending = await self._store.get_pending_meeting(meeting_id)
        meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting is None:
            if pending is None:
                raise NotFoundError(f"Meeting {meeting_id} not found")
            if pending.status == PendingStatus.CANCELLED:
                raise ConflictError("Meeting has been cancelled")
            if await self._store.create_meeting_stake(meeting_from_pending(pending)):
                log.info("Initialized stake state for %s", meeting_id)
            meeting = await self._store.get_meeting_stake(meeting_id)
            if meeting is None:
                raise NotFoundError(f"Meeting {meeting_id} not found")
        elif pending is not None and pending.status == PendingStatus.CANCELLED:
            raise ConflictError("Meeting has been cancelled")

        if value != meeting.required_stake:
            raise ValidationError(
                f"Stake must be exactly {meeting.required_stake}, got {value}"
            )
        if meeting.is_settled:
            raise ConflictError("Meeting has already been settled")

        record = StakeRecord(
            meeting_id=meeting_id,
            wallet_address=wallet,
            amount=value,
            staked_at=self._clock(),
            email=canonical_email(email) if email else None,
        )
        if token:
            redeemed = await self._store.insert_stake_with_token(record, token, record.staked_at)
            if redeemed is None:
                raise await redemption_error(self._store, token, meeting_id)
            await self._store.log_activity(
                "token_redeemed",
                f"Invitation for {redeemed.email} redeemed by {wallet[:10]}",
                meeting_id=meeting_id,
                wallet_address=wallet,
            )
        else:
            await self._store.insert_stake(record)

        if pending is not None and pending.status == PendingStatus.PENDING:
            await self._store.compare_and_set_pending_status(
                meeting_id, PendingStatus.PENDING, PendingStatus.STAKE_CONFIRMED
            )
        await self._store.log_activity(
            "stake_posted",
            f"Stake of {value} posted for {meeting_id}",
            meeting_id=meeting_id,
            wallet_address=wallet,
            amount=str(value),
        )
        log.info("Stake posted: meeting=%s wallet=%s amount=%s", meeting_id, wallet[:10], value)
        return record

    async def get_meeting(self, meeting_id: str) -> MeetingStake:
        meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return meeting

    async def preview_meeting(self, meeting_id: str) -> tuple[MeetingStake, bool]:
        """Return the meeting and whether its stake state is initialized.

        An uninitialized meeting is built from its pending form with no stakes.
        """
        meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting is not None:
            return meeting, True
        pending = await self._store.get_pending_meeting(meeting_id)
        if pending is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return meeting_from_pending(pending), False

    async def get_stake(self, meeting_id: str, wallet_address: str) -> StakeRecord | None:
        return await self._store.get_stake(meeting_id, wallet_address)

    async def has_staked(self, meeting_id: str, wallet_address: str) -> bool:
        return await self._store.get_stake(meeting_id, wallet_address) is not None

    async def get_meetings_for_wallet(self, wallet_address: str) -> list[MeetingStake]:
        """Meetings the wallet organizes or has staked on."""
        return await self._store.get_meeting_stakes_for_wallet(wallet_address)
