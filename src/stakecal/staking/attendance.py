"""Attendance codes - generation by the organizer, submission by stakers."""

from __future__ import annotations

import logging
import secrets
import string

from stakecal.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import CheckInResult, MeetingStake, canonical_wallet
from stakecal.staking.timeline import Clock, check_in_deadline, utcnow

log = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_attendance_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _normalize(code: str) -> str:
    return code.strip().upper()


class AttendanceFlow:
    """Issues attendance codes and records check-ins against stakes."""

    def __init__(self, store: StakeStore, clock: Clock = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def _meeting(self, meeting_id: str) -> MeetingStake:
        meeting = await self._store.get_meeting_stake(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting {meeting_id} not found")
        return meeting

    async def generate_code(self, meeting_id: str, caller_wallet: str | None = None) -> str:
        """Issue a fresh code, replacing any previous one."""
        meeting = await self._meeting(meeting_id)
        if caller_wallet is not None and canonical_wallet(caller_wallet) != meeting.organizer:
            raise ForbiddenError("Only the organizer can generate the attendance code")
        if meeting.is_settled:
            raise ConflictError("Meeting has already been settled")

        code = generate_attendance_code()
        if not await self._store.set_attendance_code(meeting_id, code, self._clock()):
            raise ConflictError("Meeting has already been settled")
        await self._store.log_activity(
            "code_generated", f"Attendance code generated for {meeting_id}",
            meeting_id=meeting_id,
        )
        log.info("Attendance code generated for %s", meeting_id)
        return code

    async def submit_code(
        self, meeting_id: str, code: str, wallet_address: str
    ) -> CheckInResult:
        wallet = canonical_wallet(wallet_address or "")
        if not wallet:
            raise ValidationError("Wallet address is required")
        if not code or not code.strip():
            raise ValidationError("Attendance code is required")

        meeting = await self._meeting(meeting_id)
        if meeting.is_settled:
            raise ConflictError("Meeting has already been settled")
        if not meeting.attendance_code:
            raise ConflictError("No attendance code has been generated for this meeting")
        if not secrets.compare_digest(_normalize(code), meeting.attendance_code):
            raise ValidationError("Invalid attendance code")

        now = self._clock()
        if now > check_in_deadline(meeting.end_time):
            raise ConflictError("Attendance code has expired")

        stake = meeting.find_stake(wallet)
        if stake is None:
            log.warning("Check-in for %s by %s who has not staked", meeting_id, wallet[:10])
            return CheckInResult(meeting_id=meeting_id, wallet_address=wallet, checked_in=False)
        if stake.has_checked_in:
            return CheckInResult(
                meeting_id=meeting_id, wallet_address=wallet,
                checked_in=True, check_in_time=stake.check_in_time,
            )

        if not await self._store.mark_checked_in(meeting_id, wallet, now):
            raise ConflictError("Meeting has already been settled")
        await self._store.log_activity(
            "checked_in", f"{wallet[:10]} checked in to {meeting_id}",
            meeting_id=meeting_id, wallet_address=wallet,
        )
        log.info("Checked in: meeting=%s wallet=%s", meeting_id, wallet[:10])
        return CheckInResult(
            meeting_id=meeting_id, wallet_address=wallet, checked_in=True, check_in_time=now
        )
