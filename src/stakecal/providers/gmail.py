"""Gmail implementation of the Notifier protocol."""

from __future__ import annotations

import asyncio
import base64
import logging
from decimal import Decimal
from email.mime.text import MIMEText

from stakecal.errors import UpstreamError
from stakecal.interfaces.notifier import StakeInvitation
from stakecal.providers.google_auth import GOOGLE_ERRORS, GoogleAccounts

log = logging.getLogger(__name__)

DATE_FORMAT = "%A, %B %d, %Y at %H:%M %Z"


def invitation_message(invitation: StakeInvitation) -> tuple[str, str]:
    """Subject and plain-text body of a stake invitation."""
    subject = f"Stake required: {invitation.title}"
    who = invitation.organizer_name or "The organizer"
    lines = [
        f"{who} invited you to \"{invitation.title}\".",
        "",
        f"When: {invitation.start_time.strftime(DATE_FORMAT)}"
        f" - {invitation.end_time.strftime('%H:%M %Z')}",
    ]
    if invitation.location:
        lines.append(f"Where: {invitation.location}")
    lines += [
        f"Stake: {invitation.stake_amount}",
        "",
        "Attendees who check in with the attendance code get their stake back.",
        "Stakes of attendees who do not check in are forfeited.",
        "",
        f"Confirm your spot: {invitation.stake_link}",
        "",
        f"Meeting ID: {invitation.meeting_id}",
    ]
    return subject, "\n".join(lines)


def confirmation_message(title: str, stake_amount: Decimal) -> tuple[str, str]:
    subject = f"Stake confirmed: {title}"
    body = (
        f"Your stake of {stake_amount} for \"{title}\" has been recorded.\n\n"
        "The meeting has been added to your calendar. Check in with the attendance "
        "code during the meeting to get your stake back."
    )
    return subject, body


def encode_message(sender: str, recipient: str, subject: str, body: str) -> dict:
    message = MIMEText(body)
    message["to"] = recipient
    if sender:
        message["from"] = sender
    message["subject"] = subject
    return {"raw": base64.urlsafe_b64encode(message.as_bytes()).decode()}


class GmailNotifier:
    """Sends mail from the organizer's own Gmail account.

    Sending is a side effect: failures are logged and reported as False.
    """

    def __init__(self, accounts: GoogleAccounts, sender_email: str = "") -> None:
        self._accounts = accounts
        self._sender = sender_email

    async def send_invitation(
        self, organizer_wallet: str, recipient: str, invitation: StakeInvitation
    ) -> bool:
        subject, body = invitation_message(invitation)
        return await self._send(organizer_wallet, recipient, subject, body)

    async def send_confirmation(
        self, organizer_wallet: str, recipient: str, title: str, stake_amount: Decimal
    ) -> bool:
        subject, body = confirmation_message(title, stake_amount)
        return await self._send(organizer_wallet, recipient, subject, body)

    async def _send(self, organizer_wallet: str, recipient: str, subject: str, body: str) -> bool:
        payload = encode_message(self._sender, recipient, subject, body)
        try:
            await asyncio.to_thread(self._deliver, organizer_wallet, payload)
        except (UpstreamError, *GOOGLE_ERRORS) as exc:
            log.warning("Email to %s failed: %s", recipient, exc)
            return False
        log.info("Sent '%s' to %s", subject, recipient)
        return True

    def _deliver(self, organizer_wallet: str, payload: dict) -> None:
        service = self._accounts.service(organizer_wallet, "gmail", "v1")
        service.users().messages().send(userId="me", body=payload).execute()
