"""Service layer - wires all components together and runs the staking flows."""

from __future__ import annotations

import logging
from datetime import timedelta

from stakecal.api.data_api import DataAggregator
from stakecal.contacts.resolver import ContactResolver
from stakecal.errors import ConflictError, UpstreamError, ValidationError
from stakecal.interfaces.calendar import CalendarProvider
from stakecal.interfaces.contacts import ContactSource
from stakecal.interfaces.ledger import ExternalLedger
from stakecal.interfaces.notifier import Notifier, StakeInvitation
from stakecal.interfaces.store import StakeStore
from stakecal.models.config import AppConfig
from stakecal.models.contacts import AttendeeResolution
from stakecal.models.records import (
    CheckInResult,
    Contact,
    EventDraft,
    PendingMeeting,
    SettlementResult,
    canonical_wallet,
)
from stakecal.models.snapshots import (
    InitiateResult,
    MeetingSnapshot,
    ReconcileReport,
    ScheduleResult,
    StakeResult,
)
from stakecal.models.status import PendingStatus
from stakecal.staking.attendance import AttendanceFlow
from stakecal.staking.invitations import InvitationManager
from stakecal.staking.ledger import StakeLedger, parse_amount
from stakecal.staking.meetings import MeetingDrafts
from stakecal.staking.reconcile import Reconciler
from stakecal.staking.settlement import Settlement
from stakecal.staking.timeline import Clock, utcnow

log = logging.getLogger(__name__)


def stake_link(base_url: str, meeting_id: str, token: str | None = None) -> str:
    link = f"{base_url.rstrip('/')}/stake/{meeting_id}"
    return f"{link}?token={token}" if token else link


def event_description(meeting: PendingMeeting) -> str:
    lines = []
    if meeting.event.description:
        lines += [meeting.event.description, ""]
    lines += [
        f"This meeting requires a {meeting.stake_amount} stake.",
        "Check in with the attendance code during the meeting to get it back.",
        f"Meeting ID: {meeting.meeting_id}",
    ]
    return "\n".join(lines)


class StakeCalService:
    """Meeting-staking back end.

    Orchestrates drafting, invitations, stakes, scheduling, attendance and
    settlement. Steps that must succeed raise; notification and calendar
    side effects are logged and reported in the flow result instead.
    """

    def __init__(
        self,
        store: StakeStore,
        config: AppConfig | None = None,
        external_ledger: ExternalLedger | None = None,
        calendar: CalendarProvider | None = None,
        notifier: Notifier | None = None,
        contact_source: ContactSource | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._cfg = config or AppConfig()
        self._started = False

        # Collaborators
        self.store = store
        self.external_ledger = external_ledger
        self.calendar = calendar
        self.notifier = notifier
        self.contact_source = contact_source

        # Core components
        self.ledger = StakeLedger(store, clock)
        self.meetings = MeetingDrafts(store, clock)
        self.invitations = InvitationManager(
            store, timedelta(days=self._cfg.invitation_ttl_days), clock
        )
        self.attendance = AttendanceFlow(store, clock)
        self.settlement = Settlement(store, clock)
        self.reconciler = Reconciler(store, external_ledger)
        self.resolver = ContactResolver(store)
        self.data_api = DataAggregator(store, self.ledger, clock)

    @classmethod
    def from_config(cls, cfg: AppConfig) -> StakeCalService:
        """Build the service with the SQLite store, Soroban and Google adapters."""
        from stakecal.providers import (
            GmailNotifier,
            GoogleAccounts,
            GoogleCalendarProvider,
            GoogleContactsSource,
        )
        from stakecal.stellar.queries import SorobanStakeLedger
        from stakecal.storage.sqlite import SQLiteStakeStore

        external_ledger = None
        if cfg.contract_id:
            external_ledger = SorobanStakeLedger(
                cfg.contract_id, cfg.rpc_url, cfg.network_passphrase
            )
        else:
            log.info("No contract_id configured; reconciliation will report the ledger unavailable")

        accounts = GoogleAccounts(cfg.token_dir)
        return cls(
            store=SQLiteStakeStore(cfg.db_path),
            config=cfg,
            external_ledger=external_ledger,
            calendar=GoogleCalendarProvider(accounts),
            notifier=GmailNotifier(accounts, cfg.sender_email),
            contact_source=GoogleContactsSource(accounts),
        )

    @property
    def config(self) -> AppConfig:
        return self._cfg

    # ── Lifecycle ──────────────────────────────────────────

    async def start(self) -> None:
        if self._started:
            return
        await self.store.initialize()
        self._started = True
        log.info("stakecal service started (network=%s)", self._cfg.network)

    async def close(self) -> None:
        close_ledger = getattr(self.external_ledger, "close", None)
        if close_ledger is not None:
            await close_ledger()
        await self.store.close()
        self._started = False

    # ── Contacts ───────────────────────────────────────────

    async def resolve_attendees(self, tokens: list[str], account_id: str) -> AttendeeResolution:
        return await self.resolver.resolve_attendees(tokens, canonical_wallet(account_id))

    async def import_contacts(
        self,
        account_id: str,
        contacts: list[Contact] | None = None,
        replace: bool = False,
    ) -> int:
        """Store contacts for an account, fetching them from the source if not given."""
        account = canonical_wallet(account_id)
        if contacts is None:
            if self.contact_source is None:
                raise UpstreamError("No contact source configured")
            contacts = await self.contact_source.fetch_contacts(account)
        if replace:
            await self.store.clear_contacts(account)
        count = await self.store.save_contacts(account, contacts)
        log.info("Imported %d contacts for %s", count, account[:10])
        return count

    # ── Staking flows ──────────────────────────────────────

    async def initiate(
        self,
        organizer_wallet: str,
        draft: EventDraft,
        stake_amount: object | None = None,
        organizer_email: str | None = None,
    ) -> InitiateResult:
        """Draft the meeting, mint invitation tokens and email the stake links."""
        if stake_amount is None:
            stake_amount = self._cfg.default_stake
        meeting = await self.meetings.create(
            organizer_wallet, draft, stake_amount, organizer_email
        )
        tokens = await self.invitations.create_tokens(meeting.meeting_id, meeting.event.attendees)

        result = InitiateResult(
            meeting_id=meeting.meeting_id,
            stake_amount=str(meeting.stake_amount),
            stake_link=stake_link(self._cfg.base_url, meeting.meeting_id),
            invitations_sent=0,
            invitations_failed=0,
            tokens=tokens,
        )
        if self.notifier is None:
            log.info("No notifier configured; invitations for %s not emailed", meeting.meeting_id)
            return result

        organizer_name = organizer_email.split("@")[0] if organizer_email else None
        for email, token in tokens.items():
            invitation = StakeInvitation(
                title=meeting.event.summary,
                start_time=meeting.event.start_time,
                end_time=meeting.event.end_time,
                stake_amount=meeting.stake_amount,
                meeting_id=meeting.meeting_id,
                stake_link=stake_link(self._cfg.base_url, meeting.meeting_id, token),
                organizer_name=organizer_name,
                location=meeting.event.location,
            )
            if await self._notify(
                self.notifier.send_invitation, meeting.organizer_wallet, email, invitation
            ):
                result.invitations_sent += 1
            else:
                result.invitations_failed += 1

        if result.invitations_failed:
            log.warning(
                "Failed to send %d of %d stake invitations for %s",
                result.invitations_failed, len(tokens), meeting.meeting_id,
            )
        else:
            log.info("Sent %d stake invitations for %s", result.invitations_sent, meeting.meeting_id)
        return result

    async def stake(
        self,
        meeting_id: str,
        wallet_address: str,
        amount: object,
        token: str | None = None,
    ) -> StakeResult:
        """Record a stake, redeeming the invitation token with it when one is given."""
        wallet = canonical_wallet(wallet_address or "")
        if not wallet:
            raise ValidationError("Wallet address is required")
        value = parse_amount(amount)

        # Reject a stake that cannot succeed before touching the token.
        preview, _ = await self.ledger.preview_meeting(meeting_id)
        pending = await self.store.get_pending_meeting(meeting_id)
        if pending is not None and pending.status == PendingStatus.CANCELLED:
            raise ConflictError("Meeting has been cancelled")
        if value != preview.required_stake:
            raise ValidationError(f"Stake must be exactly {preview.required_stake}, got {value}")
        if preview.is_settled:
            raise ConflictError("Meeting has already been settled")
        if preview.find_stake(wallet) is not None:
            raise ConflictError("Already staked for this meeting")

        email = None
        if token:
            invitation = await self.invitations.get_token(token)
            if invitation.meeting_id != meeting_id:
                raise ValidationError("Invitation token does not belong to this meeting")
        else:
            association = await self.invitations.get_association(wallet)
            email = association.email if association else None

        # With a token, redemption and the stake commit or roll back together.
        record = await self.ledger.post_stake(meeting_id, wallet, value, email, token=token)
        result = StakeResult(
            meeting_id=meeting_id,
            wallet_address=record.wallet_address,
            amount=str(record.amount),
            email=record.email,
        )
        if not record.email:
            return result

        organizer = pending.organizer_wallet if pending else preview.organizer
        title = pending.event.summary if pending else meeting_id
        if self.notifier is not None:
            result.confirmation_sent = await self._notify(
                self.notifier.send_confirmation, organizer, record.email, title, record.amount
            )
        event_id = (pending.calendar_event_id if pending else None) or preview.event_id
        if self.calendar is not None and event_id:
            try:
                await self.calendar.add_attendee(organizer, event_id, record.email)
                result.added_to_calendar = True
            except Exception as exc:
                log.warning("Could not add %s to event %s: %s", record.email, event_id, exc)
        return result

    async def confirm_and_schedule(
        self, meeting_id: str, staker_email: str | None = None
    ) -> ScheduleResult:
        """Create the calendar event once; later calls return the existing event."""
        meeting = await self.meetings.get(meeting_id)
        if meeting.status == PendingStatus.CANCELLED:
            raise ConflictError("Meeting has been cancelled")
        if meeting.calendar_event_id:
            log.info("Calendar event already created for %s", meeting_id)
            return ScheduleResult(
                meeting_id=meeting_id,
                calendar_event_id=meeting.calendar_event_id,
                already_scheduled=True,
            )
        if self.calendar is None:
            raise UpstreamError("No calendar provider configured")

        created = await self.calendar.create_event(
            meeting.organizer_wallet, meeting.event, event_description(meeting)
        )
        await self.meetings.attach_calendar_event(meeting_id, created.event_id)
        if meeting.status == PendingStatus.PENDING:
            meeting = await self.meetings.transition(meeting_id, PendingStatus.STAKE_CONFIRMED)
        if meeting.status == PendingStatus.STAKE_CONFIRMED:
            await self.meetings.transition(meeting_id, PendingStatus.SCHEDULED)
        await self.store.log_activity(
            "meeting_scheduled",
            f"Calendar event {created.event_id} created for {meeting_id}",
            meeting_id=meeting_id,
        )
        log.info("Scheduled %s as calendar event %s", meeting_id, created.event_id)

        if staker_email and self.notifier is not None:
            await self._notify(
                self.notifier.send_confirmation,
                meeting.organizer_wallet, staker_email, meeting.event.summary, meeting.stake_amount,
            )
        return ScheduleResult(
            meeting_id=meeting_id,
            calendar_event_id=created.event_id,
            already_scheduled=False,
            event_link=created.html_link,
        )

    async def cancel(self, meeting_id: str) -> PendingMeeting:
        return await self.meetings.cancel(meeting_id)

    # ── Attendance & settlement ────────────────────────────

    async def generate_code(self, meeting_id: str, caller_wallet: str | None = None) -> str:
        return await self.attendance.generate_code(meeting_id, caller_wallet)

    async def submit_code(self, meeting_id: str, code: str, wallet_address: str) -> CheckInResult:
        return await self.attendance.submit_code(meeting_id, code, wallet_address)

    async def settle(self, meeting_id: str, force: bool = False) -> SettlementResult:
        return await self.settlement.settle(meeting_id, force)

    # ── Queries ────────────────────────────────────────────

    async def status(self, meeting_id: str, wallet_address: str | None = None) -> MeetingSnapshot:
        return await self.data_api.meeting_snapshot(meeting_id, wallet_address)

    async def reconcile(
        self, meeting_id: str, wallet_address: str | None = None
    ) -> ReconcileReport:
        return await self.reconciler.reconcile(meeting_id, wallet_address)

    # ── Helpers ────────────────────────────────────────────

    async def _notify(self, send, *args) -> bool:
        try:
            return bool(await send(*args))
        except Exception as exc:
            log.warning("Notification failed: %s", exc)
            return False
