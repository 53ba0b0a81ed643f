"""Reconciler - compares the local store with the external ledger."""

from __future__ import annotations

import logging

from stakecal.errors import UpstreamError
from stakecal.interfaces.ledger import ExternalLedger
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import canonical_wallet
from stakecal.models.snapshots import ReconcileReport

log = logging.getLogger(__name__)


class Reconciler:
    """Read-only comparison of store state against the stake contract.

    Never repairs anything. Divergence is reported and written to the
    activity log for an operator to act on.
    """

    def __init__(self, store: StakeStore, ledger: ExternalLedger | None = None) -> None:
        self._store = store
        self._ledger = ledger

    async def reconcile(
        self, meeting_id: str, wallet_address: str | None = None
    ) -> ReconcileReport:
        pending = await self._store.get_pending_meeting(meeting_id)
        meeting = await self._store.get_meeting_stake(meeting_id)
        wallet = canonical_wallet(wallet_address) if wallet_address else None

        report = ReconcileReport(
            meeting_id=meeting_id,
            in_store=pending is not None or meeting is not None,
            on_chain=None,
            pending_status=pending.status.value if pending else None,
            calendar_event_id=(pending.calendar_event_id if pending else None)
            or (meeting.event_id if meeting else None)
            or None,
            store_stakers=sorted(s.wallet_address for s in meeting.stakes) if meeting else [],
        )

        chain_has_staked: bool | None = None
        if self._ledger is None:
            report.issues.append("External ledger unavailable")
        else:
            try:
                report.on_chain = await self._ledger.meeting_exists(meeting_id)
                if report.on_chain:
                    report.chain_stakers = sorted(
                        canonical_wallet(a) for a in await self._ledger.get_stakers(meeting_id)
                    )
                    if wallet:
                        chain_has_staked = await self._ledger.has_staked(meeting_id, wallet)
                elif wallet:
                    chain_has_staked = False
            except UpstreamError as exc:
                log.warning("Ledger query for %s failed: %s", meeting_id, exc)
                report.on_chain = None
                report.chain_stakers = []
                chain_has_staked = None
                report.issues.append("External ledger unavailable")

        if wallet:
            report.wallet_has_staked = {
                "store": wallet in report.store_stakers,
                "chain": chain_has_staked,
            }

        if not report.in_store:
            report.issues.append("Meeting not found in store")
        if report.on_chain is False:
            report.issues.append("Meeting not found on chain")
        if report.in_store and not report.calendar_event_id:
            report.issues.append("Calendar event not created yet")
        if report.in_store and not report.store_stakers and not report.chain_stakers:
            report.issues.append("No one has staked yet")

        if report.on_chain:
            chain = set(report.chain_stakers)
            store = set(report.store_stakers)
            report.store_only = sorted(store - chain)
            report.chain_only = sorted(chain - store)
            if report.store_only:
                report.issues.append(
                    "Stakers recorded in store but not on chain: " + ", ".join(report.store_only)
                )
            if report.chain_only:
                report.issues.append(
                    "Stakers on chain but not recorded in store: " + ", ".join(report.chain_only)
                )

        if report.store_only or report.chain_only or (
            report.on_chain is not None and report.in_store != report.on_chain
        ):
            await self._record_divergence(report)
        return report

    async def _record_divergence(self, report: ReconcileReport) -> None:
        try:
            await self._store.log_activity(
                "reconcile_divergence",
                "; ".join(report.issues) or "Store and chain disagree",
                meeting_id=report.meeting_id,
            )
        except Exception as exc:
            log.warning("Could not record divergence for %s: %s", report.meeting_id, exc)
