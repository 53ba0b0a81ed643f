"""Staking lifecycle: drafts, stakes, attendance, settlement, reconciliation."""

from stakecal.staking.attendance import AttendanceFlow
from stakecal.staking.invitations import InvitationManager
from stakecal.staking.ledger import StakeLedger
from stakecal.staking.meetings import MeetingDrafts
from stakecal.staking.reconcile import Reconciler
from stakecal.staking.settlement import Settlement
from stakecal.staking.timeline import compute_meeting_status

__all__ = [
    "AttendanceFlow",
    "InvitationManager",
    "MeetingDrafts",
    "Reconciler",
    "Settlement",
    "StakeLedger",
    "compute_meeting_status",
]
