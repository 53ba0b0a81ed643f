"""Data models for stakecal."""

from stakecal.models.config import AppConfig
from stakecal.models.contacts import (
    AttendeeResolution,
    ContactMatch,
    ResolutionKind,
    TokenResolution,
)
from stakecal.models.records import (
    ActivityRecord,
    CheckInResult,
    Contact,
    EventDraft,
    InvitationToken,
    MeetingStake,
    PendingMeeting,
    SettlementResult,
    StakeRecord,
    WalletEmailAssociation,
    canonical_email,
    canonical_wallet,
)
from stakecal.models.snapshots import (
    ActivityEntry,
    InitiateResult,
    MeetingSnapshot,
    MeetingStats,
    ParticipantSnapshot,
    ReconcileReport,
    ScheduleResult,
    StakeResult,
    StakeSnapshot,
)
from stakecal.models.status import MeetingStatus, PendingStatus

__all__ = [
    "AppConfig",
    "AttendeeResolution", "ContactMatch", "ResolutionKind", "TokenResolution",
    "ActivityRecord", "CheckInResult", "Contact", "EventDraft", "InvitationToken",
    "MeetingStake", "PendingMeeting", "SettlementResult", "StakeRecord",
    "WalletEmailAssociation", "canonical_email", "canonical_wallet",
    "ActivityEntry", "InitiateResult", "MeetingSnapshot", "MeetingStats", "ParticipantSnapshot",
    "ReconcileReport", "ScheduleResult", "StakeResult", "StakeSnapshot",
    "MeetingStatus", "PendingStatus",
]
