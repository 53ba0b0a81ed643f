"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ResolveContactsRequest(BaseModel):
    account_id: str = Field(min_length=1)
    attendees: list[str]


class EventData(BaseModel):
    summary: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    attendees: list[str] = Field(default_factory=list)
    description: str | None = None
    location: str | None = None
    timezone: str = "UTC"


class InitiateRequest(BaseModel):
    wallet_address: str = Field(min_length=1)
    event: EventData
    stake_amount: Decimal | None = None
    organizer_email: str | None = None


class StakeRequest(BaseModel):
    meeting_id: str = Field(min_length=1)
    wallet_address: str = Field(min_length=1)
    amount: Decimal
    token: str | None = None


class MeetingRequest(BaseModel):
    meeting_id: str = Field(min_length=1)


class ConfirmRequest(MeetingRequest):
    staker_email: str | None = None


class AttendanceCodeRequest(MeetingRequest):
    wallet_address: str | None = None


class CheckInRequest(MeetingRequest):
    code: str = Field(min_length=1)
    wallet_address: str = Field(min_length=1)


class SettleRequest(MeetingRequest):
    force: bool = False
