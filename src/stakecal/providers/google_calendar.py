"""Google Calendar implementation of the CalendarProvider protocol."""

from __future__ import annotations

import asyncio
import logging

from stakecal.errors import UpstreamError
from stakecal.interfaces.calendar import CreatedEvent
from stakecal.models.records import EventDraft
from stakecal.providers.google_auth import GOOGLE_ERRORS, GoogleAccounts

log = logging.getLogger(__name__)


def event_body(draft: EventDraft, description: str) -> dict:
    body = {
        "summary": draft.summary,
        "description": description,
        "start": {"dateTime": draft.start_time.isoformat(), "timeZone": draft.timezone},
        "end": {"dateTime": draft.end_time.isoformat(), "timeZone": draft.timezone},
        "attendees": [
            {"email": email, "responseStatus": "needsAction"} for email in draft.attendees
        ],
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 60},
                {"method": "popup", "minutes": 10},
            ],
        },
    }
    if draft.location:
        body["location"] = draft.location
    return body


class GoogleCalendarProvider:
    """Creates events in the organizer's primary calendar."""

    def __init__(self, accounts: GoogleAccounts, calendar_id: str = "primary") -> None:
        self._accounts = accounts
        self._calendar_id = calendar_id

    async def create_event(
        self, organizer_wallet: str, draft: EventDraft, description: str
    ) -> CreatedEvent:
        try:
            created = await asyncio.to_thread(
                self._insert, organizer_wallet, event_body(draft, description)
            )
        except GOOGLE_ERRORS as exc:
            log.error("Calendar event creation failed: %s", exc)
            raise UpstreamError(f"Failed to create calendar event: {exc}") from exc
        log.info("Created calendar event %s", created.get("id"))
        return CreatedEvent(event_id=created["id"], html_link=created.get("htmlLink"))

    async def add_attendee(self, organizer_wallet: str, event_id: str, email: str) -> None:
        try:
            await asyncio.to_thread(self._add_attendee, organizer_wallet, event_id, email)
        except GOOGLE_ERRORS as exc:
            raise UpstreamError(f"Failed to add {email} to event {event_id}: {exc}") from exc

    def _insert(self, organizer_wallet: str, body: dict) -> dict:
        service = self._accounts.service(organizer_wallet, "calendar", "v3")
        return service.events().insert(
            calendarId=self._calendar_id, body=body, sendUpdates="all"
        ).execute()

    def _add_attendee(self, organizer_wallet: str, event_id: str, email: str) -> None:
        service = self._accounts.service(organizer_wallet, "calendar", "v3")
        event = service.events().get(calendarId=self._calendar_id, eventId=event_id).execute()
        attendees = event.get("attendees", [])
        if any(a.get("email", "").lower() == email.lower() for a in attendees):
            return
        attendees.append({"email": email, "responseStatus": "accepted"})
        service.events().patch(
            calendarId=self._calendar_id,
            eventId=event_id,
            body={"attendees": attendees},
            sendUpdates="all",
        ).execute()
