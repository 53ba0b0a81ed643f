"""Google Workspace adapters: calendar events, mail and contacts."""

from stakecal.providers.gmail import GmailNotifier
from stakecal.providers.google_auth import GoogleAccounts
from stakecal.providers.google_calendar import GoogleCalendarProvider
from stakecal.providers.google_people import GoogleContactsSource

__all__ = [
    "GmailNotifier",
    "GoogleAccounts",
    "GoogleCalendarProvider",
    "GoogleContactsSource",
]
