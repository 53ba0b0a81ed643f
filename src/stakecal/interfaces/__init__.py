"""Protocol interfaces for all stakecal collaborators."""

from stakecal.interfaces.calendar import CalendarProvider, CreatedEvent
from stakecal.interfaces.contacts import ContactSource
from stakecal.interfaces.ledger import ExternalLedger
from stakecal.interfaces.notifier import Notifier, StakeInvitation
from stakecal.interfaces.store import StakeStore

__all__ = [
    "CalendarProvider", "CreatedEvent",
    "ContactSource",
    "ExternalLedger",
    "Notifier", "StakeInvitation",
    "StakeStore",
]
