"""Address-book lookups for attendee resolution."""

from stakecal.contacts.resolver import ContactResolver, score_contact

__all__ = ["ContactResolver", "score_contact"]
