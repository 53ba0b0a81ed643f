"""Imports an organizer's Google contacts into the address book."""

from __future__ import annotations

import asyncio
import logging

from stakecal.errors import UpstreamError
from stakecal.models.records import Contact, canonical_wallet
from stakecal.providers.google_auth import GOOGLE_ERRORS, GoogleAccounts

log = logging.getLogger(__name__)

PAGE_SIZE = 1000


def contacts_from_people(account_id: str, people: list[dict]) -> list[Contact]:
    """One Contact per email address of each person."""
    contacts = []
    for person in people:
        names = person.get("names", [])
        name = names[0].get("displayName") if names else None
        for entry in person.get("emailAddresses", []):
            email = entry.get("value")
            if email:
                contacts.append(Contact(account_id=account_id, email=email, name=name))
    return contacts


class GoogleContactsSource:
    def __init__(self, accounts: GoogleAccounts) -> None:
        self._accounts = accounts

    async def fetch_contacts(self, organizer_wallet: str) -> list[Contact]:
        try:
            people = await asyncio.to_thread(self._list_connections, organizer_wallet)
        except GOOGLE_ERRORS as exc:
            raise UpstreamError(f"Failed to fetch Google contacts: {exc}") from exc
        contacts = contacts_from_people(canonical_wallet(organizer_wallet), people)
        log.info("Fetched %d contacts for %s", len(contacts), organizer_wallet[:10])
        return contacts

    def _list_connections(self, organizer_wallet: str) -> list[dict]:
        service = self._accounts.service(organizer_wallet, "people", "v1")
        people: list[dict] = []
        page_token = None
        while True:
            response = service.people().connections().list(
                resourceName="people/me",
                pageSize=PAGE_SIZE,
                personFields="names,emailAddresses",
                pageToken=page_token,
            ).execute()
            people.extend(response.get("connections", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return people
