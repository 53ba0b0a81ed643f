"""Contact resolver - maps free-text attendee names to email addresses."""

from __future__ import annotations

import logging
import re

from stakecal.interfaces.store import StakeStore
from stakecal.models.contacts import (
    AttendeeResolution,
    ContactMatch,
    ResolutionKind,
    TokenResolution,
)
from stakecal.models.records import Contact

log = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Candidates scoring below this are not real matches (the 0.1 floor).
MIN_CONFIDENCE = 0.3
AUTO_ACCEPT_CONFIDENCE = 0.6
AUTO_ACCEPT_MARGIN = 0.15


def is_email(token: str) -> bool:
    return bool(EMAIL_RE.match(token.strip()))


def score_contact(name: str | None, query: str) -> float:
    """Confidence that ``name`` is the person meant by ``query``.

    First matching rule wins: exact name, exact first name, name prefix,
    first-name prefix, substring, then partial word overlap.
    """
    if not name:
        return 0.1

    name_lower = name.lower()
    query_lower = query.strip().lower()
    if not query_lower:
        return 0.1

    if name_lower == query_lower:
        return 1.0

    first_name = name_lower.split(" ")[0]
    if first_name == query_lower:
        return 0.95

    if name_lower.startswith(query_lower):
        return 0.8
    if first_name.startswith(query_lower):
        return 0.75

    if query_lower in name_lower:
        return 0.6

    query_words = query_lower.split()
    name_words = name_lower.split()
    matching = [qw for qw in query_words if any(qw in nw for nw in name_words)]
    if matching:
        return 0.4 * len(matching) / len(query_words)

    return 0.1


def _sort_key(match: ContactMatch) -> tuple:
    return (-match.confidence, match.name is None, (match.name or "").lower(), match.email)


def rank_candidates(contacts: list[Contact], query: str) -> list[ContactMatch]:
    """Score every contact and keep those above MIN_CONFIDENCE, best first.

    Falls back to email substring search when no name matches.
    """
    matches = [
        ContactMatch(email=c.email, name=c.name, confidence=score_contact(c.name, query))
        for c in contacts
    ]
    matches = [m for m in matches if m.confidence >= MIN_CONFIDENCE]
    if not matches:
        needle = query.strip().lower()
        matches = [
            ContactMatch(
                email=c.email,
                name=c.name,
                confidence=1.0 if c.email.lower() == needle else 0.5,
            )
            for c in contacts
            if needle and needle in c.email.lower()
        ]
    return sorted(matches, key=_sort_key)


def _accept(matches: list[ContactMatch]) -> ContactMatch | None:
    best = matches[0]
    if best.confidence < AUTO_ACCEPT_CONFIDENCE:
        return None
    if len(matches) > 1 and best.confidence - matches[1].confidence < AUTO_ACCEPT_MARGIN:
        return None
    return best


class ContactResolver:
    """Resolves attendee tokens against an account's address book."""

    def __init__(self, store: StakeStore) -> None:
        self._store = store

    async def resolve_token(
        self, token: str, account_id: str, contacts: list[Contact] | None = None
    ) -> TokenResolution:
        query = token.strip()
        if is_email(query):
            return TokenResolution(
                search_query=token, kind=ResolutionKind.RESOLVED, email=query
            )

        if contacts is None:
            contacts = await self._store.get_contacts(account_id)
        if not contacts or not query:
            return TokenResolution(search_query=token, kind=ResolutionKind.NO_MATCH)

        matches = rank_candidates(contacts, query)
        if not matches:
            return TokenResolution(search_query=token, kind=ResolutionKind.NO_MATCH)

        accepted = _accept(matches)
        if accepted is not None:
            return TokenResolution(
                search_query=token,
                kind=ResolutionKind.RESOLVED,
                email=accepted.email,
                matches=[accepted],
            )
        return TokenResolution(search_query=token, kind=ResolutionKind.AMBIGUOUS, matches=matches)

    async def resolve_attendees(self, tokens: list[str], account_id: str) -> AttendeeResolution:
        contacts = await self._store.get_contacts(account_id)
        result = AttendeeResolution()
        for token in tokens:
            if not token or not token.strip():
                continue
            resolution = await self.resolve_token(token, account_id, contacts)
            if resolution.kind == ResolutionKind.RESOLVED:
                if resolution.email.lower() not in {e.lower() for e in result.resolved}:
                    result.resolved.append(resolution.email)
                if resolution.matches:
                    match = resolution.matches[0]
                    result.details.append(
                        f'"{token}" -> {match.name or match.email} <{match.email}>'
                        f" (confidence {match.confidence:.2f})"
                    )
                else:
                    result.details.append(f'"{token}" -> {resolution.email}')
            elif resolution.kind == ResolutionKind.AMBIGUOUS:
                result.ambiguous.append(resolution)
                result.details.append(
                    f'"{token}" is ambiguous: {len(resolution.matches)} candidates'
                )
            else:
                result.unmatched.append(token)
                result.details.append(f'"{token}" matched no contact')
        log.debug("Resolved %d of %d attendee tokens", len(result.resolved), len(tokens))
        return result
