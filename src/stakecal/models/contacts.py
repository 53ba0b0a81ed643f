"""Contact resolution results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResolutionKind(str, Enum):
    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"


@dataclass
class ContactMatch:
    """A scored address-book candidate for a search token."""

    email: str
    name: str | None
    confidence: float


@dataclass
class TokenResolution:
    """Resolution of one free-text attendee token."""

    search_query: str
    kind: ResolutionKind
    email: str | None = None
    matches: list[ContactMatch] = field(default_factory=list)


@dataclass
class AttendeeResolution:
    """Aggregate resolution of an attendee list."""

    resolved: list[str] = field(default_factory=list)
    ambiguous: list[TokenResolution] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)

    @property
    def needs_disambiguation(self) -> bool:
        return bool(self.ambiguous)
