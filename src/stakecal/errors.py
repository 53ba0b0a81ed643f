"""Error taxonomy shared by the services, the HTTP API and the CLI."""

from __future__ import annotations


class StakeCalError(Exception):
    """Base error. Carries the HTTP status code surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StakeCalError):
    """Missing or malformed input, rejected before any side effect."""

    status_code = 400


class ForbiddenError(StakeCalError):
    status_code = 403


class NotFoundError(StakeCalError):
    """Referenced meeting, token or account does not exist."""

    status_code = 404


class ConflictError(StakeCalError):
    """Duplicate stake, used or expired token/code, illegal transition."""

    status_code = 409


class InvalidTransition(ConflictError):
    pass


class UpstreamError(StakeCalError):
    """The store or an external collaborator failed."""

    status_code = 502
