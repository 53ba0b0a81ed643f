"""Per-organizer Google credentials stored as authorized-user token files."""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from stakecal.errors import UpstreamError
from stakecal.models.records import canonical_wallet

log = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/contacts.readonly",
]

# Failures of a Google API call, including token and transport problems.
GOOGLE_ERRORS = (HttpError, GoogleAuthError, OSError, ValueError)


class GoogleAccounts:
    """Builds Google API clients for an organizer wallet.

    Token files are named ``<wallet>.json`` under ``token_dir``. Obtaining
    and refreshing them is handled outside stakecal.
    """

    def __init__(self, token_dir: str | Path) -> None:
        self._token_dir = Path(token_dir).expanduser()

    def token_path(self, organizer_wallet: str) -> Path:
        return self._token_dir / f"{canonical_wallet(organizer_wallet)}.json"

    def is_connected(self, organizer_wallet: str) -> bool:
        return self.token_path(organizer_wallet).exists()

    def credentials(self, organizer_wallet: str) -> Credentials:
        path = self.token_path(organizer_wallet)
        if not path.exists():
            raise UpstreamError(
                f"No Google account connected for wallet {organizer_wallet[:10]}"
            )
        return Credentials.from_authorized_user_file(str(path), SCOPES)

    def service(self, organizer_wallet: str, name: str, version: str):
        """Discovery client for one API, e.g. ``("calendar", "v3")``."""
        creds = self.credentials(organizer_wallet)
        log.debug("Building %s %s client for %s", name, version, organizer_wallet[:10])
        return build(name, version, credentials=creds, cache_discovery=False)
