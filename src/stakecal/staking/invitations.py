"""Invitation tokens and the wallet/email associations they produce."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from stakecal.errors import ConflictError, NotFoundError, StakeCalError, ValidationError
from stakecal.interfaces.store import StakeStore
from stakecal.models.records import (
    InvitationToken,
    WalletEmailAssociation,
    canonical_email,
    canonical_wallet,
)
from stakecal.staking.timeline import Clock, utcnow

log = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)


async def redemption_error(
    store: StakeStore, token: str, meeting_id: str | None = None
) -> StakeCalError:
    """Why ``token`` could not be redeemed, read after the failed update."""
    existing = await store.get_invitation_token(token)
    if existing is None:
        return NotFoundError("Invitation token not found")
    if meeting_id is not None and existing.meeting_id != meeting_id:
        return ValidationError("Invitation token does not belong to this meeting")
    if existing.used:
        return ConflictError("Invitation token has already been used")
    return ConflictError("Invitation token has expired")


class InvitationManager:
    """Creates single-use invitation tokens and redeems them.

    Redemption is one conditional update in the store; the reason for a
    failed redemption is classified only afterwards.
    """

    def __init__(
        self,
        store: StakeStore,
        ttl: timedelta = DEFAULT_TTL,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock

    async def create_tokens(self, meeting_id: str, emails: list[str]) -> dict[str, str]:
        """Return ``{email: token}`` for each distinct invited email."""
        now = self._clock()
        tokens: dict[str, str] = {}
        records = []
        for raw in emails:
            email = canonical_email(raw or "")
            if not email or email in tokens:
                continue
            token = secrets.token_hex(32)
            tokens[email] = token
            records.append(
                InvitationToken(
                    token=token,
                    meeting_id=meeting_id,
                    email=email,
                    expires_at=now + self._ttl,
                    created_at=now.isoformat(),
                )
            )
        if records:
            await self._store.save_invitation_tokens(records)
            log.info("Created %d invitation tokens for %s", len(records), meeting_id)
        return tokens

    async def redeem(self, token: str, wallet_address: str) -> InvitationToken:
        wallet = canonical_wallet(wallet_address or "")
        if not token or not wallet:
            raise ValidationError("Token and wallet address are required")

        redeemed = await self._store.redeem_invitation_token(token, wallet, self._clock())
        if redeemed is not None:
            await self._store.log_activity(
                "token_redeemed",
                f"Invitation for {redeemed.email} redeemed by {wallet[:10]}",
                meeting_id=redeemed.meeting_id,
                wallet_address=wallet,
            )
            return redeemed

        raise await redemption_error(self._store, token)

    async def get_token(self, token: str) -> InvitationToken:
        found = await self._store.get_invitation_token(token)
        if found is None:
            raise NotFoundError("Invitation token not found")
        return found

    async def get_tokens_for_meeting(self, meeting_id: str) -> list[InvitationToken]:
        return await self._store.get_tokens_for_meeting(meeting_id)

    async def get_association(self, wallet_address: str) -> WalletEmailAssociation | None:
        return await self._store.get_association_by_wallet(wallet_address)

    async def get_associations_by_email(self, email: str) -> list[WalletEmailAssociation]:
        return await self._store.get_associations_by_email(email)
