"""Read-only queries against the meeting-stake contract on Soroban."""

from __future__ import annotations

import logging

from stellar_sdk import scval, xdr
from stellar_sdk.contract import ContractClientAsync

from stakecal.errors import UpstreamError
from stakecal.models.records import canonical_wallet

log = logging.getLogger(__name__)


def _chain_address(wallet_address: str) -> str:
    """Stellar strkeys are upper-case; stored wallets are lowercased."""
    return wallet_address.strip().upper()


def _is_some(value: xdr.SCVal) -> bool:
    return value.type != xdr.SCValType.SCV_VOID


def _stakers(value: xdr.SCVal) -> list[str]:
    if not _is_some(value):
        return []
    return [canonical_wallet(scval.from_address(item).address) for item in scval.from_vec(value)]


class SorobanStakeLedger:
    """ExternalLedger backed by the meeting-stake contract.

    Uses the async contract client for simulation-only calls (no signing needed).
    Every failure surfaces as UpstreamError; the caller decides whether the
    ledger is required.
    """

    def __init__(
        self,
        contract_id: str,
        rpc_url: str,
        network_passphrase: str,
    ) -> None:
        self._client = ContractClientAsync(
            contract_id=contract_id,
            rpc_url=rpc_url,
            network_passphrase=network_passphrase,
        )

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        try:
            await self._client.server.close()
        except Exception as exc:
            log.debug("Closing Soroban client failed: %s", exc)

    async def meeting_exists(self, meeting_id: str) -> bool:
        found = await self._invoke(
            "get_meeting_info", [scval.to_string(meeting_id)], _is_some
        )
        return bool(found)

    async def get_stakers(self, meeting_id: str) -> list[str]:
        return await self._invoke(
            "get_meeting_stakers", [scval.to_string(meeting_id)], _stakers
        )

    async def has_staked(self, meeting_id: str, wallet_address: str) -> bool:
        result = await self._invoke(
            "has_staked",
            [scval.to_string(meeting_id), scval.to_address(_chain_address(wallet_address))],
            scval.from_bool,
        )
        return bool(result)

    async def _invoke(self, function_name: str, parameters: list, parse):
        try:
            tx = await self._client.invoke(
                function_name, parameters, parse_result_xdr_fn=parse
            )
            return tx.result()
        except Exception as exc:
            log.warning("%s failed: %s", function_name, exc)
            raise UpstreamError(f"Stake contract query {function_name} failed: {exc}") from exc
