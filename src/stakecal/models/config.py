"""Configuration models for the service."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass
class AppConfig:
    """Complete service configuration."""

    # App
    log_level: str = "info"
    base_url: str = "http://localhost:3000"
    default_stake: Decimal = Decimal("0.01")
    invitation_ttl_days: int = 7

    # Storage
    db_path: str = "~/.stakecal/state.db"

    # Stellar
    network: str = "testnet"
    rpc_url: str = "https://soroban-testnet.stellar.org"
    network_passphrase: str = ""  # derived from network when empty
    contract_id: str = ""  # meeting stake contract ID

    # Google
    token_dir: str = "~/.stakecal/tokens"  # one authorized-user JSON per organizer wallet
    sender_email: str = ""

    # API
    host: str = "127.0.0.1"
    port: int = 8000
