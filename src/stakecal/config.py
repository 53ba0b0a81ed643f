"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from stakecal.models.config import AppConfig

NETWORK_PASSPHRASES = {
    "testnet": "Test SDF Network ; September 2015",
    "mainnet": "Public Global Stellar Network ; September 2015",
    "futurenet": "Test SDF Future Network ; October 2022",
}


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "STAKECAL_",
) -> AppConfig:
    """Load service configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (STAKECAL_DB_PATH, etc.)
        2. TOML config file
        3. Defaults from AppConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = AppConfig()

    # ── App section ────────────────────────────────────────
    app = raw.get("app", {})
    if v := app.get("log_level"):
        cfg.log_level = str(v)
    if v := app.get("base_url"):
        cfg.base_url = str(v)
    if v := app.get("default_stake"):
        cfg.default_stake = _decimal(v, "app.default_stake")
    if v := app.get("invitation_ttl_days"):
        cfg.invitation_ttl_days = int(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Stellar section ────────────────────────────────────
    stellar = raw.get("stellar", {})
    if v := stellar.get("network"):
        cfg.network = str(v)
    if v := stellar.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := stellar.get("network_passphrase"):
        cfg.network_passphrase = str(v)
    if v := stellar.get("contract_id"):
        cfg.contract_id = str(v)

    # ── Google section ─────────────────────────────────────
    google = raw.get("google", {})
    if v := google.get("token_dir"):
        cfg.token_dir = str(v)
    if v := google.get("sender_email"):
        cfg.sender_email = str(v)

    # ── API section ────────────────────────────────────────
    api = raw.get("api", {})
    if v := api.get("host"):
        cfg.host = str(v)
    if v := api.get("port"):
        cfg.port = int(v)

    # ── Environment variable overrides (highest priority) ──
    if v := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = v
    if v := os.environ.get(f"{env_prefix}NETWORK"):
        cfg.network = v
    if v := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = v
    if v := os.environ.get(f"{env_prefix}CONTRACT_ID"):
        cfg.contract_id = v
    if v := os.environ.get(f"{env_prefix}BASE_URL"):
        cfg.base_url = v
    if v := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = v
    if v := os.environ.get(f"{env_prefix}GOOGLE_TOKEN_DIR"):
        cfg.token_dir = v

    if not cfg.network_passphrase:
        cfg.network_passphrase = NETWORK_PASSPHRASES.get(cfg.network, "")

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())
    cfg.token_dir = str(Path(cfg.token_dir).expanduser())

    return cfg


def _decimal(value: object, key: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key} must be a decimal amount, got {value!r}") from exc
    if amount <= 0:
        raise ValueError(f"{key} must be positive, got {value!r}")
    return amount
