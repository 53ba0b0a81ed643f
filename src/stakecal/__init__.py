"""stakecal - stake-backed meeting attendance for a wallet-authenticated calendar."""

__version__ = "0.3.0"
