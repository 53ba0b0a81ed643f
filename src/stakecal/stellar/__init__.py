"""Stellar/Soroban integration components."""

from stakecal.stellar.queries import SorobanStakeLedger

__all__ = ["SorobanStakeLedger"]
