"""Persistent storage for stakecal."""

from stakecal.storage.sqlite import SQLiteStakeStore

__all__ = ["SQLiteStakeStore"]
