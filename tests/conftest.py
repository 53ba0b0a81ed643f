"""Shared fixtures for stakecal tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pytest_metadata.plugin import metadata_key

from stakecal.models.config import AppConfig
from stakecal.service import StakeCalService
from stakecal.storage.sqlite import SQLiteStakeStore

from tests.mocks import FakeClock, MockCalendar, MockLedger, MockNotifier

# Every test starts at the same instant; meetings are placed relative to it.
T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

CONTRACT_ID = "CCEDYFIHUCJFITWEOT7BWUO2HBQQ72L244ZXQ4YNOC6FYRDN3MKDQFK7"


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add run info to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "none (external ledger mocked)"
    meta["Stake Contract"] = CONTRACT_ID
    meta["Store"] = "SQLite :memory:"


def make_test_config(**overrides) -> AppConfig:
    """Build an AppConfig suitable for testing."""
    defaults = dict(
        db_path=":memory:",
        base_url="https://stakecal.test",
        contract_id=CONTRACT_ID,
        token_dir="/nonexistent/tokens",
    )
    defaults.update(overrides)
    return AppConfig(**defaults)


@pytest.fixture
def test_config():
    return make_test_config()


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteStakeStore."""
    s = SQLiteStakeStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_ledger():
    return MockLedger()


@pytest.fixture
def mock_calendar():
    return MockCalendar()


@pytest.fixture
def mock_notifier():
    return MockNotifier()


@pytest.fixture
async def service(test_config, store, clock, mock_ledger, mock_calendar, mock_notifier):
    """Fully wired StakeCalService with mocked collaborators."""
    svc = StakeCalService(
        store=store,
        config=test_config,
        external_ledger=mock_ledger,
        calendar=mock_calendar,
        notifier=mock_notifier,
        clock=clock,
    )
    await svc.start()
    return svc
