"""Shared fixtures: temporary catalog, frozen clock, recording adapters."""

from datetime import datetime, timezone

import pytest

from skysale.adapters import MockMintAdapter, RecordingNotifier
from skysale.core.clock import FrozenClock
from skysale.core.config import EngineConfig
from skysale.core.storage import CatalogStore


START = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def config(tmp_path):
    return EngineConfig(
        db_path=tmp_path / "skysale.db",
        log_dir=tmp_path / "logs",
        mint_backoff_base=0.0,
    )


@pytest.fixture
def store(config):
    catalog = CatalogStore(config.db_path)
    yield catalog
    catalog.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def mint_adapter():
    return MockMintAdapter()
