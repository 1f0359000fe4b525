"""
Shared fixtures: an in-memory remote source, a recording progress sink and a
configuration tuned for fast tests.
"""

from pathlib import Path

import pytest

from packsync.models.config import SyncConfig
from tests.fakes import FakeRemoteSource, RecordingSink


@pytest.fixture
def source() -> FakeRemoteSource:
    return FakeRemoteSource()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def fast_config(tmp_path: Path) -> SyncConfig:
    """Zero backoff and no progress throttling."""
    return SyncConfig(
        config_path=str(tmp_path / "config"),
        retry_base_delay=0,
        progress_interval=0,
        max_workers=3,
        item_workers=2,
        max_retries=2,
    )
