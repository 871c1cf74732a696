"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from telegram_copilot_bridge.config import BridgeConfig
from telegram_copilot_bridge.session_store import SessionStore


class FakeClock:
    """Deterministic epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def config(tmp_path: Path) -> BridgeConfig:
    """Config pointing every storage path into tmp_path."""
    return BridgeConfig(
        db_path=str(tmp_path / "sessions.sqlite"),
        paper_cache_dir=str(tmp_path / "papers" / "cache"),
        paper_db_dir=str(tmp_path / "papers" / "library"),
        model_catalog_path=str(tmp_path / "models.catalog.json"),
        session_retention_messages=5,
        poll_interval_ms=0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(config: BridgeConfig, clock: FakeClock) -> Iterator[SessionStore]:
    session_store = SessionStore(config, clock=clock)
    yield session_store
    session_store.close()
