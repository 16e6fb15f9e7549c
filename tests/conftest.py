"""
Shared pytest fixtures for wallpapy tests.

Provides a throwaway store per test, a cheap argon2 hasher so login tests stay
fast, and a scripted summarizer so no test touches the network.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from argon2 import PasswordHasher

from wallpapy.auth import CredentialStore
from wallpapy.state import StateStore
from wallpapy.store import KVStore
from wallpapy.summarize import HistorySummary


class MockSummarizer:
    """Records every block it is asked to summarize and returns a fixed result."""

    def __init__(self, result: HistorySummary | None = None, error: Exception | None = None):
        self.result = result or HistorySummary(
            loved=["misty mountains"], liked=[], disliked=["neon cities"], others=["calm seas"],
        )
        self.error = error
        self.blocks: list[str] = []

    async def summarize(self, block: str) -> HistorySummary:
        self.blocks.append(block)
        if self.error is not None:
            raise self.error
        return self.result


def fast_hasher() -> PasswordHasher:
    """Minimum-cost argon2 parameters."""
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


def at(minutes: int) -> datetime:
    """A fixed timestamp ``minutes`` after a reference point."""
    return datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)


@pytest.fixture
def store(tmp_path: Path):
    """A fresh KVStore, closed after the test."""
    kv = KVStore(tmp_path / "wallpapy.db")
    yield kv
    kv.close()


@pytest.fixture
def credentials(store):
    return CredentialStore(store, hasher=fast_hasher())


@pytest.fixture
def state_store(store):
    return StateStore(store)


@pytest.fixture
def mock_summarizer():
    return MockSummarizer()


@pytest.fixture(autouse=True)
def isolated_data_path(tmp_path, monkeypatch):
    """Keep error logs and default data paths inside the test's tmp dir."""
    monkeypatch.setenv("WALLPAPY_DATA_PATH", str(tmp_path / "data"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("WALLPAPY_OPENAI_API_KEY", raising=False)
