"""Shared fixtures: a controllable clock and in-memory / SQLite stores."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from kigen_rank.background import InlineTasks
from kigen_rank.db import Database, MemoryStore
from kigen_rank.engine import StatsEngine


class FakeClock:
    """Callable returning a settable local (naive) datetime."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 10, 9, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, when: datetime) -> None:
        self.now = when


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def engine(store, clock):
    """Engine with synchronous background tasks and no collaborators."""
    eng = StatsEngine(store, clock=clock, tasks=InlineTasks())
    yield eng
    eng.close()
