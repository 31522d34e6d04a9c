"""Shared fixtures for gradebot tests.

Helper functions (make_quote, make_source, etc.) are in tests/helpers.py.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from gradebot.config import Settings
from gradebot.engine.service import GradeEngine
from gradebot.engine.sources import StaticEventSource
from gradebot.store.grade_store import InMemoryGradeStore
from tests.helpers import FakeClock, make_source


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Temporary database path; each test gets an isolated SQLite file."""
    return tmp_path / "grade_cache.db"


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture()
def source() -> StaticEventSource:
    return make_source()


@pytest.fixture()
def engine(source: StaticEventSource, config: Settings, clock: FakeClock) -> GradeEngine:
    eng = GradeEngine(source, store=InMemoryGradeStore(), config=config, clock=clock)
    yield eng
    eng.close()
