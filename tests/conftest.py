"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

os.environ.setdefault("ASCENT_API_KEY", "test-api-key")

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ascent.config import AscentConfig  # noqa: E402
from ascent.database.engine import enable_sqlite_transactions  # noqa: E402
from ascent.database.models import Base  # noqa: E402
from ascent.engine.anti_gaming import AuthorActivityTracker  # noqa: E402
from ascent.engine.cache import ConfigCache  # noqa: E402
from ascent.engine.classifier import ActivityClassifier  # noqa: E402
from ascent.engine.events import Transition  # noqa: E402
from ascent.engine.guard import TransitionGuard  # noqa: E402
from ascent.services.normalizer import EventNormalizer  # noqa: E402
from ascent.services.progression import ProgressionEngine  # noqa: E402

API_KEY = os.environ["ASCENT_API_KEY"]


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Ascent tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in the API routes).
    """
    engine = enable_sqlite_transactions(create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with a real connection pool.

    Concurrent writers get separate connections and queue on the
    database lock, which the race tests rely on.
    """
    engine = enable_sqlite_transactions(create_engine(
        f"sqlite:///{tmp_path / 'ascent.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    ))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def cache() -> ConfigCache:
    """Empty cache: every lookup falls back to the built-in defaults."""
    return ConfigCache()


@pytest.fixture
def config() -> AscentConfig:
    return AscentConfig(
        app_name="Ascent Test",
        bot_prefix="!",
        api_port=8000,
        guard_window_seconds=60,
        operator_alert_level=4,
        mail_domain="mg.example.org",
        from_email="ascent@mg.example.org",
        operator_emails=("ops@example.org",),
        portal_url="https://portal.example.org",
    )


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; records every dispatched transition."""

    def __init__(self) -> None:
        self.dispatched: list[Transition] = []

    def dispatch(self, transition: Transition) -> None:
        self.dispatched.append(transition)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def progression(db_engine, dispatcher, cache) -> ProgressionEngine:
    return ProgressionEngine(db_engine, dispatcher, guard=TransitionGuard(60), cache=cache)


@pytest.fixture
def normalizer(db_engine, progression, cache) -> EventNormalizer:
    classifier = ActivityClassifier(cache, AuthorActivityTracker())
    return EventNormalizer(db_engine, progression, classifier=classifier, cache=cache)
