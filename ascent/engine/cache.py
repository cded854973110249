"""
ascent.engine.cache — In-Memory Settings Cache
===============================================

Classifier thresholds and gate overrides are read on every event, so the
``settings`` table is cached in memory and refreshed periodically with
:meth:`ConfigCache.reload` (the bot runs it from a ``tasks.loop``).
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ascent.database.models import Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache of the ``settings`` table.

    Usage::

        cache = ConfigCache(engine)
        cache.load_all()

        min_len = cache.get_int("classifier.min_message_length", 5)
    """

    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every setting from the DB.  Call on startup."""
        self._load_settings()
        logger.info("ConfigCache loaded: %d settings", len(self._settings))

    def reload(self) -> None:
        """Refresh the cache; keeps the previous values if the DB is unreachable."""
        try:
            self._load_settings()
        except SQLAlchemyError:
            logger.exception("ConfigCache reload failed; keeping previous values")

    def _load_settings(self) -> None:
        if self._engine is None:
            return
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    def set_local(self, key: str, value: Any) -> None:
        """Override a value in memory only (tests, one-off overrides)."""
        with self._lock:
            self._settings[key] = value

    # -------------------------------------------------------------------
    # Typed setting accessors (thread-safe)
    # -------------------------------------------------------------------
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        val = self.get_setting(key)
        if val is None:
            return default
        return bool(val)
