"""
tests/test_cache.py — ConfigCache Unit Tests
==============================================

Loading from the ``settings`` table, typed accessors and reload
behaviour when the database is unreachable.
"""

from __future__ import annotations

import json
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from ascent.database.engine import get_session
from ascent.database.models import Setting
from ascent.database.seed import DEFAULT_SETTINGS, seed_default_settings
from ascent.engine.cache import ConfigCache


class TestLoading:
    def test_seeded_defaults_are_loaded(self, db_engine):
        assert seed_default_settings(db_engine) == len(DEFAULT_SETTINGS)
        cache = ConfigCache(db_engine)
        cache.load_all()
        assert cache.get_int("gates.level3.min_messages") == 50
        assert cache.get_float("classifier.similarity_threshold") == 0.8

    def test_seeding_is_idempotent(self, db_engine):
        seed_default_settings(db_engine)
        assert seed_default_settings(db_engine) == 0

    def test_reload_picks_up_changes(self, db_engine):
        seed_default_settings(db_engine)
        cache = ConfigCache(db_engine)
        cache.load_all()
        with get_session(db_engine) as session:
            session.get(Setting, "gates.level3.min_papers").value_json = json.dumps(8)
        cache.reload()
        assert cache.get_int("gates.level3.min_papers") == 8

    def test_raw_string_when_not_json(self, db_engine):
        with get_session(db_engine) as session:
            session.add(Setting(key="bot.greeting", value_json="hello there"))
        cache = ConfigCache(db_engine)
        cache.load_all()
        assert cache.get_setting("bot.greeting") == "hello there"

    def test_without_engine_stays_empty(self):
        cache = ConfigCache()
        cache.load_all()
        assert cache.get_setting("anything", "fallback") == "fallback"


class TestReloadFailure:
    def test_keeps_previous_values(self, db_engine):
        seed_default_settings(db_engine)
        cache = ConfigCache(db_engine)
        cache.load_all()
        error = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch.object(cache, "_load_settings", side_effect=error):
            cache.reload()
        assert cache.get_int("gates.level2.min_members") == 4


class TestTypedAccessors:
    def test_defaults_when_missing(self, cache):
        assert cache.get_int("missing", 7) == 7
        assert cache.get_float("missing", 0.5) == 0.5
        assert cache.get_bool("missing", True) is True

    def test_invalid_values_fall_back(self, cache):
        cache.set_local("n", "not a number")
        assert cache.get_int("n", 3) == 3
        assert cache.get_float("n", 1.5) == 1.5

    def test_coercion(self, cache):
        cache.set_local("n", "12")
        cache.set_local("flag", 1)
        assert cache.get_int("n") == 12
        assert cache.get_float("n") == 12.0
        assert cache.get_bool("flag") is True
