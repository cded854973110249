"""
ascent.api.deps — FastAPI dependency injection
===============================================

Process-wide singletons (engine, config, settings cache, live hub,
journal relay, normalizer) are built lazily and cached; tests replace
them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import hmac
import logging
import os
from functools import lru_cache
from typing import Annotated

from fastapi import Header, HTTPException, status
from sqlalchemy import Engine

from ascent.config import AscentConfig, load_config
from ascent.database.engine import create_db_engine
from ascent.engine.cache import ConfigCache
from ascent.engine.guard import TransitionGuard
from ascent.services.email_service import MailgunEmailSender
from ascent.services.journal_relay import LevelChangeRelay
from ascent.services.live_sessions import LiveSessionHub
from ascent.services.normalizer import EventNormalizer
from ascent.services.notifications import NotificationDispatcher
from ascent.services.progression import ProgressionEngine

logger = logging.getLogger(__name__)

API_KEY_ENV = "ASCENT_API_KEY"


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AscentConfig:
    return load_config(os.getenv("ASCENT_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_cache() -> ConfigCache:
    cache = ConfigCache(get_engine())
    cache.load_all()
    return cache


@lru_cache(maxsize=1)
def get_live_hub() -> LiveSessionHub:
    return LiveSessionHub()


@lru_cache(maxsize=1)
def get_normalizer() -> EventNormalizer:
    """Wire the full event pipeline: normalizer → progression → dispatch."""
    engine = get_engine()
    cfg = get_config()
    cache = get_cache()
    dispatcher = NotificationDispatcher(
        engine,
        email_sender=MailgunEmailSender(cfg.mail_domain, cfg.from_email),
        config=cfg,
        cache=cache,
    )
    progression = ProgressionEngine(
        engine,
        dispatcher,
        guard=TransitionGuard(cfg.guard_window_seconds),
        cache=cache,
    )
    return EventNormalizer(engine, progression, cache=cache)


@lru_cache(maxsize=1)
def get_relay() -> LevelChangeRelay:
    """Journal relay feeding the live hub, including transitions won by the bot."""
    return LevelChangeRelay(
        get_engine(), live_hub=get_live_hub(), config=get_config(), cache=get_cache(),
    )


def api_key_matches(candidate: str | None) -> bool:
    expected = os.getenv(API_KEY_ENV, "")
    if not expected or not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def require_api_key(x_api_key: Annotated[str | None, Header()] = None) -> None:
    """Reject callers without a valid ``X-API-Key`` header."""
    if not os.getenv(API_KEY_ENV):
        logger.error("%s is not set; refusing authenticated requests", API_KEY_ENV)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "API key not configured")
    if not api_key_matches(x_api_key):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid API key")
