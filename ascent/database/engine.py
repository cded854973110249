"""
ascent.database.engine — Database Connection & Async Helper
============================================================

SQLAlchemy + psycopg2 is synchronous, while both inbound boundaries (the
chat bot and the API's websocket/event handlers) run on ``asyncio`` event
loops.  Every store call from an async context goes through
:func:`run_db`, which ships the synchronous function to a worker thread
via :func:`asyncio.to_thread`.

Usage::

    from ascent.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    result = await run_db(normalizer.handle, event)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session

from ascent.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Several event sources write concurrently for the same project, so the
    pool allows a burst of overflow connections:

    * ``pool_size=5`` / ``max_overflow=10``
    * ``pool_timeout=10`` — fail fast; the caller's transport retries.
    * ``pool_recycle=3600``

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = enable_sqlite_transactions(
            create_engine(url, connect_args={"check_same_thread": False})
        )
    else:
        engine = create_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.host or engine.url.database)
    return engine


def enable_sqlite_transactions(engine: Engine) -> Engine:
    """Make pysqlite honour SAVEPOINT and serialise writers.

    pysqlite defers BEGIN until the first DML statement, which breaks
    ``Session.begin_nested()``.  Driver-level transaction handling is
    turned off and every transaction starts with ``BEGIN IMMEDIATE``, so
    concurrent writers queue on the busy timeout instead of deadlocking
    on a lock upgrade.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed default tuning settings.

    Safe to call on every startup: ``create_all`` only creates missing
    tables and the seeder only inserts missing keys.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from ascent.database.seed import seed_default_settings

    seed_default_settings(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every store call from a listener or async route goes through here so
    the event loop is never blocked::

        result = await run_db(normalizer.handle, event)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
