"""
ascent.services.live_sessions — LevelChanged Fan-out
=====================================================

Connected clients (the API websocket) subscribe per project and receive
``LevelChanged`` messages as they happen.  Subscriptions live on the
hub's event loop; :meth:`LiveSessionHub.publish` may be called from any
thread, since the progression engine runs on worker threads.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class LiveSessionHub:
    """Per-project set of asyncio queues, one per connected session."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._lock = Lock()
        self._sessions: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the event loop that owns the session queues."""
        self._loop = loop

    def subscribe(self, project_id: str) -> asyncio.Queue:
        """Register a new session.  Call from the hub's event loop."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        with self._lock:
            self._sessions[project_id].add(queue)
        logger.debug("Live session opened for %s", project_id)
        return queue

    def unsubscribe(self, project_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            sessions = self._sessions.get(project_id)
            if sessions is None:
                return
            sessions.discard(queue)
            if not sessions:
                del self._sessions[project_id]
        logger.debug("Live session closed for %s", project_id)

    def session_count(self, project_id: str) -> int:
        with self._lock:
            return len(self._sessions.get(project_id, ()))

    def publish(self, project_id: str, message: dict[str, Any]) -> int:
        """Queue *message* for every session of *project_id*.

        Thread-safe.  Returns the number of sessions the message was
        handed to; ``0`` when nobody is connected or no loop is bound.
        """
        with self._lock:
            queues = list(self._sessions.get(project_id, ()))
        if not queues:
            return 0
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("Live hub has no running loop; dropping message for %s", project_id)
            return 0
        for queue in queues:
            loop.call_soon_threadsafe(_offer, queue, project_id, message)
        return len(queues)


def _offer(queue: asyncio.Queue, project_id: str, message: dict[str, Any]) -> None:
    try:
        queue.put_nowait(message)
    except asyncio.QueueFull:
        logger.warning("Live session queue full for %s; message dropped", project_id)
