"""
ascent.services.journal_relay — LevelChanged Journal Relay
===========================================================

A transition is won in whichever process handled the triggering event:
the bot for chat activity, the API for everything else.  Both processes
write the win to the ``level_changes`` journal in the same transaction as
the level itself, so the journal is the one place every transition can
be seen from.

:class:`LevelChangeRelay` follows the journal with a cursor (the highest
row id already relayed) and hands each new row to its outputs:

* the live-session hub, as a ``LevelChanged`` message (API process),
* notification sinks, e.g. the bot's community announcement.

The relay starts at the current end of the journal; transitions written
while no relay was running are not replayed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ascent.database.engine import run_db
from ascent.errors import MetricsStoreUnavailable
from ascent.services import metrics_store
from ascent.services.notifications import (
    NotificationSink,
    call_isolated,
    level_changed_message,
    render,
    request_for,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ascent.config import AscentConfig
    from ascent.engine.cache import ConfigCache
    from ascent.engine.events import Transition
    from ascent.services.live_sessions import LiveSessionHub

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 2.0
BATCH_SIZE = 100


class LevelChangeRelay:
    """Deliver journalled transitions to live sessions and sinks.

    Parameters
    ----------
    engine:
        SQLAlchemy engine holding the ``level_changes`` journal.
    live_hub:
        Hub that receives a ``LevelChanged`` message per transition.
    config / cache:
        Portal link and gate overrides used when rendering the message.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        live_hub: LiveSessionHub | None = None,
        config: AscentConfig | None = None,
        cache: ConfigCache | None = None,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.engine = engine
        self.live_hub = live_hub
        self.config = config
        self._cache = cache
        self._batch_size = batch_size
        self._sinks: list[NotificationSink] = []
        self.cursor = 0

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def skip_to_latest(self) -> int:
        """Move the cursor past every transition already journalled."""
        self.cursor = metrics_store.latest_level_change_id(self.engine)
        logger.info("Level-change relay starting after journal row %d", self.cursor)
        return self.cursor

    def poll(self) -> list[Transition]:
        """Relay every journal row above the cursor.  Synchronous.

        Returns the transitions relayed, oldest first.  Output failures are
        logged and skipped; a store failure leaves the cursor where it was.
        """
        relayed: list[Transition] = []
        while True:
            rows = metrics_store.level_changes_since(self.engine, self.cursor, self._batch_size)
            for row_id, transition in rows:
                self._deliver(transition)
                self.cursor = row_id
                relayed.append(transition)
            if len(rows) < self._batch_size:
                return relayed

    async def run(self, interval: float = POLL_INTERVAL_SECONDS) -> None:
        """Poll forever on a worker thread; cancel the task to stop."""
        while True:
            try:
                await run_db(self.poll)
            except MetricsStoreUnavailable as exc:
                logger.warning("Level-change relay poll failed: %s", exc)
            await asyncio.sleep(interval)

    # -------------------------------------------------------------------
    def _deliver(self, transition: Transition) -> None:
        request = request_for(transition)
        contact = call_isolated("contact lookup", metrics_store.get_contact, self.engine, request.project_id)
        message = render(
            request,
            project_name=contact.name if contact else None,
            portal_url=self.config.portal_url if self.config else None,
            cache=self._cache,
        )
        logger.debug("Relaying %s for %s", request.template_id, request.project_id)
        if self.live_hub is not None:
            call_isolated(
                "live session", self.live_hub.publish,
                request.project_id, level_changed_message(transition, request, message),
            )
        for sink in self._sinks:
            call_isolated(f"sink {getattr(sink, '__name__', sink)!r}", sink, request, message)
