"""
ascent.engine.guard — Transition Side-Effect Guard
===================================================

Short-lived ``(project_id, target_level) → timestamp`` memo that lets a
transition's notifications fire at most once per window, even when
several event paths observe the same satisfied gate at nearly the same
time.

The memo only suppresses *side effects*.  The level write is protected
separately by compare-and-set in the metrics store, so losing this memo
(e.g. a restart) can at worst repeat a notification, never a level.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from threading import Lock

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 10_000


class TransitionGuard:
    """Thread-safe TTL memo keyed by ``(project_id, target_level)``.

    Parameters
    ----------
    window_seconds:
        How long a fired key suppresses repeats.
    max_entries:
        Upper bound on remembered keys; the oldest are evicted first.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_seconds = float(window_seconds)
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._lock = Lock()
        # Insertion order == firing order, so the front is always the oldest
        self._fired: OrderedDict[tuple[str, int | str], float] = OrderedDict()

    def should_fire(self, project_id: str, target_level: int | str) -> bool:
        """Return ``True`` at most once per window for this pair.

        *target_level* is the level reached, or ``"complete"`` for the
        terminal step.
        """
        now = self._clock()
        key = (project_id, target_level)
        with self._lock:
            self._prune(now)
            fired_at = self._fired.get(key)
            if fired_at is not None and now - fired_at < self.window_seconds:
                logger.debug(
                    "Suppressed duplicate side effects for %s → level %s",
                    project_id, target_level,
                )
                return False

            self._fired[key] = now
            self._fired.move_to_end(key)
            while len(self._fired) > self._max_entries:
                self._fired.popitem(last=False)
            return True

    def forget(self, project_id: str, target_level: int | str) -> None:
        with self._lock:
            self._fired.pop((project_id, target_level), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._fired)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._fired:
            key, fired_at = next(iter(self._fired.items()))
            if fired_at > cutoff:
                break
            self._fired.popitem(last=False)
