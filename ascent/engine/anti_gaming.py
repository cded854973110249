"""
ascent.engine.anti_gaming — Per-author similarity & frequency tracker
======================================================================

Two quality penalties keep an author from farming the community quality
score: repeating near-identical text (bigram Dice similarity against the
author's last few messages) and posting faster than a per-minute cap.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults (overridable through ConfigCache settings)
# ---------------------------------------------------------------------------
SIMILARITY_THRESHOLD = 0.8
SIMILARITY_PENALTY = 0.3
SIMILARITY_HISTORY = 5
FREQUENCY_CAP = 5
FREQUENCY_WINDOW_SECONDS = 60.0
FREQUENCY_PENALTY = 0.5
FREQUENCY_RECOVERY = 0.1

_EXPIRY_SECONDS = 86400.0
_CLEANUP_INTERVAL = 3600.0


# ---------------------------------------------------------------------------
# String similarity
# ---------------------------------------------------------------------------
def _bigrams(text: str) -> set[str]:
    return {text[i:i + 2] for i in range(len(text) - 1)}


def bigram_similarity(a: str, b: str) -> float:
    """Dice coefficient over character bigrams, 0.0 – 1.0.

    Strings that are both shorter than 10 characters are compared exactly
    (case-insensitive).
    """
    if len(a) < 10 and len(b) < 10:
        return 1.0 if a.lower() == b.lower() else 0.0

    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if s1 == s2:
        return 1.0
    if len(s1) < 2 or len(s2) < 2:
        return 0.0

    b1 = _bigrams(s1)
    b2 = _bigrams(s2)
    return (2 * len(b1 & b2)) / (len(b1) + len(b2))


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Penalties:
    similarity: float = 1.0
    frequency: float = 1.0

    @property
    def factor(self) -> float:
        return self.similarity * self.frequency


@dataclass(slots=True)
class _AuthorState:
    recent_texts: deque
    timestamps: list[float]
    frequency_factor: float = 1.0
    last_seen: float = 0.0


class AuthorActivityTracker:
    """Tracks each author's recent messages and posting rate.

    Thread-safe.  Authors unseen for 24 hours are dropped.  *clock* is
    injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = Lock()
        self._clock = clock
        self._authors: dict[str, _AuthorState] = defaultdict(
            lambda: _AuthorState(recent_texts=deque(maxlen=SIMILARITY_HISTORY), timestamps=[])
        )
        self._last_cleanup = clock()

    def evaluate(
        self,
        author_id: str,
        text: str,
        *,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        similarity_penalty: float = SIMILARITY_PENALTY,
        history: int = SIMILARITY_HISTORY,
        frequency_cap: int = FREQUENCY_CAP,
        frequency_penalty: float = FREQUENCY_PENALTY,
        frequency_recovery: float = FREQUENCY_RECOVERY,
    ) -> Penalties:
        """Penalties *text* would receive if *author_id* posted it now.

        Read-only: call :meth:`record` once the message has actually been
        counted.
        """
        now = self._clock()
        with self._lock:
            state = self._authors.get(author_id)
            if state is None:
                return Penalties()

            similarity = 1.0
            for previous in list(state.recent_texts)[-history:]:
                if bigram_similarity(previous, text) > similarity_threshold:
                    similarity = similarity_penalty
                    break

            frequency = self._next_frequency(
                state, now, frequency_cap, frequency_penalty, frequency_recovery,
            )
            return Penalties(similarity=similarity, frequency=frequency)

    def record(
        self,
        author_id: str,
        text: str,
        *,
        history: int = SIMILARITY_HISTORY,
        frequency_cap: int = FREQUENCY_CAP,
        frequency_penalty: float = FREQUENCY_PENALTY,
        frequency_recovery: float = FREQUENCY_RECOVERY,
    ) -> None:
        """Remember a counted message for *author_id*."""
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            state = self._authors[author_id]
            state.last_seen = now

            if state.recent_texts.maxlen != history:
                state.recent_texts = deque(state.recent_texts, maxlen=max(history, 1))
            state.recent_texts.append(text)

            factor = self._next_frequency(
                state, now, frequency_cap, frequency_penalty, frequency_recovery,
            )
            if factor == frequency_penalty and state.frequency_factor > frequency_penalty:
                logger.info("Posting-rate penalty applied to author %s", author_id)
            cutoff = now - FREQUENCY_WINDOW_SECONDS
            state.timestamps = [t for t in state.timestamps if t > cutoff]
            state.timestamps.append(now)
            state.frequency_factor = factor

    @staticmethod
    def _next_frequency(
        state: _AuthorState,
        now: float,
        cap: int,
        penalty: float,
        recovery: float,
    ) -> float:
        """Rate factor after one more message at *now* (sliding per-minute window)."""
        cutoff = now - FREQUENCY_WINDOW_SECONDS
        in_window = sum(1 for t in state.timestamps if t > cutoff) + 1
        if in_window > cap:
            return penalty
        return min(1.0, state.frequency_factor + recovery)

    def forget(self, author_id: str) -> None:
        with self._lock:
            self._authors.pop(author_id, None)

    def _maybe_cleanup(self, now: float) -> None:
        """Periodically drop authors idle for longer than the expiry window."""
        if now - self._last_cleanup < _CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        cutoff = now - _EXPIRY_SECONDS
        stale = [k for k, v in self._authors.items() if v.last_seen <= cutoff]
        for k in stale:
            del self._authors[k]


# Module-level default instance (tests can inject their own)
_default_tracker = AuthorActivityTracker()


def get_default_tracker() -> AuthorActivityTracker:
    """Return the module-level default tracker for production use."""
    return _default_tracker
