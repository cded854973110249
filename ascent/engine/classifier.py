"""
ascent.engine.classifier — Activity Classifier
===============================================

Turns one community message into a :class:`Classification`:

* ``paper``   — shares a scientific document; counts toward
  ``papers_shared`` and is excluded from message counting and quality.
* ``message`` — a meaningful contribution; counts toward
  ``messages_count`` and carries a ``quality_delta`` for the running
  quality score.
* ``ignored`` — greetings, acknowledgements, emoji-only or very short
  messages; touches no counter.

The classifier never reads or writes the database.  Replay detection
happens when the metrics store claims the message id inside the counting
transaction, so a replay is classified again but counted only once.  The
author history behind the anti-gaming penalties is only read here;
:meth:`ActivityClassifier.record` updates it after the claim succeeds.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ascent.constants import word_count
from ascent.engine import anti_gaming
from ascent.engine.anti_gaming import AuthorActivityTracker, get_default_tracker
from ascent.engine.events import Classification, Counts, MessageArrived
from ascent.engine.papers import (
    ARXIV_FILENAME,
    analyze_scientific_pdf,
    detect_paper_text,
    extract_paper_metadata,
    has_pdf_link,
)

if TYPE_CHECKING:
    from ascent.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults (single source of truth; overridable via ``classifier.*`` settings)
# ---------------------------------------------------------------------------
_MIN_MESSAGE_LENGTH = 5
_MIN_WORDS = 3
_PDF_CONFIDENCE_THRESHOLD = 30
_MAX_QUALITY = 100.0
_LENGTH_DIVISOR = 5.0

LOW_VALUE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"^(hi|hey|hello|sup|yo|gm|good morning|good evening|good night|gn|bye|cya|"
        r"see ya|lol|ok|okay|k|sure|yes|no|maybe|thanks|thx|ty|np|yw|welcome)$",
        re.IGNORECASE,
    ),
    re.compile(r"^(what'?s up|how are you|how's it going)$", re.IGNORECASE),
    re.compile(
        r"^(nice|cool|great|awesome|amazing|good|bad|sad|happy|lmao|lmfao|rofl|oof|rip|f)$",
        re.IGNORECASE,
    ),
    re.compile(r"^((?:ha){1,5})$", re.IGNORECASE),
    # emoji-only, including chat-platform custom emoji tags
    re.compile(
        r"^(?:[\U0001F000-\U0001FAFF\u2600-\u27BF\u2B00-\u2BFF\uFE0F\u200D\s]"
        r"|<a?:\w+:\d+>)+$"
    ),
)


def is_low_value(text: str, *, min_length: int = _MIN_MESSAGE_LENGTH, min_words: int = _MIN_WORDS) -> bool:
    """True for messages that should not count as a contribution."""
    normalized = (text or "").strip().lower()
    if len(normalized) < min_length:
        return True
    for pattern in LOW_VALUE_PATTERNS:
        if pattern.match(normalized):
            return True
    return word_count(normalized) < min_words


def base_quality(text: str) -> float:
    """Length-based quality score, capped at 100."""
    return min(_MAX_QUALITY, len(text or "") / _LENGTH_DIVISOR)


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------
class ActivityClassifier:
    """Classifies community messages.

    Parameters
    ----------
    cache:
        Optional :class:`ConfigCache` for threshold overrides.
    tracker:
        Per-author similarity/frequency state; defaults to the
        process-wide tracker.
    """

    def __init__(
        self,
        cache: ConfigCache | None = None,
        tracker: AuthorActivityTracker | None = None,
    ) -> None:
        self._cache = cache
        self._tracker = tracker or get_default_tracker()

    def _int(self, key: str, default: int) -> int:
        return self._cache.get_int(key, default) if self._cache else default

    def _float(self, key: str, default: float) -> float:
        return self._cache.get_float(key, default) if self._cache else default

    # -------------------------------------------------------------------
    def classify(self, message: MessageArrived) -> Classification:
        paper_reason = self._detect_paper(message)
        if paper_reason is not None:
            metadata = extract_paper_metadata(message.text)
            if metadata is not None:
                logger.debug(
                    "Paper metadata for %s: doi=%s year=%s title=%r (confidence %d)",
                    message.message_id, metadata.doi, metadata.year,
                    metadata.title, metadata.confidence,
                )
            return Classification(Counts.PAPER, 0.0, paper_reason)

        min_length = self._int("classifier.min_message_length", _MIN_MESSAGE_LENGTH)
        min_words = self._int("classifier.min_words", _MIN_WORDS)
        if is_low_value(message.text, min_length=min_length, min_words=min_words):
            return Classification(Counts.IGNORED, 0.0, "low-value message")

        penalties = self._tracker.evaluate(
            message.author_id,
            message.text,
            similarity_threshold=self._float(
                "classifier.similarity_threshold", anti_gaming.SIMILARITY_THRESHOLD),
            similarity_penalty=self._float(
                "classifier.similarity_penalty", anti_gaming.SIMILARITY_PENALTY),
            **self._rate_settings(),
        )
        delta = base_quality(message.text) * penalties.factor

        reason = "message"
        if penalties.similarity < 1.0:
            reason += "; near-duplicate"
        if penalties.frequency < 1.0:
            reason += "; posting-rate penalty"
        return Classification(Counts.MESSAGE, delta, reason)

    def record(self, message: MessageArrived) -> None:
        """Feed a message that was counted into the author's history.

        Call only after the store has claimed the message id.
        """
        self._tracker.record(message.author_id, message.text, **self._rate_settings())

    def _rate_settings(self) -> dict[str, float]:
        return {
            "history": self._int(
                "classifier.similarity_history", anti_gaming.SIMILARITY_HISTORY),
            "frequency_cap": self._int(
                "classifier.frequency_cap_per_minute", anti_gaming.FREQUENCY_CAP),
            "frequency_penalty": self._float(
                "classifier.frequency_penalty", anti_gaming.FREQUENCY_PENALTY),
            "frequency_recovery": self._float(
                "classifier.frequency_recovery", anti_gaming.FREQUENCY_RECOVERY),
        }

    def _detect_paper(self, message: MessageArrived) -> str | None:
        """Return why *message* counts as a paper, or ``None``.  First match wins."""
        threshold = self._int("classifier.pdf_confidence_threshold", _PDF_CONFIDENCE_THRESHOLD)
        for attachment in message.attachments:
            name = (attachment.name or "").strip()
            if ARXIV_FILENAME.match(name):
                return f"arXiv attachment {name}"
            analysis = analyze_scientific_pdf(name, attachment.size, threshold=threshold)
            if analysis.is_paper:
                return f"scientific PDF {name} (confidence {analysis.confidence})"

        if has_pdf_link(message.text):
            return "document link"

        signal = detect_paper_text(message.text)
        if signal is not None:
            return f"text: {signal}"
        return None
