"""
ascent.database.seed — Default Settings Seeder
===============================================

Baseline tuning values for the activity classifier and the level gates.
Idempotent: only inserts keys that don't already exist, so operator
edits are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine

from ascent.database.engine import get_session
from ascent.database.models import Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    # Classifier
    "classifier.min_message_length": (
        5, "classifier", "Messages shorter than this (after trimming) are ignored",
    ),
    "classifier.min_words": (
        3, "classifier", "Messages with fewer words than this are ignored",
    ),
    "classifier.similarity_threshold": (
        0.8, "classifier", "Bigram similarity above which a message counts as a near-duplicate",
    ),
    "classifier.similarity_penalty": (
        0.3, "classifier", "Quality multiplier applied to near-duplicate messages",
    ),
    "classifier.similarity_history": (
        5, "classifier", "How many of the author's recent messages are compared",
    ),
    "classifier.frequency_cap_per_minute": (
        5, "classifier", "Messages per minute before the frequency penalty applies",
    ),
    "classifier.frequency_penalty": (
        0.5, "classifier", "Quality multiplier while an author is over the frequency cap",
    ),
    "classifier.frequency_recovery": (
        0.1, "classifier", "Per-message recovery of the frequency multiplier",
    ),
    "classifier.pdf_confidence_threshold": (
        30, "classifier", "Minimum confidence for an attachment to count as a paper",
    ),
    # Gates
    "gates.level2.min_members": (4, "gates", "Members required for level 2 → 3"),
    "gates.level3.min_members": (5, "gates", "Members required for level 3 → 4"),
    "gates.level3.min_papers": (5, "gates", "Papers shared required for level 3 → 4"),
    "gates.level3.min_messages": (50, "gates", "Messages required for level 3 → 4"),
    "gates.level4.min_intro_posts": (3, "gates", "Verified intro posts required for level 4 → 5"),
    "gates.level5.min_verified_members": (
        10, "gates", "Verified scientific members required for level 5 → 6",
    ),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> int:
    """Insert default settings that don't yet exist.  Returns rows inserted."""
    inserted = 0
    with get_session(engine) as session:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default settings.", inserted)
    return inserted
