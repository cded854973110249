"""
ascent.constants — Shared Constants & Helpers
==============================================

Single source of truth for the level ladder bounds, level titles and
notification template ids.  Import from here instead of duplicating in
services, the bot, and the API.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Level ladder
# ---------------------------------------------------------------------------
MIN_LEVEL = 1
MAX_LEVEL = 7

LEVEL_TITLES: dict[int, str] = {
    1: "Science NFTs",
    2: "Community Setup",
    3: "Community Growth",
    4: "Sandbox Access",
    5: "Social Presence",
    6: "Scientific Network",
    7: "Vision Content",
}

ARTIFACT_TYPES: frozenset[str] = frozenset({"idea", "vision"})

LINK_KINDS: frozenset[str] = frozenset({"space", "blogpost", "thread", "video"})


# ---------------------------------------------------------------------------
# Notification template ids
# ---------------------------------------------------------------------------
COMPLETION_TEMPLATE_ID = "journey_complete"
OPERATOR_ALERT_TEMPLATE_ID = "operator_alert"


def template_id_for(level: int, *, completed: bool = False) -> str:
    """Template id for the notification sent when *level* is reached."""
    if completed:
        return COMPLETION_TEMPLATE_ID
    return f"level_up_{level}"


# ---------------------------------------------------------------------------
# Text processing helpers
# ---------------------------------------------------------------------------
_URL_REGEX = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


def extract_urls(text: str) -> list[str]:
    """Return every http(s) URL found in *text*, in order."""
    return _URL_REGEX.findall(text or "")


def word_count(text: str) -> int:
    """Whitespace-delimited word count."""
    return len([w for w in (text or "").split() if w])
