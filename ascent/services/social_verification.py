"""
ascent.services.social_verification — Intro Post URL Checks
============================================================

An intro post counts only when its URL points at a status posted by the
project's connected handle.  Verification is URL-pattern based; nothing
here calls the social platform.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)

POST_URL = re.compile(
    r"^https?://(?:www\.|mobile\.)?(?:twitter|x)\.com/([^/?#\s]+)/status(?:es)?/(\d+)",
    re.IGNORECASE,
)
POST_ID = re.compile(r"^\d{10,25}$")

# Status ids are snowflakes: the top bits hold ms since this epoch
_SNOWFLAKE_EPOCH_MS = 1288834974657
RECENT_WINDOW = timedelta(days=7)


@dataclass(frozen=True, slots=True)
class PostCheck:
    url: str
    ok: bool
    post_id: str | None = None
    reason: str = ""


def _normalize_handle(handle: str) -> str:
    return (handle or "").strip().lstrip("@").lower()


def post_timestamp(post_id: str) -> datetime:
    """Decode the creation time embedded in a snowflake status id."""
    ms = (int(post_id) >> 22) + _SNOWFLAKE_EPOCH_MS
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


def verify_post_url(url: str, handle: str) -> PostCheck:
    """Check that *url* is a status posted by *handle*."""
    url = (url or "").strip()
    match = POST_URL.match(url)
    if match is None:
        return PostCheck(url, False, reason="not a status URL")

    author, post_id = match.group(1), match.group(2)
    if _normalize_handle(author) != _normalize_handle(handle):
        return PostCheck(url, False, post_id, reason=f"posted by @{author}, not @{_normalize_handle(handle)}")
    if not POST_ID.match(post_id):
        return PostCheck(url, False, post_id, reason="malformed status id")
    return PostCheck(url, True, post_id)


def verify_posts(
    urls: tuple[str, ...] | list[str],
    handle: str | None,
    *,
    now: datetime | None = None,
) -> tuple[list[tuple[str, str]], list[PostCheck]]:
    """Split *urls* into accepted ``(post_id, url)`` pairs and rejections.

    Repeated ids within one submission are accepted once.  Posts older
    than a week are still accepted, with a warning logged.
    """
    if not handle:
        return [], [PostCheck(u, False, reason="no connected social account") for u in urls]

    now = now or datetime.now(UTC)
    accepted: list[tuple[str, str]] = []
    rejected: list[PostCheck] = []
    seen: set[str] = set()
    for url in urls:
        check = verify_post_url(url, handle)
        if not check.ok:
            rejected.append(check)
            continue
        if check.post_id in seen:
            continue
        seen.add(check.post_id)
        if now - post_timestamp(check.post_id) > RECENT_WINDOW:
            logger.warning("Intro post %s is more than a week old", check.post_id)
        accepted.append((check.post_id, check.url))
    return accepted, rejected
