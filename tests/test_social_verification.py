"""
tests/test_social_verification.py — Intro Post URL Checks
==========================================================
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest

from ascent.services.social_verification import post_timestamp, verify_post_url, verify_posts

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _status_id(when: datetime) -> str:
    ms = int(when.timestamp() * 1000) - 1288834974657
    return str(ms << 22)


RECENT = _status_id(NOW - timedelta(days=1))


class TestVerifyPostUrl:
    @pytest.mark.parametrize("url", [
        f"https://x.com/HelixDAO/status/{RECENT}",
        f"https://twitter.com/helixdao/status/{RECENT}?s=20",
        f"http://mobile.twitter.com/helixdao/statuses/{RECENT}",
        f"https://www.x.com/helixdao/status/{RECENT}/photo/1",
    ])
    def test_accepts_status_urls_by_handle(self, url):
        check = verify_post_url(url, "@HelixDAO")
        assert check.ok
        assert check.post_id == RECENT

    def test_rejects_other_author(self):
        check = verify_post_url(f"https://x.com/someoneelse/status/{RECENT}", "helixdao")
        assert not check.ok
        assert check.reason == "posted by @someoneelse, not @helixdao"

    @pytest.mark.parametrize("url", [
        "https://x.com/helixdao",
        "https://example.org/helixdao/status/123456789012",
        "not a url",
        "",
    ])
    def test_rejects_non_status_urls(self, url):
        check = verify_post_url(url, "helixdao")
        assert not check.ok
        assert check.reason == "not a status URL"

    def test_rejects_short_id(self):
        check = verify_post_url("https://x.com/helixdao/status/12345", "helixdao")
        assert check.reason == "malformed status id"


class TestPostTimestamp:
    def test_decodes_snowflake(self):
        when = NOW - timedelta(days=3)
        assert abs(post_timestamp(_status_id(when)) - when) < timedelta(milliseconds=1)


class TestVerifyPosts:
    def test_splits_accepted_and_rejected(self):
        urls = [
            f"https://x.com/helixdao/status/{RECENT}",
            f"https://x.com/other/status/{RECENT}",
        ]
        accepted, rejected = verify_posts(urls, "helixdao", now=NOW)
        assert accepted == [(RECENT, urls[0])]
        assert [r.url for r in rejected] == [urls[1]]

    def test_duplicate_ids_accepted_once(self):
        urls = [
            f"https://x.com/helixdao/status/{RECENT}",
            f"https://twitter.com/helixdao/status/{RECENT}",
        ]
        accepted, rejected = verify_posts(urls, "helixdao", now=NOW)
        assert len(accepted) == 1
        assert rejected == []

    def test_no_handle_rejects_everything(self):
        accepted, rejected = verify_posts([f"https://x.com/helixdao/status/{RECENT}"], None, now=NOW)
        assert accepted == []
        assert rejected[0].reason == "no connected social account"

    def test_old_post_accepted_with_warning(self, caplog):
        old = _status_id(NOW - timedelta(days=30))
        with caplog.at_level(logging.WARNING, logger="ascent.services.social_verification"):
            accepted, _ = verify_posts([f"https://x.com/helixdao/status/{old}"], "helixdao", now=NOW)
        assert accepted == [(old, f"https://x.com/helixdao/status/{old}")]
        assert "more than a week old" in caplog.text
