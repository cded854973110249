"""
tests/test_notifications.py — Notification Rendering, Dispatch & Email
=======================================================================
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from ascent.engine.events import Transition
from ascent.engine.gates import MetricsSnapshot
from ascent.errors import MetricsStoreUnavailable
from ascent.services import metrics_store
from ascent.services.email_service import EmailDeliveryError, MailgunEmailSender
from ascent.services.notifications import (
    NotificationDispatcher,
    NotificationRequested,
    next_goals,
    render,
    render_operator_alert,
)


class RecordingSender:
    """Stands in for MailgunEmailSender."""

    def __init__(self, fail_for: str | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for = fail_for

    def send(self, to, subject, text, html=None):
        if to == self.fail_for:
            raise EmailDeliveryError(f"rejected {to}")
        self.sent.append((to, subject))
        return True


@pytest.fixture
def project(db_engine) -> str:
    metrics_store.get_or_create_project(db_engine, "p1", name="Helix DAO", contact_email="lead@helix.org")
    return "p1"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------
class TestRender:
    def test_level_up_subject_and_goals(self):
        msg = render(NotificationRequested("p1", "level_up_2", 2), project_name="Helix DAO")
        assert msg.subject == "🚀 Helix DAO reached Level 2: Community Setup"
        assert "Your next goals:" in msg.text
        assert "- Community members: at least 4" in msg.text
        assert msg.chat.startswith(msg.subject)
        assert "Next: " in msg.chat

    def test_completion(self):
        msg = render(NotificationRequested("p1", "journey_complete", 7), project_name="Helix DAO")
        assert msg.subject == "🎉 Helix DAO completed the journey"
        assert "Your next goals:" not in msg.text

    def test_defaults_and_portal_link(self):
        msg = render(NotificationRequested("p1", "level_up_3", 3), portal_url="https://portal.example.org")
        assert "your project" in msg.subject
        assert "Continue at https://portal.example.org" in msg.text
        assert 'href="https://portal.example.org"' in msg.html

    def test_html_is_escaped(self):
        msg = render(NotificationRequested("p1", "level_up_2", 2), project_name="<b>Evil</b>")
        assert "<b>Evil</b>" not in msg.html
        assert "&lt;b&gt;Evil&lt;/b&gt;" in msg.html

    def test_next_goals_follow_cache_overrides(self, cache):
        cache.set_local("gates.level3.min_papers", 10)
        assert "Scientific papers shared: at least 10" in next_goals(3, cache)

    def test_operator_alert(self):
        snap = MetricsSnapshot(level=4, member_count=12, papers_shared=6, messages_count=80, bot_confirmed=True)
        alert = render_operator_alert("p1", "Helix DAO", snap)
        assert alert.subject == "🎉 New sandbox project: Helix DAO"
        assert "- Community members: 12" in alert.text
        assert "- Bot confirmed: yes" in alert.text


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class TestDispatch:
    def test_emails_the_project_contact(self, db_engine, project, config):
        sender = RecordingSender()
        dispatcher = NotificationDispatcher(db_engine, email_sender=sender, config=config)

        request = dispatcher.dispatch(Transition("p1", 1, 2))

        assert request == NotificationRequested("p1", "level_up_2", 2)
        assert sender.sent == [("lead@helix.org", "🚀 Helix DAO reached Level 2: Community Setup")]

    def test_completion_uses_completion_template(self, db_engine, project, config):
        sender = RecordingSender()
        dispatcher = NotificationDispatcher(db_engine, email_sender=sender, config=config)
        request = dispatcher.dispatch(Transition("p1", 7, 7, completed=True))
        assert request.template_id == "journey_complete"
        assert request.level == 7
        assert sender.sent == [("lead@helix.org", "🎉 Helix DAO completed the journey")]

    def test_contact_email_failure_does_not_block_operator_alert(self, db_engine, project, config):
        sender = RecordingSender(fail_for="lead@helix.org")
        dispatcher = NotificationDispatcher(db_engine, email_sender=sender, config=config)
        dispatcher.dispatch(Transition("p1", 3, 4))
        assert [to for to, _ in sender.sent] == ["ops@example.org"]

    def test_failed_contact_lookup_is_isolated(self, db_engine, project, config, monkeypatch):
        def unavailable(engine, project_id):
            raise MetricsStoreUnavailable("get_contact failed")

        monkeypatch.setattr(metrics_store, "get_contact", unavailable)
        sender = RecordingSender()
        request = NotificationDispatcher(db_engine, email_sender=sender, config=config).dispatch(
            Transition("p1", 1, 2),
        )
        assert request.template_id == "level_up_2"
        assert sender.sent == []

    def test_missing_contact_email_skips_email(self, db_engine, config):
        metrics_store.get_or_create_project(db_engine, "p2")
        sender = RecordingSender()
        NotificationDispatcher(db_engine, email_sender=sender, config=config).dispatch(Transition("p2", 1, 2))
        assert sender.sent == []

    def test_operator_alert_at_configured_level(self, db_engine, project, config):
        sender = RecordingSender()
        dispatcher = NotificationDispatcher(db_engine, email_sender=sender, config=config)
        dispatcher.dispatch(Transition("p1", 3, 4))
        recipients = [to for to, _ in sender.sent]
        assert recipients == ["lead@helix.org", "ops@example.org"]
        assert sender.sent[1][1] == "🎉 New sandbox project: Helix DAO"

    def test_no_operator_alert_at_other_levels(self, db_engine, project, config):
        sender = RecordingSender()
        NotificationDispatcher(db_engine, email_sender=sender, config=config).dispatch(Transition("p1", 4, 5))
        assert [to for to, _ in sender.sent] == ["lead@helix.org"]


# ---------------------------------------------------------------------------
# Mailgun sender
# ---------------------------------------------------------------------------
class TestMailgunEmailSender:
    def _sender(self, handler, api_key="key-123"):
        return MailgunEmailSender(
            "mg.example.org", "ascent@mg.example.org",
            api_key=api_key, transport=httpx.MockTransport(handler),
        )

    def test_posts_form_to_messages_endpoint(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["authorization"]
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"id": "<msg@mg>", "message": "Queued"})

        sender = self._sender(handler)
        assert sender.send("lead@helix.org", "Hi", "plain", "<p>html</p>") is True
        assert captured["url"] == "https://api.mailgun.net/v3/mg.example.org/messages"
        assert captured["auth"].startswith("Basic ")
        assert captured["form"]["to"] == ["lead@helix.org"]
        assert captured["form"]["from"] == ["ascent@mg.example.org"]
        assert captured["form"]["html"] == ["<p>html</p>"]
        sender.close()

    def test_rejection_raises(self):
        sender = self._sender(lambda request: httpx.Response(401, text="Forbidden"))
        with pytest.raises(EmailDeliveryError):
            sender.send("lead@helix.org", "Hi", "plain")

    def test_disabled_without_key(self):
        calls = []
        sender = self._sender(lambda request: calls.append(request) or httpx.Response(200), api_key="")
        assert not sender.enabled
        assert sender.send("lead@helix.org", "Hi", "plain") is False
        assert calls == []

    def test_default_from_address(self):
        sender = MailgunEmailSender("mg.example.org", api_key="k")
        assert sender.from_email == "postmaster@mg.example.org"
        sender.close()
