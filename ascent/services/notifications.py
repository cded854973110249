"""
ascent.services.notifications — Level-up Notification Dispatch
===============================================================

Turns an applied :class:`~ascent.engine.events.Transition` into a
:class:`NotificationRequested`, renders it, and emails it:

* the level-up email goes to the project contact,
* operators are alerted when the new level is the configured
  operator-alert level.

The dispatcher runs once, in the process that won the transition.  The
``LevelChanged`` message for live sessions and the community
announcement are built from the same helpers here but are delivered from
the ``level_changes`` journal, so every process sees every transition.

Every collaborator call is isolated: a failure is logged with
``logger.exception`` and the remaining collaborators still run.  Nothing
here retries, and nothing here can undo the level write that triggered it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from html import escape
from typing import TYPE_CHECKING, Any, TypeVar

from ascent.constants import (
    LEVEL_TITLES,
    MAX_LEVEL,
    OPERATOR_ALERT_TEMPLATE_ID,
    template_id_for,
)
from ascent.engine.events import Transition
from ascent.engine.gates import MetricsSnapshot, evaluate_gate
from ascent.services import metrics_store

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from ascent.config import AscentConfig
    from ascent.engine.cache import ConfigCache
    from ascent.services.email_service import MailgunEmailSender

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class NotificationRequested:
    project_id: str
    template_id: str
    level: int


@dataclass(frozen=True, slots=True)
class RenderedMessage:
    subject: str
    text: str
    html: str
    chat: str


NotificationSink = Callable[[NotificationRequested, RenderedMessage], None]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
_HEADLINES: dict[str, str] = {
    "level_up_2": "Your Science NFTs are minted. Time to build your community.",
    "level_up_3": "Your community is live and verified. Now help it grow.",
    "level_up_4": "You've built a thriving scientific community. The team will reach out about sandbox access.",
    "level_up_5": "Your social presence is established.",
    "level_up_6": "Your scientific network is taking shape.",
    "level_up_7": "One step left: share your vision with the world.",
    "journey_complete": "You've completed every level. Congratulations!",
}


def next_goals(level: int, cache: ConfigCache | None = None) -> list[str]:
    """Human-readable requirements for leaving *level*."""
    result = evaluate_gate(level, MetricsSnapshot(level=level), cache)
    goals = []
    for req in result.requirements:
        if req.target is not None:
            goals.append(f"{req.label}: at least {req.target}")
        else:
            goals.append(req.label)
    return goals


def render(
    request: NotificationRequested,
    *,
    project_name: str | None = None,
    portal_url: str | None = None,
    cache: ConfigCache | None = None,
) -> RenderedMessage:
    """Render *request* into email and chat text."""
    name = project_name or "your project"
    headline = _HEADLINES.get(request.template_id, "Congratulations on your progress!")
    completed = request.template_id == template_id_for(request.level, completed=True)

    if completed:
        subject = f"🎉 {name} completed the journey"
        goals: list[str] = []
    else:
        subject = f"🚀 {name} reached Level {request.level}: {LEVEL_TITLES[request.level]}"
        goals = next_goals(request.level, cache)

    text_lines = [subject, "", headline]
    html_parts = [f"<h2>{escape(subject)}</h2>", f"<p>{escape(headline)}</p>"]
    if goals:
        text_lines += ["", "Your next goals:"] + [f"- {g}" for g in goals]
        html_parts.append("<strong>Your next goals:</strong><ul>")
        html_parts += [f"<li>{escape(g)}</li>" for g in goals]
        html_parts.append("</ul>")
    if portal_url:
        text_lines += ["", f"Continue at {portal_url}"]
        html_parts.append(f'<p><a href="{escape(portal_url)}">Continue your progress</a></p>')

    chat = f"{subject}\n{headline}"
    if goals:
        chat += "\nNext: " + "; ".join(goals)
    return RenderedMessage(subject, "\n".join(text_lines), "".join(html_parts), chat)


def render_operator_alert(project_id: str, name: str | None, snapshot: MetricsSnapshot) -> RenderedMessage:
    subject = f"🎉 New sandbox project: {name or project_id}"
    stats = [
        f"Project ID: {project_id}",
        f"Level: {snapshot.level}",
        f"Community members: {snapshot.member_count}",
        f"Papers shared: {snapshot.papers_shared}",
        f"Messages counted: {snapshot.messages_count}",
        f"Quality score: {snapshot.quality_score:.1f}",
        f"Bot confirmed: {'yes' if snapshot.bot_confirmed else 'no'}",
    ]
    text = "\n".join(
        [subject, "", "A project reached the sandbox level.", ""]
        + [f"- {s}" for s in stats]
        + ["", "Please reach out to discuss next steps and sandbox access."]
    )
    html = (
        f"<h1>{escape(subject)}</h1><ul>"
        + "".join(f"<li>{escape(s)}</li>" for s in stats)
        + "</ul><p>Please reach out to discuss next steps and sandbox access.</p>"
    )
    return RenderedMessage(subject, text, html, subject)


def request_for(transition: Transition) -> NotificationRequested:
    """The notification a won *transition* calls for."""
    level = MAX_LEVEL if transition.completed else transition.new_level
    return NotificationRequested(
        project_id=transition.project_id,
        template_id=template_id_for(level, completed=transition.completed),
        level=level,
    )


def level_changed_message(
    transition: Transition, request: NotificationRequested, message: RenderedMessage,
) -> dict[str, Any]:
    """``LevelChanged`` payload for live client sessions."""
    return {
        "type": "LevelChanged",
        "project_id": transition.project_id,
        "previous_level": transition.previous_level,
        "new_level": transition.new_level,
        "completed": transition.completed,
        "template_id": request.template_id,
        "message": message.chat,
    }


def call_isolated(what: str, func: Callable[..., T], *args: Any) -> T | None:
    """Run one notification collaborator; log and swallow its failure."""
    try:
        return func(*args)
    except Exception:
        logger.exception("Notification %s failed", what)
        return None


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class NotificationDispatcher:
    """Send the emails for a transition this process just won.

    Runs once per transition, in whichever process applied it.  Live
    sessions and community announcements are fed from the journal by
    :class:`~ascent.services.journal_relay.LevelChangeRelay` instead.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        email_sender: MailgunEmailSender | None = None,
        config: AscentConfig | None = None,
        cache: ConfigCache | None = None,
    ) -> None:
        self.engine = engine
        self.email_sender = email_sender
        self.config = config
        self._cache = cache

    @property
    def operator_alert_level(self) -> int:
        return self.config.operator_alert_level if self.config else 4

    def dispatch(self, transition: Transition) -> NotificationRequested:
        """Notify the project contact (and operators) about *transition*.  Never raises."""
        request = request_for(transition)
        logger.info("Dispatching %s for %s", request.template_id, request.project_id)

        contact = call_isolated("contact lookup", metrics_store.get_contact, self.engine, request.project_id)
        if contact is not None:
            message = render(
                request,
                project_name=contact.name,
                portal_url=self.config.portal_url if self.config else None,
                cache=self._cache,
            )
            call_isolated("email", self._notify_email, request, contact.contact_email, message)
        if not transition.completed and transition.new_level == self.operator_alert_level:
            call_isolated(
                "operator alert", self._notify_operators,
                request, contact.name if contact else None,
            )
        return request

    # -------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------
    def _notify_email(
        self, request: NotificationRequested, email: str | None, message: RenderedMessage,
    ) -> None:
        if self.email_sender is None:
            return
        if not email:
            logger.warning("No contact email for %s; %s email skipped", request.project_id, request.template_id)
            return
        self.email_sender.send(email, message.subject, message.text, message.html)

    def _notify_operators(self, request: NotificationRequested, name: str | None) -> None:
        recipients = self.config.operator_emails if self.config else ()
        if self.email_sender is None or not recipients:
            logger.info("Operator alert for %s (no recipients configured)", request.project_id)
            return
        snapshot = metrics_store.load_snapshot(self.engine, request.project_id)
        alert = render_operator_alert(request.project_id, name, snapshot)
        for recipient in recipients:
            call_isolated(
                f"{OPERATOR_ALERT_TEMPLATE_ID} to {recipient}",
                self.email_sender.send, recipient, alert.subject, alert.text, alert.html,
            )
