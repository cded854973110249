"""
ascent.services.email_service — Mailgun Email Sender
=====================================================

Thin synchronous wrapper over the Mailgun messages API.  Called from
worker threads by the notification dispatcher, so it uses a blocking
:class:`httpx.Client`.

The sender is disabled (every send is a logged no-op) when
``MAILGUN_API_KEY`` or the mail domain is missing.
"""

from __future__ import annotations

import logging
import os

import httpx

logger = logging.getLogger(__name__)

MAILGUN_API = "https://api.mailgun.net/v3"


class EmailDeliveryError(RuntimeError):
    """Mailgun answered with a non-2xx status."""


class MailgunEmailSender:
    """Send plain-text + HTML email through Mailgun.

    Parameters
    ----------
    domain:
        Sending domain registered with Mailgun.
    from_email:
        ``From`` header; defaults to ``postmaster@<domain>``.
    api_key:
        Defaults to the ``MAILGUN_API_KEY`` environment variable.
    transport:
        Optional httpx transport (tests pass :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        domain: str | None,
        from_email: str | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.BaseTransport | None = None,
        api_base: str = MAILGUN_API,
    ) -> None:
        self.domain = domain
        self.from_email = from_email or (f"postmaster@{domain}" if domain else None)
        self._api_key = api_key if api_key is not None else os.getenv("MAILGUN_API_KEY", "")
        self._client = httpx.Client(
            timeout=10, transport=transport or httpx.HTTPTransport(retries=1),
        )
        self._api_base = api_base.rstrip("/")
        if not self.enabled:
            logger.warning("Mailgun API key or domain not set; email notifications disabled")

    @property
    def enabled(self) -> bool:
        return bool(self._api_key and self.domain)

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> bool:
        """Send one message.  Returns ``False`` when the sender is disabled.

        Raises
        ------
        EmailDeliveryError
            If Mailgun rejects the request.
        httpx.HTTPError
            On transport failures.
        """
        if not self.enabled:
            logger.debug("Email to %s skipped (sender disabled)", to)
            return False

        data = {"from": self.from_email, "to": to, "subject": subject, "text": text}
        if html:
            data["html"] = html
        resp = self._client.post(
            f"{self._api_base}/{self.domain}/messages",
            auth=("api", self._api_key),
            data=data,
        )
        if resp.status_code >= 300:
            raise EmailDeliveryError(
                f"Mailgun returned {resp.status_code} for {to}: {resp.text[:200]}"
            )
        logger.info("Email %r sent to %s", subject, to)
        return True

    def close(self) -> None:
        self._client.close()
