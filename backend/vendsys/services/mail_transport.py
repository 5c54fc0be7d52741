# Overview: Outbound alert mail capability; SendGrid over HTTP, or log-only when unconfigured.

from __future__ import annotations

from typing import Iterable

import httpx
from flask import current_app

from ..errors import TransportFailureError


class MailTransport:
    """
    Send one message to a set of recipients.

    Implementations raise TransportFailureError when delivery fails; deciding
    whether that matters is up to the caller.
    """

    def send(self, recipients: Iterable[str], subject: str, html: str) -> None:
        raise NotImplementedError


class SendGridTransport(MailTransport):
    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        api_base: str = "https://api.sendgrid.com",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ):
        self.sender = sender
        self._client = http_client or httpx.Client(
            base_url=api_base,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def send(self, recipients: Iterable[str], subject: str, html: str) -> None:
        to = sorted(set(recipients))
        if not to:
            raise TransportFailureError("No recipients")

        body = {
            "personalizations": [{"to": [{"email": addr} for addr in to]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/html", "value": html}],
        }
        try:
            resp = self._client.post("/v3/mail/send", json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportFailureError(
                f"Mail API rejected message ({exc.response.status_code})",
                details={"recipients": to},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportFailureError(f"Mail API unreachable: {exc}", details={"recipients": to}) from exc


class LogTransport(MailTransport):
    """Development transport: writes the message to the log instead of sending it."""

    def send(self, recipients: Iterable[str], subject: str, html: str) -> None:
        current_app.logger.info("Alert mail to %s: %s", ", ".join(sorted(set(recipients))), subject)


def build_mail_transport(config) -> MailTransport:
    api_key = config.get("SENDGRID_API_KEY")
    if not api_key:
        return LogTransport()
    return SendGridTransport(
        api_key,
        config.get("ALERT_EMAIL_SENDER"),
        api_base=config.get("SENDGRID_API_BASE", "https://api.sendgrid.com"),
    )
