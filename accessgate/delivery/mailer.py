"""Outgoing mail collaborators."""

from __future__ import annotations

import logging
import smtplib
import uuid
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

from accessgate.core.config import MailConfig
from accessgate.delivery.jobs import PermanentError, TransientDeliveryError

LOGGER = logging.getLogger(__name__)


class Mailer(Protocol):
    """Mail transport used by delivery handlers."""

    def send(self, to: str, subject: str, html: str) -> str:
        """Send ``html`` to ``to`` and return the message id."""
        ...


class SmtpMailer:
    """Send mail through an SMTP relay with ``smtplib``."""

    def __init__(self, config: MailConfig, *, timeout_seconds: float = 30.0) -> None:
        self._config = config
        self._timeout_seconds = timeout_seconds

    def _connect(self) -> smtplib.SMTP:
        if self._config.use_ssl:
            return smtplib.SMTP_SSL(
                self._config.smtp_host,
                self._config.smtp_port,
                timeout=self._timeout_seconds,
            )
        server = smtplib.SMTP(
            self._config.smtp_host,
            self._config.smtp_port,
            timeout=self._timeout_seconds,
        )
        server.starttls()
        return server

    def send(self, to: str, subject: str, html: str) -> str:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.mail_from
        msg["To"] = to
        message_id = make_msgid()
        msg["Message-ID"] = message_id
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            with self._connect() as server:
                if self._config.smtp_user:
                    server.login(self._config.smtp_user, self._config.smtp_password)
                server.send_message(msg)
        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("email_recipient_refused")
            raise PermanentError(f"Recipient refused: {to}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("email_send_failed", exc_info=True)
            raise TransientDeliveryError(f"SMTP delivery failed: {exc}") from exc

        LOGGER.info("email_sent")
        return message_id


class LogMailer:
    """Development mailer used when no SMTP relay is configured.

    Nothing is sent or kept; production config refuses to start without a
    relay, so this never handles real traffic.
    """

    def send(self, to: str, subject: str, html: str) -> str:
        message_id = f"<{uuid.uuid4().hex}@accessgate.local>"
        LOGGER.info("email_logged_not_sent: %s", subject)
        return message_id


def build_mailer(config: MailConfig) -> Mailer:
    """Return an SMTP mailer when a relay is configured, else a log-only one."""
    if config.smtp_host:
        return SmtpMailer(config)
    LOGGER.warning("smtp_not_configured_using_log_mailer")
    return LogMailer()
