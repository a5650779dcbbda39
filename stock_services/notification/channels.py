"""
Message channels for return alerts.

Responsibility:
    Deliver one rendered message to one recipient.  A channel answers a
    single question -- did this recipient accept the message -- and knows
    nothing about returns, retries or the database.

Architecture position:
    Services > notification.  Constructed by ``build_channel`` from
    ``NotificationSettings``; called only by ``NotificationDispatcher``.

Failure modes:
    - ``send()`` returns False for a refused delivery.  Transport errors
      (``smtplib.SMTPException``, ``OSError``) are logged and reported as
      False so the dispatcher's retry loop owns the outcome.
"""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol, runtime_checkable

from stock_config.schema import NotificationSettings, SmtpSettings
from stock_kernel.logging_config import get_logger

logger = get_logger("services.notification.channels")


@runtime_checkable
class MessageChannel(Protocol):
    """Opaque delivery channel."""

    name: str

    def send(self, recipient: str, subject: str, body: str) -> bool:
        """Deliver one message.  True when the recipient accepted it."""
        ...


class LoggingChannel:
    """Writes each message to the structured log.  Default for development."""

    name = "log"

    def send(self, recipient: str, subject: str, body: str) -> bool:
        logger.info(
            "notification_logged",
            extra={"recipient": recipient, "subject": subject, "body": body},
        )
        return True


class SmtpChannel:
    """
    Plain-text mail over SMTP.

    Contract:
        One connection per ``send()``.  STARTTLS and login are used when the
        settings ask for them.

    Non-goals:
        - No HTML bodies, no attachments.
        - No connection pooling.
    """

    name = "smtp"

    def __init__(self, settings: SmtpSettings, smtp_factory=smtplib.SMTP):
        self._settings = settings
        self._smtp_factory = smtp_factory

    def send(self, recipient: str, subject: str, body: str) -> bool:
        msg = MIMEMultipart()
        msg["From"] = self._settings.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with self._smtp_factory(
                self._settings.host,
                self._settings.port,
                timeout=self._settings.timeout_seconds,
            ) as server:
                if self._settings.use_tls:
                    server.starttls()
                if self._settings.username:
                    server.login(self._settings.username, self._settings.password or "")
                refused = server.sendmail(self._settings.sender, [recipient], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(
                "smtp_send_failed",
                extra={
                    "recipient": recipient,
                    "host": self._settings.host,
                    "error": str(exc),
                },
            )
            return False

        if refused:
            logger.warning(
                "smtp_recipient_refused",
                extra={"recipient": recipient, "refused": str(refused)},
            )
            return False
        return True


def build_channel(settings: NotificationSettings) -> MessageChannel:
    """Channel named by ``settings.channel``."""
    if settings.channel == "smtp":
        return SmtpChannel(settings.smtp)
    return LoggingChannel()
