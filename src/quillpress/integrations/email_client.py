"""
SMTP email delivery.

Uses the standard library's ``smtplib``; no provider SDK is involved.
When no SMTP host is configured a no-op sender is used instead.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ExternalServiceError, ValidationError
from quillpress.schemas.jobs import EmailJob

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send(self, email: EmailJob) -> None: ...


def build_message(email: EmailJob, sender: str) -> EmailMessage:
    """Build a text message with an optional HTML alternative."""
    if not email.text and not email.html:
        raise ValidationError("Email needs a text or html body", field="text")

    message = EmailMessage()
    message["From"] = sender
    message["To"] = email.to
    message["Subject"] = email.subject
    message.set_content(email.text or " ")
    if email.html:
        message.add_alternative(email.html, subtype="html")
    return message


class SmtpEmailSender:
    """Send one message per SMTP connection."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        if not self._settings.smtp_host:
            raise ValidationError("SMTP host is required", field="smtp_host")

    def send(self, email: EmailJob) -> None:
        """
        Deliver ``email``.

        Raises:
            ValidationError: If the message has no body
            ExternalServiceError: If the SMTP exchange fails (retryable)
        """
        settings = self._settings
        message = build_message(email, settings.email_from)

        try:
            with smtplib.SMTP(
                settings.smtp_host,
                settings.smtp_port,
                timeout=settings.smtp_timeout_seconds,
            ) as smtp:
                if settings.smtp_use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if settings.smtp_username and settings.smtp_password:
                    smtp.login(settings.smtp_username, settings.smtp_password)
                smtp.send_message(message)
        except smtplib.SMTPRecipientsRefused as e:
            raise ExternalServiceError(
                service="SMTP",
                message=f"Recipient refused: {email.to}",
                original_error=str(e),
                retryable=False,
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery failed", extra={"to": email.to, "error": str(e)})
            raise ExternalServiceError(
                service="SMTP",
                message="Failed to send email",
                original_error=str(e),
            ) from e

        logger.info("Email sent", extra={"to": email.to, "subject": email.subject})


class NullEmailSender:
    """No-op sender used when SMTP is not configured."""

    def send(self, email: EmailJob) -> None:
        logger.debug(
            "Email delivery disabled; dropping email",
            extra={"to": email.to, "subject": email.subject},
        )


def get_email_sender(settings: Settings | None = None) -> EmailSender:
    """Factory: SMTP sender when a host is configured, otherwise the no-op sender."""
    settings = settings or get_settings()
    if settings.smtp_host:
        return SmtpEmailSender(settings)
    logger.warning("SMTP host not configured, emails will be dropped")
    return NullEmailSender()
