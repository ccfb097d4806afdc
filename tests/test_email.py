"""
Tests for email delivery, the email worker and the queued-or-direct producer.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from quillpress.core.config import Settings
from quillpress.core.exceptions import ExternalServiceError, QueueUnavailableError, ValidationError
from quillpress.integrations.email_client import (
    NullEmailSender,
    SmtpEmailSender,
    build_message,
    get_email_sender,
)
from quillpress.models.enums import QueueName
from quillpress.schemas.jobs import EmailJob
from quillpress.workers.email import EmailWorker
from quillpress.workers.producers import send_email_queued


@pytest.fixture
def email() -> EmailJob:
    return EmailJob(to="reader@example.com", subject="Your article is ready", text="Hello", html="<p>Hello</p>")


@pytest.fixture
def smtp_settings() -> Settings:
    return Settings(
        _env_file=None,
        smtp_host="smtp.example.com",
        smtp_username="user",
        smtp_password="secret",
    )


class TestBuildMessage:
    def test_text_with_html_alternative(self, email: EmailJob) -> None:
        message = build_message(email, "no-reply@example.com")

        assert message["To"] == "reader@example.com"
        assert message["Subject"] == "Your article is ready"
        assert message.is_multipart()

    def test_requires_a_body(self) -> None:
        with pytest.raises(ValidationError):
            build_message(EmailJob(to="a@example.com", subject="Empty"), "no-reply@example.com")


class TestSmtpEmailSender:
    """Tests for SMTP delivery (without a real server)."""

    def test_sends_with_tls_and_login(self, smtp_settings: Settings, email: EmailJob) -> None:
        with patch("quillpress.integrations.email_client.smtplib.SMTP") as smtp_cls:
            SmtpEmailSender(smtp_settings).send(email)

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=30.0)
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("user", "secret")
        smtp.send_message.assert_called_once()

    def test_connection_error_is_retryable(self, smtp_settings: Settings, email: EmailJob) -> None:
        with patch("quillpress.integrations.email_client.smtplib.SMTP", side_effect=OSError("refused")):
            with pytest.raises(ExternalServiceError) as exc_info:
                SmtpEmailSender(smtp_settings).send(email)

        assert exc_info.value.retryable is True

    def test_refused_recipient_is_permanent(self, smtp_settings: Settings, email: EmailJob) -> None:
        with patch("quillpress.integrations.email_client.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({"reader@example.com": (550, b"no")})
            with pytest.raises(ExternalServiceError) as exc_info:
                SmtpEmailSender(smtp_settings).send(email)

        assert exc_info.value.retryable is False

    def test_factory_without_host_returns_null_sender(self, settings: Settings) -> None:
        assert isinstance(get_email_sender(settings), NullEmailSender)


class TestEmailWorker:
    def test_sends_email(self, email: EmailJob) -> None:
        sender = MagicMock()
        result = EmailWorker(sender).process(email)

        sender.send.assert_called_once_with(email)
        assert result == {"to": "reader@example.com", "subject": "Your article is ready"}


class TestSendEmailQueued:
    """Tests for the queued-or-direct email producer."""

    def test_queues_when_available(self, email: EmailJob, fake_queue_manager: MagicMock) -> None:
        fake_queue_manager.is_available.return_value = True
        sender = MagicMock()

        handle = send_email_queued(fake_queue_manager, sender, email)

        assert handle is not None
        fake_queue_manager.add_job.assert_called_once_with(QueueName.EMAIL, email)
        sender.send.assert_not_called()

    def test_sends_directly_when_unavailable(self, email: EmailJob) -> None:
        manager = MagicMock()
        manager.is_available.return_value = False
        sender = MagicMock()

        assert send_email_queued(manager, sender, email) is None
        sender.send.assert_called_once_with(email)
        manager.add_job.assert_not_called()

    def test_sends_directly_when_enqueue_fails(self, email: EmailJob) -> None:
        manager = MagicMock()
        manager.is_available.return_value = True
        manager.add_job.side_effect = QueueUnavailableError("email")
        sender = MagicMock()

        assert send_email_queued(manager, sender, email) is None
        sender.send.assert_called_once_with(email)
