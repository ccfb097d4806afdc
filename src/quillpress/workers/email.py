"""
Email worker: deliver one queued email.
"""

import logging
from typing import Any

from quillpress.integrations.email_client import EmailSender
from quillpress.schemas.jobs import EmailJob
from quillpress.workers.options import JobAttempt

logger = logging.getLogger(__name__)


class EmailWorker:
    """Processor for the email queue."""

    def __init__(self, sender: EmailSender) -> None:
        self._sender = sender

    def process(self, job: EmailJob, attempt: JobAttempt | None = None) -> dict[str, Any]:
        attempt = attempt or JobAttempt()
        logger.info(
            "Sending queued email",
            extra={"to": job.to, "subject": job.subject, "attempt": attempt.number},
        )
        self._sender.send(job)
        return {"to": job.to, "subject": job.subject}
