"""
Producer helpers: the calls request handlers make to start background work.

Each helper enqueues through the queue manager. When the queue is
unavailable the email helper degrades to a direct send; generation has
no synchronous fallback, so the placeholder record is marked failed and
the error surfaces to the caller.
"""

import logging
from uuid import UUID, uuid4

from quillpress.core.exceptions import QueueUnavailableError
from quillpress.integrations.email_client import EmailSender
from quillpress.models.enums import GenerationStatus, QueueName
from quillpress.records.store import SqlAlchemyRecordStore
from quillpress.schemas.content import JobHandle
from quillpress.schemas.jobs import EmailJob, GenerationJob, GenerationParams, NarrationJob, VoiceConfig
from quillpress.workers.queue_manager import QueueManager

logger = logging.getLogger(__name__)


def send_email_queued(
    queue_manager: QueueManager,
    sender: EmailSender,
    email: EmailJob,
) -> JobHandle | None:
    """
    Queue an email, sending it directly if the queue cannot take it.

    Returns:
        The job handle, or None when the email was sent directly
    """
    if queue_manager.is_available():
        try:
            return queue_manager.add_job(QueueName.EMAIL, email)
        except QueueUnavailableError as e:
            logger.warning(
                f"Email queue rejected job, sending directly: {e.message}",
                extra={"to": email.to},
            )
    else:
        logger.debug("Email queue unavailable, sending directly", extra={"to": email.to})

    sender.send(email)
    return None


def enqueue_generation(
    queue_manager: QueueManager,
    records: SqlAlchemyRecordStore,
    author_id: str,
    params: GenerationParams,
    is_template_based: bool = False,
) -> tuple[UUID, JobHandle]:
    """
    Create a pending placeholder record and queue its generation.

    Returns:
        The new record id and the generation job handle

    Raises:
        QueueUnavailableError: The job could not be queued; the record is
            kept with ``generation_status=failed``
        pydantic.ValidationError: Invalid generation request
    """
    record_id = uuid4()
    job = GenerationJob(
        record_id=record_id,
        author_id=author_id,
        generation_params=params,
        is_template_based=is_template_based,
    )
    records.create_placeholder(author_id, is_template_based, record_id)

    try:
        handle = queue_manager.add_job(QueueName.GENERATION, job)
    except QueueUnavailableError as e:
        records.update(
            record_id,
            {"generation_status": GenerationStatus.FAILED, "generation_error": e.message},
        )
        raise

    logger.info(
        f"Generation queued for record {record_id}",
        extra={"record_id": str(record_id), "author_id": author_id, "job_id": handle.id},
    )
    return record_id, handle


def enqueue_narration(
    queue_manager: QueueManager,
    record_id: UUID,
    text: str,
    voice_config: VoiceConfig | None = None,
) -> JobHandle:
    """Queue narration for an already generated record (e.g. after an edit)."""
    return queue_manager.add_job(
        QueueName.NARRATION,
        NarrationJob(record_id=record_id, text=text, voice_config=voice_config),
    )
