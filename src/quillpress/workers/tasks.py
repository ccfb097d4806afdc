"""
The Celery task every queue runs.

All queues share a single task, ``process_job``. It parses the payload
into its typed model, hands it to the registry's dispatcher with the
current attempt number, and decides whether a failure is retried:
only retryable errors, only while attempts remain, with exponential
backoff. Anything else fails the job for good.
"""

import logging
from typing import Any

from celery import Task, shared_task, states
from pydantic import ValidationError as PydanticValidationError

from quillpress.core.exceptions import ValidationError, is_retryable
from quillpress.schemas.jobs import parse_job_payload
from quillpress.workers.celery_app import PROCESS_JOB_TASK
from quillpress.workers.context import get_worker_context
from quillpress.workers.options import (
    JobAttempt,
    JobOptions,
    calculate_backoff_countdown,
    should_retry,
)
from quillpress.workers.registry import dispatch_job

logger = logging.getLogger(__name__)


class JobTask(Task):
    """Task base that applies result retention once a job is finished."""

    abstract = True

    def after_return(
        self,
        status: str,
        retval: Any,
        task_id: str,
        args: tuple,
        kwargs: dict[str, Any],
        einfo: Any,
    ) -> None:
        if status not in (states.SUCCESS, states.FAILURE):
            return

        broker = get_worker_context().queue_manager.broker
        if broker is None:
            return
        queue = (kwargs.get("payload") or {}).get("queue", "unknown")
        options = JobOptions.from_dict(kwargs.get("job_options"))
        broker.apply_retention(queue, task_id, status == states.SUCCESS, options.retention)


@shared_task(
    bind=True,
    base=JobTask,
    name=PROCESS_JOB_TASK,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_job(
    self,
    payload: dict[str, Any],
    job_options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Run one attempt of a queued job.

    Args:
        payload: Raw payload, tagged by its ``queue`` field
        job_options: Serialized ``JobOptions`` the job was enqueued with

    Returns:
        The processor's result dict
    """
    options = JobOptions.from_dict(job_options)
    attempt = JobAttempt(number=self.request.retries + 1, max_attempts=options.attempts)

    try:
        job = parse_job_payload(payload)
    except PydanticValidationError as e:
        logger.error(
            f"Rejected malformed job {self.request.id}",
            extra={"job_id": self.request.id, "errors": e.errors(include_url=False)},
        )
        raise ValidationError(
            "Malformed job payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    logger.info(
        f"Processing {job.queue.value} job {self.request.id}",
        extra={"queue": job.queue.value, "job_id": self.request.id, "attempt": attempt.number},
    )

    try:
        return dispatch_job(job, attempt, get_worker_context())
    except Exception as e:
        if should_retry(options, attempt.number, e):
            countdown = calculate_backoff_countdown(options, attempt.number)
            logger.info(
                f"Retrying {job.queue.value} job {self.request.id} in {countdown}s",
                extra={
                    "queue": job.queue.value,
                    "job_id": self.request.id,
                    "attempt": attempt.number,
                    "countdown": countdown,
                },
            )
            raise self.retry(countdown=countdown, exc=e, max_retries=options.attempts - 1)

        logger.error(
            f"{job.queue.value} job {self.request.id} failed permanently: {e}",
            extra={
                "queue": job.queue.value,
                "job_id": self.request.id,
                "attempt": attempt.number,
                "retryable": is_retryable(e),
            },
        )
        raise
