"""
Celery application configuration for quillpress.

This module configures the Celery app with:
- Redis broker and result backend
- One queue per job type
- Late acknowledgement and single prefetch for long-running jobs
- Task time limits that bound every job
- Worker lifecycle signals (context construction, event logging)
"""

import logging
import os
from typing import Any

from celery import Celery
from celery.signals import (
    task_failure,
    task_retry,
    task_success,
    worker_process_init,
    worker_process_shutdown,
)

from quillpress.core.config import Settings, get_settings
from quillpress.models.enums import QueueName

logger = logging.getLogger(__name__)

PROCESS_JOB_TASK = "quillpress.workers.tasks.process_job"


def create_celery_app(settings: Settings, main: str = "quillpress_workers") -> Celery:
    """
    Build a configured Celery app.

    Without a configured broker the app falls back to the in-memory
    transport, which is only useful for eager tests.
    """
    broker_url = settings.redis_url or "memory://"
    backend_url = settings.result_backend_url or settings.redis_url or "cache+memory://"

    app = Celery(
        main,
        broker=broker_url,
        backend=backend_url,
        include=["quillpress.workers.tasks"],
    )

    # =========================================================================
    # Task Serialization Settings
    # =========================================================================

    app.conf.update(
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
    )

    # =========================================================================
    # Task Execution Settings
    # =========================================================================

    app.conf.update(
        # Acknowledge after execution so a crashed worker's job is redelivered
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        # Pull only when a slot is free; concurrency is the only backpressure
        worker_prefetch_multiplier=1,
        task_time_limit=settings.task_time_limit_seconds,
        task_soft_time_limit=settings.task_soft_time_limit_seconds,
        task_track_started=True,
        task_send_sent_event=True,
        broker_connection_timeout=settings.broker_connect_timeout_seconds,
        broker_connection_retry_on_startup=True,
    )

    # =========================================================================
    # Queue Configuration
    # =========================================================================

    app.conf.task_queues = {
        queue.value: {"exchange": queue.value, "routing_key": queue.value}
        for queue in QueueName
    }
    app.conf.task_default_queue = QueueName.GENERATION.value

    # =========================================================================
    # Result Backend Settings
    # =========================================================================

    app.conf.update(
        # Failed results live for the failed-job retention; completed results
        # are shortened per job after success
        result_expires=settings.failed_job_retention_seconds,
        result_extended=True,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    app.conf.update(
        worker_hijack_root_logger=False,
        worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
        worker_task_log_format=(
            "[%(asctime)s: %(levelname)s/%(processName)s] "
            "[%(task_name)s(%(task_id)s)] %(message)s"
        ),
    )

    return app


# Worker entrypoint app: ``celery -A quillpress.workers.celery_app worker -Q generation``
celery_app = create_celery_app(get_settings())


# =============================================================================
# Worker Lifecycle Signals
# =============================================================================


@worker_process_init.connect
def _init_worker_process(**_: Any) -> None:
    from quillpress.core.logging_setup import configure_logging
    from quillpress.workers.context import init_worker_context

    settings = get_settings()
    configure_logging(settings)
    init_worker_context(settings)
    logger.info(
        f"{settings.app_name} {settings.app_version} worker process ready",
        extra={"environment": settings.environment, "pid": os.getpid()},
    )


@worker_process_shutdown.connect
def _shutdown_worker_process(**_: Any) -> None:
    from quillpress.workers.context import close_worker_context

    close_worker_context()


# Completion and failure events are consumed only for logging


@task_success.connect
def _log_task_success(sender: Any = None, result: Any = None, **_: Any) -> None:
    request = getattr(sender, "request", None)
    logger.info(
        f"Job completed: {getattr(request, 'id', None)}",
        extra={"queue": _queue_of(request), "job_id": getattr(request, "id", None)},
    )


@task_retry.connect
def _log_task_retry(request: Any = None, reason: Any = None, **_: Any) -> None:
    logger.warning(
        f"Job retry scheduled: {getattr(request, 'id', None)}",
        extra={"queue": _queue_of(request), "reason": str(reason)},
    )


@task_failure.connect
def _log_task_failure(
    task_id: str | None = None,
    exception: BaseException | None = None,
    sender: Any = None,
    **_: Any,
) -> None:
    logger.error(
        f"Job failed: {task_id}",
        extra={
            "queue": _queue_of(getattr(sender, "request", None)),
            "job_id": task_id,
            "error": str(exception),
        },
    )


def _queue_of(request: Any) -> str | None:
    delivery_info = getattr(request, "delivery_info", None) or {}
    return delivery_info.get("routing_key")


__all__ = ["PROCESS_JOB_TASK", "celery_app", "create_celery_app"]
