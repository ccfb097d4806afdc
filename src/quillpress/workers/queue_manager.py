"""
Queue manager: the producer-side entry point to the job queues.

Owns the broker connection, one ``JobQueue`` per queue name with its
default job options, and the workers registered against those queues.
When no broker is configured or reachable the manager still initialises
but reports itself unavailable, and ``add_job`` raises
``QueueUnavailableError`` so callers can fall back to direct execution.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

from celery import states
from kombu.exceptions import OperationalError

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import QueueUnavailableError, ValidationError
from quillpress.models.enums import JobState, QueueName
from quillpress.schemas.content import JobHandle
from quillpress.schemas.jobs import JobPayload
from quillpress.workers.broker import BrokerAdapter
from quillpress.workers.options import JobOptions

logger = logging.getLogger(__name__)

# Celery task states mapped onto the job lifecycle
_STATE_MAP: dict[str, JobState] = {
    states.PENDING: JobState.QUEUED,
    states.RECEIVED: JobState.QUEUED,
    states.STARTED: JobState.ACTIVE,
    states.RETRY: JobState.ACTIVE,
    states.SUCCESS: JobState.COMPLETED,
    states.FAILURE: JobState.FAILED,
    states.REVOKED: JobState.FAILED,
}


class ClosableWorker(Protocol):
    """Anything registered as a worker: it knows its queue and can be closed."""

    queue_name: QueueName

    def close(self) -> None: ...


class JobQueue:
    """A named queue and the options applied to every job sent to it."""

    def __init__(self, name: QueueName, default_options: JobOptions) -> None:
        self.name = name
        self.default_options = default_options
        self.closed = False

    def close(self) -> None:
        self.closed = True
        logger.info(f"Queue closed: {self.name.value}")


class QueueManager:
    """
    Create queues, enqueue jobs, and shut everything down in order.

    Example:
        ```python
        manager = QueueManager(settings)
        manager.initialize()
        handle = manager.add_job(QueueName.EMAIL, EmailJob(to="a@b.c", subject="Hi"))
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        broker_factory: Callable[[Settings], BrokerAdapter] = BrokerAdapter,
    ) -> None:
        self._settings = settings or get_settings()
        self._broker_factory = broker_factory
        self._broker: BrokerAdapter | None = None
        self._queues: dict[QueueName, JobQueue] = {}
        self._workers: list[ClosableWorker] = []
        self._initialized = False
        self._available = False
        self._accepting = False

    @property
    def broker(self) -> BrokerAdapter | None:
        return self._broker

    @property
    def queues(self) -> dict[QueueName, JobQueue]:
        return dict(self._queues)

    @property
    def workers(self) -> list[ClosableWorker]:
        return list(self._workers)

    def is_available(self) -> bool:
        """True once initialised against a reachable broker and not shut down."""
        return self._available and self._accepting

    def initialize(self) -> bool:
        """
        Connect to the broker and create every queue.

        Calling it again logs a warning and changes nothing.

        Returns:
            Whether the queues are available
        """
        if self._initialized:
            logger.warning("Queue manager already initialized")
            return self.is_available()
        self._initialized = True

        if not self._settings.queue_enabled:
            logger.warning("No broker configured (REDIS_URL not set), job queues are unavailable")
            return False

        broker = self._broker_factory(self._settings)
        if not broker.ping():
            logger.error("Broker unreachable, job queues are unavailable")
            broker.close()
            return False

        self._broker = broker
        for name in QueueName:
            self.create_queue(name)
        self._available = True
        self._accepting = True
        logger.info(
            "Queue manager initialized",
            extra={"queues": [name.value for name in self._queues]},
        )
        return True

    def create_queue(self, name: QueueName | str) -> JobQueue:
        """Create a queue with the default job options, or return the existing one."""
        queue_name = QueueName(name)
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = JobQueue(queue_name, JobOptions.defaults(self._settings))
            self._queues[queue_name] = queue
            logger.debug(f"Queue created: {queue_name.value}")
        return queue

    def register_worker(self, worker: ClosableWorker) -> None:
        """Track a worker so ``shutdown`` can close it before its queue."""
        self._workers.append(worker)

    def _require_queue(self, name: QueueName | str) -> JobQueue:
        queue_name = QueueName(name)
        if not self._initialized:
            raise QueueUnavailableError(queue_name.value, "Queue manager not initialized")
        if not self.is_available() or self._broker is None:
            raise QueueUnavailableError(queue_name.value)
        queue = self._queues.get(queue_name)
        if queue is None or queue.closed:
            raise QueueUnavailableError(queue_name.value, f"Queue {queue_name.value} is closed")
        return queue

    def add_job(
        self,
        queue_name: QueueName | str,
        payload: JobPayload,
        options: JobOptions | dict[str, Any] | None = None,
    ) -> JobHandle:
        """
        Enqueue a job.

        Args:
            queue_name: Target queue
            payload: Typed payload; its ``queue`` must match ``queue_name``
            options: Overrides for the queue's default job options

        Returns:
            Handle of the enqueued job

        Raises:
            QueueUnavailableError: No usable broker or the manager is shut down
            ValidationError: Payload belongs to another queue
        """
        queue = self._require_queue(queue_name)
        if payload.queue != queue.name:
            raise ValidationError(
                f"Payload for queue {payload.queue.value} sent to {queue.name.value}",
                field="queue",
            )

        job_options = queue.default_options.merge(options)
        job_id = job_options.job_id or str(uuid4())
        try:
            self._broker.send(
                queue.name.value,
                {
                    "payload": payload.model_dump(mode="json"),
                    "job_options": job_options.to_dict(),
                },
                task_id=job_id,
                countdown=job_options.delay,
            )
        except (OperationalError, OSError) as e:
            raise QueueUnavailableError(queue.name.value, f"Failed to enqueue job: {e}") from e

        logger.info(
            f"Job enqueued: {job_id}",
            extra={"queue": queue.name.value, "job_id": job_id},
        )
        return JobHandle(
            id=job_id,
            queue=queue.name,
            state=JobState.QUEUED,
            created_at=datetime.now(UTC),
        )

    def get_job(self, queue_name: QueueName | str, job_id: str) -> JobHandle | None:
        """
        Look up a job's current state.

        Returns None when the queues are unavailable.
        """
        queue_name = QueueName(queue_name)
        if self._broker is None:
            return None

        result = self._broker.fetch(job_id)
        state = _STATE_MAP.get(result.state, JobState.ACTIVE)
        handle = JobHandle(id=job_id, queue=queue_name, state=state)
        if state == JobState.COMPLETED:
            handle.result = result.result
            handle.completed_at = result.date_done
        elif state == JobState.FAILED:
            handle.error = str(result.result) if result.result is not None else result.state
            handle.completed_at = result.date_done
        retries = getattr(result, "retries", None)
        if isinstance(retries, int):
            handle.attempts = retries + 1
        return handle

    def remove_job(self, queue_name: QueueName | str, job_id: str) -> bool:
        """
        Remove a job that has not been claimed yet.

        A job already being processed runs to completion.
        """
        queue_name = QueueName(queue_name)
        if self._broker is None:
            return False
        self._broker.revoke(job_id)
        logger.info(f"Job removed: {job_id}", extra={"queue": queue_name.value})
        return True

    def shutdown(self) -> None:
        """
        Stop accepting jobs, then close every worker, then every queue.

        Each worker finishes its in-flight job before its close returns.
        """
        self._accepting = False

        for worker in self._workers:
            try:
                worker.close()
            except Exception as e:
                logger.error(
                    f"Error closing worker: {e}",
                    extra={"queue": worker.queue_name.value},
                    exc_info=True,
                )
        self._workers.clear()

        for queue in self._queues.values():
            queue.close()

        if self._broker is not None:
            self._broker.close()
            self._broker = None
        self._available = False
        logger.info("Queue manager shut down")
