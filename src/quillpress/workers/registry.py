"""
Worker registry: one worker per queue with a fixed concurrency ceiling.

Each worker is a separate Celery worker process consuming exactly one
queue. ``-c`` bounds how many jobs it runs at once and the prefetch
multiplier of 1 keeps it from reserving more, so the ceiling is the only
backpressure. ``dispatch_job`` routes a parsed payload to its processor;
the registry itself holds no business logic.
"""

import logging
import multiprocessing
import os
import signal
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, assert_never

from quillpress.core.config import Settings, get_settings
from quillpress.models.enums import QueueName
from quillpress.schemas.jobs import (
    EmailJob,
    GenerationJob,
    ImageUploadJob,
    JobPayload,
    NarrationJob,
    VoiceConfig,
)
from quillpress.workers.context import WorkerContext
from quillpress.workers.email import EmailWorker
from quillpress.workers.generation import GenerationWorker
from quillpress.workers.image_upload import ImageUploadWorker
from quillpress.workers.narration import NarrationWorker
from quillpress.workers.options import JobAttempt
from quillpress.workers.queue_manager import QueueManager

logger = logging.getLogger(__name__)

QUEUE_CONCURRENCY: dict[QueueName, int] = {
    QueueName.GENERATION: 2,
    QueueName.NARRATION: 2,
    QueueName.IMAGE_UPLOAD: 3,
    QueueName.EMAIL: 5,
}

_CONCURRENCY_SETTINGS: dict[QueueName, str] = {
    QueueName.GENERATION: "generation_concurrency",
    QueueName.NARRATION: "narration_concurrency",
    QueueName.IMAGE_UPLOAD: "image_upload_concurrency",
    QueueName.EMAIL: "email_concurrency",
}

WORKER_STOP_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class WorkerSpec:
    """Which queue a worker consumes and how many jobs it runs at once."""

    queue_name: QueueName
    concurrency: int

    @property
    def node_name(self) -> str:
        return f"{self.queue_name.value}@%h"

    def worker_argv(self, log_level: str) -> list[str]:
        return [
            "worker",
            "-Q",
            self.queue_name.value,
            "-c",
            str(self.concurrency),
            "-n",
            self.node_name,
            "--loglevel",
            log_level,
        ]


def _run_celery_worker(argv: list[str]) -> None:
    """Child process entry point."""
    from quillpress.workers.celery_app import celery_app

    celery_app.worker_main(argv)


class QueueWorker:
    """A running Celery worker process bound to one queue."""

    def __init__(
        self,
        spec: WorkerSpec,
        log_level: str = "INFO",
        process_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.spec = spec
        self.queue_name = spec.queue_name
        factory = process_factory or multiprocessing.get_context("spawn").Process
        self._process = factory(
            target=_run_celery_worker,
            args=(spec.worker_argv(log_level),),
            name=f"quillpress-{spec.queue_name.value}",
        )

    @property
    def pid(self) -> int | None:
        return self._process.pid

    def is_alive(self) -> bool:
        return self._process.is_alive()

    def start(self) -> None:
        self._process.start()
        logger.info(
            f"Worker started for queue {self.queue_name.value}",
            extra={"queue": self.queue_name.value, "concurrency": self.spec.concurrency, "pid": self.pid},
        )

    def close(self, timeout: float = WORKER_STOP_TIMEOUT_SECONDS) -> None:
        """
        Warm shutdown: SIGTERM lets the in-flight job finish, then the
        process is killed if it outlives ``timeout``.
        """
        if self.pid is None:
            return
        if self.is_alive():
            os.kill(self.pid, signal.SIGTERM)
        self._process.join(timeout)
        if self.is_alive():
            logger.warning(
                f"Worker for queue {self.queue_name.value} did not stop in {timeout}s, killing",
                extra={"queue": self.queue_name.value},
            )
            self._process.kill()
            self._process.join()
        logger.info(f"Worker closed for queue {self.queue_name.value}")


class WorkerRegistry:
    """
    Start one worker per queue and register it with the queue manager.

    Example:
        ```python
        manager = QueueManager(settings)
        manager.initialize()
        registry = WorkerRegistry(manager, settings)
        registry.start()
        ...
        manager.shutdown()  # closes workers, then queues
        ```
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        settings: Settings | None = None,
        process_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._queue_manager = queue_manager
        self._settings = settings or get_settings()
        self._process_factory = process_factory
        self.workers: dict[QueueName, QueueWorker] = {}

    def concurrency_for(self, queue_name: QueueName) -> int:
        override = getattr(self._settings, _CONCURRENCY_SETTINGS[queue_name])
        return override if override else QUEUE_CONCURRENCY[queue_name]

    def specs(self, queues: list[QueueName] | None = None) -> list[WorkerSpec]:
        return [
            WorkerSpec(queue_name, self.concurrency_for(queue_name))
            for queue_name in (queues or list(QueueName))
        ]

    def start(self, queues: list[QueueName] | None = None) -> list[QueueWorker]:
        """Start workers for ``queues`` (all queues by default), one per queue."""
        started = []
        for spec in self.specs(queues):
            if spec.queue_name in self.workers:
                logger.warning(f"Worker for queue {spec.queue_name.value} already running")
                continue
            worker = QueueWorker(spec, self._settings.log_level, self._process_factory)
            worker.start()
            self.workers[spec.queue_name] = worker
            self._queue_manager.register_worker(worker)
            started.append(worker)
        return started


def dispatch_job(job: JobPayload, attempt: JobAttempt, context: WorkerContext) -> dict[str, Any]:
    """Route a parsed payload to the processor for its queue."""
    match job:
        case GenerationJob():
            return GenerationWorker(
                records=context.records,
                generator=context.generator,
                storage=context.storage,
                cache=context.cache,
                queue_manager=context.queue_manager,
                failure_policy=context.settings.generation_failure_policy,
                default_language_code=context.settings.default_language_code,
            ).process(job, attempt)
        case NarrationJob():
            return NarrationWorker(
                records=context.records,
                narration=context.narration,
                cache=context.cache,
                default_voice=VoiceConfig(
                    language_code=context.settings.default_language_code,
                    voice_id=context.settings.elevenlabs_default_voice,
                ),
            ).process(job, attempt)
        case EmailJob():
            return EmailWorker(context.email_sender).process(job, attempt)
        case ImageUploadJob():
            return ImageUploadWorker(context.storage).process(job, attempt)
        case _:
            assert_never(job)
