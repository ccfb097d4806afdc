"""
Background job pipeline for quillpress.

- QueueManager: producer-side queues with retry, backoff and retention
- WorkerRegistry: one Celery worker process per queue
- process_job: the task every queue runs, dispatching to
  GenerationWorker, NarrationWorker, EmailWorker or ImageUploadWorker
- Producers: enqueue helpers with direct-send fallback
"""

from quillpress.workers.celery_app import celery_app
from quillpress.workers.context import WorkerContext, get_worker_context
from quillpress.workers.email import EmailWorker
from quillpress.workers.generation import GenerationWorker
from quillpress.workers.image_upload import ImageUploadWorker
from quillpress.workers.narration import NarrationWorker
from quillpress.workers.options import JobAttempt, JobOptions
from quillpress.workers.producers import enqueue_generation, enqueue_narration, send_email_queued
from quillpress.workers.queue_manager import QueueManager
from quillpress.workers.registry import QUEUE_CONCURRENCY, WorkerRegistry, dispatch_job

__all__ = [
    # Celery app
    "celery_app",
    # Queues and workers
    "QueueManager",
    "WorkerRegistry",
    "QUEUE_CONCURRENCY",
    "dispatch_job",
    "JobOptions",
    "JobAttempt",
    "WorkerContext",
    "get_worker_context",
    # Processors
    "GenerationWorker",
    "NarrationWorker",
    "EmailWorker",
    "ImageUploadWorker",
    # Producers
    "enqueue_generation",
    "enqueue_narration",
    "send_email_queued",
]
