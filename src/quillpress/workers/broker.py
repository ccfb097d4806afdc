"""
Broker adapter: the only code that talks to Celery and Redis directly.

Wraps a Celery app for sending, inspecting and revoking jobs, and applies
per-job retention to the result backend.
"""

import logging
import time
from typing import Any

import redis
from celery import Celery
from celery.result import AsyncResult
from kombu.exceptions import OperationalError

from quillpress.core.config import Settings
from quillpress.workers.celery_app import PROCESS_JOB_TASK, create_celery_app
from quillpress.workers.options import RetentionPolicy

logger = logging.getLogger(__name__)

COMPLETED_INDEX_KEY = "quillpress:completed:{queue}"


class BrokerAdapter:
    """
    Thin wrapper around a Celery app and its Redis backend.

    Example:
        ```python
        broker = BrokerAdapter(settings)
        if broker.ping():
            broker.send("generation", {"payload": {...}}, task_id="abc")
        ```
    """

    def __init__(
        self,
        settings: Settings,
        app: Celery | None = None,
        redis_client: redis.Redis | None = None,
    ) -> None:
        self._settings = settings
        self.app = app or create_celery_app(settings, main="quillpress_producer")
        self._redis = redis_client

    def _get_redis(self) -> redis.Redis | None:
        """Lazy Redis connection to the result backend, None when not Redis."""
        if self._redis is None:
            url = self._settings.result_backend_url or self._settings.redis_url
            if not url or not url.startswith(("redis://", "rediss://", "unix://")):
                return None
            self._redis = redis.from_url(url)
        return self._redis

    def ping(self) -> bool:
        """Check that the broker accepts connections."""
        try:
            with self.app.connection_for_write() as conn:
                conn.ensure_connection(
                    max_retries=1,
                    timeout=self._settings.broker_connect_timeout_seconds,
                )
            return True
        except (OperationalError, OSError) as e:
            logger.warning(f"Broker unreachable: {e}")
            return False

    def send(
        self,
        queue: str,
        kwargs: dict[str, Any],
        task_id: str,
        countdown: float | None = None,
    ) -> AsyncResult:
        """Publish one job to ``queue``."""
        return self.app.send_task(
            PROCESS_JOB_TASK,
            kwargs=kwargs,
            queue=queue,
            routing_key=queue,
            task_id=task_id,
            countdown=countdown,
        )

    def fetch(self, task_id: str) -> AsyncResult:
        return AsyncResult(task_id, app=self.app)

    def revoke(self, task_id: str) -> None:
        """Prevent a job from starting. A job already running is not interrupted."""
        self.app.control.revoke(task_id, terminate=False)

    def apply_retention(
        self,
        queue: str,
        task_id: str,
        succeeded: bool,
        retention: RetentionPolicy,
    ) -> None:
        """
        Bound how long a finished job stays queryable.

        Completed jobs expire after ``completed_age`` and only the newest
        ``completed_count`` per queue are kept; failed jobs expire after
        ``failed_age``.
        """
        client = self._get_redis()
        if client is None:
            return

        meta_key = self.app.backend.get_key_for_task(task_id)
        try:
            if not succeeded:
                client.expire(meta_key, retention.failed_age)
                return

            client.expire(meta_key, retention.completed_age)
            index_key = COMPLETED_INDEX_KEY.format(queue=queue)
            client.zadd(index_key, {task_id: time.time()})
            overflow = client.zcard(index_key) - retention.completed_count
            if overflow > 0:
                evicted = client.zpopmin(index_key, overflow)
                stale = [
                    self.app.backend.get_key_for_task(_as_str(member)) for member, _ in evicted
                ]
                if stale:
                    client.delete(*stale)
            client.expire(index_key, retention.completed_age)
        except redis.RedisError as e:
            logger.warning(f"Failed to apply job retention: {e}", extra={"job_id": task_id})

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()
            self._redis = None
        self.app.close()


def _as_str(member: bytes | str) -> str:
    return member.decode() if isinstance(member, bytes) else member
