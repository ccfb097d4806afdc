"""
Redis cache backend.

Values are stored as JSON. The backend fails soft: connection or command
errors are logged and treated as a miss or a no-op, so a cache outage never
fails a job.
"""

import json
import logging
from typing import Any

import redis

from quillpress.cache.base import CacheBackend, escape_redis_glob

logger = logging.getLogger(__name__)


class RedisCache(CacheBackend):
    """
    Redis-based cache shared by all worker processes.

    Pattern deletes use ``SCAN`` with ``MATCH`` rather than ``KEYS`` so large
    keyspaces are not blocked.
    """

    def __init__(
        self,
        redis_url: str,
        default_ttl: int | None = None,
        key_prefix: str = "",
        client: redis.Redis | None = None,
        scan_batch_size: int = 500,
    ):
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self.scan_batch_size = scan_batch_size
        self._redis_url = redis_url
        self._redis: redis.Redis | None = client

    def _get_redis(self) -> redis.Redis:
        """Lazy initialization of Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self._get_redis().get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis cache get failed: {e}", extra={"key": key})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", extra={"key": key})
            return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        try:
            payload = json.dumps(value, default=str)
            if ttl:
                self._get_redis().set(self._key(key), payload, ex=ttl)
            else:
                self._get_redis().set(self._key(key), payload)
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Redis cache set failed: {e}", extra={"key": key})

    def delete(self, key: str) -> None:
        try:
            self._get_redis().delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis cache delete failed: {e}", extra={"key": key})

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        try:
            client = self._get_redis()
            batch: list[str] = []
            match = escape_redis_glob(self._key(pattern))
            for key in client.scan_iter(match=match, count=self.scan_batch_size):
                batch.append(key)
                if len(batch) >= self.scan_batch_size:
                    deleted += client.delete(*batch)
                    batch = []
            if batch:
                deleted += client.delete(*batch)
        except redis.RedisError as e:
            logger.error(f"Redis cache pattern delete failed: {e}", extra={"pattern": pattern})
        return deleted

    def clear(self) -> None:
        if self.key_prefix:
            self.delete_pattern("*")
            return
        try:
            self._get_redis().flushdb()
        except redis.RedisError as e:
            logger.error(f"Redis cache clear failed: {e}")

    def disconnect(self) -> None:
        if self._redis is None:
            return
        try:
            self._redis.close()
        except redis.RedisError as e:
            logger.warning(f"Error closing Redis cache connection: {e}")
        finally:
            self._redis = None
