"""
Cache service: the invalidation contract shared by workers and readers.

Keys are colon-delimited so both exact and glob invalidation work:

- ``record:id:<id>``      one record by id
- ``record:slug:<slug>``  one record by slug
- ``record:query:<hash>`` filtered query results
- ``record:list:<page>``  listing pages
"""

import logging
from collections.abc import Callable
from typing import Any, Literal, TypeVar

from quillpress.cache.base import CacheBackend
from quillpress.cache.memory import MemoryCache
from quillpress.cache.redis_cache import RedisCache
from quillpress.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECORD_QUERY_PATTERN = "record:query:*"
RECORD_LIST_PATTERN = "record:list:*"


class CacheService:
    """
    Unified cache facade over a single backend.

    Applies the default TTL and exposes the record invalidation helpers the
    workers call after every mutation.
    """

    def __init__(
        self,
        backend: CacheBackend,
        default_ttl: int | None = None,
        cache_type: Literal["redis", "memory"] = "memory",
    ):
        self.backend = backend
        self.default_ttl = default_ttl
        self.cache_type = cache_type

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheService":
        """Build the configured backend; Redis without a URL falls back to memory."""
        redis_url = settings.cache_redis_url or settings.redis_url
        if settings.cache_type == "redis" and redis_url:
            backend: CacheBackend = RedisCache(
                redis_url,
                default_ttl=settings.cache_default_ttl,
                key_prefix=settings.cache_key_prefix,
            )
            logger.info("Cache service initialized with Redis")
            return cls(backend, settings.cache_default_ttl, "redis")

        if settings.cache_type == "redis":
            logger.warning("cache_type=redis but no Redis URL configured, using memory cache")
        else:
            logger.info("Cache service initialized with in-memory cache")
        return cls(MemoryCache(settings.cache_default_ttl), settings.cache_default_ttl, "memory")

    def get(self, key: str) -> Any | None:
        return self.backend.get(key)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.backend.set(key, value, ttl if ttl is not None else self.default_ttl)

    def delete(self, key: str) -> None:
        self.backend.delete(key)

    def delete_pattern(self, pattern: str) -> int:
        return self.backend.delete_pattern(pattern)

    def clear(self) -> None:
        """Flush everything. Test harnesses only."""
        self.backend.clear()

    def disconnect(self) -> None:
        self.backend.disconnect()

    def wrap(self, key: str, compute: Callable[[], T], ttl: int | None = None) -> T:
        """
        Read-through helper.

        Returns the cached value when present, otherwise calls ``compute``,
        stores its result and returns it. A computed None is returned but
        not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        result = compute()
        if result is not None:
            self.set(key, result, ttl)
        return result

    @staticmethod
    def generate_key(*parts: str | int | None) -> str:
        """Join non-None key parts with ``:``."""
        return ":".join(str(part) for part in parts if part is not None)

    # -------------------------------------------------------------------------
    # Record keys
    # -------------------------------------------------------------------------

    @classmethod
    def record_id_key(cls, record_id: Any) -> str:
        return cls.generate_key("record", "id", str(record_id))

    @classmethod
    def record_slug_key(cls, slug: str) -> str:
        return cls.generate_key("record", "slug", slug)

    def invalidate_record(self, record_id: Any, slug: str | None = None) -> None:
        """Drop the exact keys of one record."""
        self.delete(self.record_id_key(record_id))
        if slug:
            self.delete(self.record_slug_key(slug))

    def invalidate_record_queries(self) -> int:
        """Drop every cached query and listing page."""
        return self.delete_pattern(RECORD_QUERY_PATTERN) + self.delete_pattern(
            RECORD_LIST_PATTERN
        )
