"""
In-memory cache backend.

Suitable for single-process development and tests. State is not shared
between worker processes.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from quillpress.cache.base import CacheBackend, glob_to_regex

logger = logging.getLogger(__name__)


class MemoryCache(CacheBackend):
    """
    Dictionary-backed cache with per-entry expiry.

    Expired entries are dropped lazily on read and during periodic cleanup.
    """

    def __init__(
        self,
        default_ttl: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= now:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        regex = glob_to_regex(pattern)
        with self._lock:
            matched = [key for key in self._entries if regex.match(key)]
            for key in matched:
                del self._entries[key]
        if matched:
            logger.debug(f"Deleted {len(matched)} keys matching {pattern}")
        return len(matched)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        """Live keys, for diagnostics and tests."""
        now = self._clock()
        with self._lock:
            return [
                key
                for key, (_, expires_at) in self._entries.items()
                if expires_at is None or expires_at > now
            ]

    def _maybe_cleanup(self, now: float) -> None:
        # Every 5 minutes; caller holds the lock
        if now - self._last_cleanup < 300:
            return
        self._last_cleanup = now
        for key in [k for k, (_, exp) in self._entries.items() if exp is not None and exp <= now]:
            del self._entries[key]
