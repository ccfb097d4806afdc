"""
Cache backend interface.
"""

import re
from abc import ABC, abstractmethod
from typing import Any


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """
        Return the cached value for ``key``.

        Returns:
            The deserialised value, or None on a miss or expired entry
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value`` under ``key``; ``ttl`` of None or 0 never expires."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are a no-op."""
        pass

    @abstractmethod
    def delete_pattern(self, pattern: str) -> int:
        """
        Remove every key matching a ``*`` glob.

        Returns:
            Number of keys removed
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove every key owned by this backend."""
        pass

    def disconnect(self) -> None:
        """Release connections held by the backend."""


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Compile a ``*`` glob into an anchored regular expression.

    Only ``*`` is special; every other character matches literally.
    """
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile("^" + ".*".join(parts) + "$")


_REDIS_GLOB_SPECIALS = re.compile(r"([\\?\[\]])")


def escape_redis_glob(pattern: str) -> str:
    """
    Escape everything Redis ``MATCH`` treats as glob syntax except ``*``,
    so Redis matches the same keys as ``glob_to_regex``.
    """
    return _REDIS_GLOB_SPECIALS.sub(r"\\\1", pattern)
