"""
Key/value cache with exact and glob invalidation.
"""

from quillpress.cache.base import CacheBackend
from quillpress.cache.memory import MemoryCache
from quillpress.cache.redis_cache import RedisCache
from quillpress.cache.service import CacheService

__all__ = ["CacheBackend", "CacheService", "MemoryCache", "RedisCache"]
