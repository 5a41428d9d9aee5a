"""Tiered response cache for search results: redis first, then process memory."""

from app.search_cache.backends import (
    DEFAULT_TTL_SECONDS,
    CacheBackend,
    MemorySearchCache,
    RedisSearchCache,
)
from app.search_cache.tiered import TieredSearchCache

__all__ = [
    "CacheBackend",
    "DEFAULT_TTL_SECONDS",
    "MemorySearchCache",
    "RedisSearchCache",
    "TieredSearchCache",
]
