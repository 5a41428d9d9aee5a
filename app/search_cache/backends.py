from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

import redis

from config.settings import (
    COLLABORATOR_RETRY_SECONDS,
    MEMORY_CACHE_EVICT_BATCH,
    MEMORY_CACHE_MAX_ENTRIES,
    SEARCH_CACHE_TTL_SECONDS,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = SEARCH_CACHE_TTL_SECONDS
MEMORY_MAX_ENTRIES = MEMORY_CACHE_MAX_ENTRIES
MEMORY_EVICT_BATCH = MEMORY_CACHE_EVICT_BATCH
REDIS_KEY_PREFIX = "search:"
REDIS_RETRY_SECONDS = float(COLLABORATOR_RETRY_SECONDS)


def _hit_rate(hits: int, misses: int) -> str:
    total = hits + misses
    if total <= 0:
        return "0%"
    return f"{hits / total * 100:.2f}%"


class CacheBackend:
    """One tier of the search response cache."""

    name = ""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def is_available(self) -> bool:
        return True

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raise NotImplementedError

    def clear(self) -> int:
        raise NotImplementedError

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def stats(self) -> dict[str, Any]:
        return {
            "backend": self.name,
            "enabled": self.is_available(),
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hitRate": _hit_rate(self.hits, self.misses),
        }


class MemorySearchCache(CacheBackend):
    """Process-local TTL cache. When full, expired entries go first, then the oldest batch."""

    name = "memory"

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = MEMORY_MAX_ENTRIES,
        evict_batch: int = MEMORY_EVICT_BATCH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.evict_batch = evict_batch
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._prune_expired_locked(now)
                if len(self._entries) >= self.max_entries:
                    for old_key in list(self._entries.keys())[: self.evict_batch]:
                        self._entries.pop(old_key, None)
            self._entries[key] = (now + ttl, value)

    def _prune_expired_locked(self, now: float) -> None:
        expired = [key for key, (expires_at, _value) in self._entries.items() if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)

    def prune_expired(self) -> None:
        with self._lock:
            self._prune_expired_locked(self._clock())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry[0] > self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("[CACHE] memory cache cleared entries=%s", count)
        return count

    def stats(self) -> dict[str, Any]:
        stats = super().stats()
        stats.update({"size": len(self._entries), "maxSize": self.max_entries})
        return stats


class RedisSearchCache(CacheBackend):
    """Shared cache tier backed by redis; JSON values under the ``search:`` prefix.

    Connection problems never propagate: they are counted and the tier
    reports itself unavailable until the retry interval passes.
    """

    name = "redis"

    def __init__(
        self,
        url: str | None = None,
        *,
        client: Any = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        prefix: str = REDIS_KEY_PREFIX,
        retry_seconds: float = REDIS_RETRY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self.retry_seconds = retry_seconds
        self._clock = clock
        self._client = client
        if self._client is None and url:
            self._client = redis.Redis.from_url(url, socket_connect_timeout=2, decode_responses=True)
        self._available: bool | None = None
        self._checked_at = 0.0

    def _mark_failed(self, operation: str, exc: Exception) -> None:
        self.errors += 1
        if self._available is not False:
            logger.warning("[CACHE] redis %s failed, falling back: %s", operation, exc)
        self._available = False
        self._checked_at = self._clock()

    def is_available(self) -> bool:
        if self._client is None:
            return False
        now = self._clock()
        if self._available is None or (not self._available and now - self._checked_at >= self.retry_seconds):
            self._checked_at = now
            try:
                self._client.ping()
            except redis.RedisError as exc:
                self._mark_failed("ping", exc)
                return False
            if self._available is not True:
                logger.info("[CACHE] redis connected")
            self._available = True
        return bool(self._available)

    def get(self, key: str) -> Any:
        if not self.is_available():
            return None
        try:
            raw = self._client.get(self.prefix + key)
        except redis.RedisError as exc:
            self._mark_failed("get", exc)
            return None
        if raw is None:
            self.misses += 1
            return None
        try:
            value = json.loads(raw)
        except ValueError as exc:
            self.errors += 1
            logger.warning("[CACHE] redis value for %s is not valid JSON: %s", key, exc)
            return None
        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if not self.is_available():
            return
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            self._client.setex(self.prefix + key, int(ttl), json.dumps(value, ensure_ascii=False, default=str))
        except redis.RedisError as exc:
            self._mark_failed("set", exc)

    def clear(self) -> int:
        if not self.is_available():
            return 0
        try:
            keys = self._client.keys(f"{self.prefix}*")
            count = self._client.delete(*keys) if keys else 0
        except redis.RedisError as exc:
            self._mark_failed("clear", exc)
            return 0
        logger.info("[CACHE] redis cache cleared keys=%s", count)
        return int(count or 0)

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as exc:
                logger.warning("[CACHE] redis close failed: %s", exc)
        self._client = None
        self._available = False
