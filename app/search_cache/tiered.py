from __future__ import annotations

import logging
from typing import Any, Iterable

from app.search_cache.backends import CacheBackend

logger = logging.getLogger(__name__)


class TieredSearchCache:
    """Ordered cache backends, tried first to last.

    Reads return the first hit together with the backend name. Writes and
    invalidations go to every available backend.
    """

    def __init__(self, backends: Iterable[CacheBackend]) -> None:
        self.backends = [backend for backend in backends if backend is not None]

    def get(self, key: str) -> tuple[Any, str | None]:
        for backend in self.backends:
            if not backend.is_available():
                continue
            value = backend.get(key)
            if value is not None:
                return value, backend.name
        return None, None

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        for backend in self.backends:
            if backend.is_available():
                backend.set(key, value, ttl_seconds)

    def invalidate_all(self) -> dict[str, int]:
        cleared = {}
        for backend in self.backends:
            cleared[backend.name] = backend.clear() if backend.is_available() else 0
        logger.info("[CACHE] full invalidation %s", cleared)
        return cleared

    def backend(self, name: str) -> CacheBackend | None:
        for backend in self.backends:
            if backend.name == name:
                return backend
        return None

    def stats(self) -> dict[str, dict[str, Any]]:
        return {backend.name: backend.stats() for backend in self.backends}
