from __future__ import annotations

import json

import redis

from app.search_cache import MemorySearchCache, RedisSearchCache, TieredSearchCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail
        self.pings = 0

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def ping(self) -> bool:
        self.pings += 1
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def keys(self, pattern):
        self._check()
        prefix = pattern.rstrip("*")
        return [key for key in self.data if key.startswith(prefix)]

    def delete(self, *keys):
        self._check()
        for key in keys:
            self.data.pop(key, None)
        return len(keys)

    def close(self) -> None:
        pass


def test_memory_cache_expires_entries() -> None:
    clock = FakeClock()
    cache = MemorySearchCache(ttl_seconds=30, clock=clock)

    cache.set("q", {"results": []})
    assert cache.get("q") == {"results": []}

    clock.now += 30
    assert cache.get("q") is None
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hitRate"] == "50.00%"
    assert stats["size"] == 0


def test_memory_cache_evicts_expired_then_oldest() -> None:
    clock = FakeClock()
    cache = MemorySearchCache(ttl_seconds=30, max_entries=3, evict_batch=2, clock=clock)
    cache.set("short", 1, ttl_seconds=1)
    cache.set("a", 2)
    cache.set("b", 3)
    clock.now += 5

    cache.set("c", 4)
    assert "short" not in cache
    assert len(cache) == 3

    cache.set("d", 5)
    assert "a" not in cache
    assert "b" not in cache
    assert cache.get("d") == 5


def test_memory_cache_clear_counts_entries() -> None:
    cache = MemorySearchCache()
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.clear() == 2
    assert cache.stats()["hitRate"] == "0%"


def test_redis_cache_stores_json_with_prefix() -> None:
    client = FakeRedis()
    cache = RedisSearchCache(client=client, ttl_seconds=30)

    cache.set("hello:{}", {"query": "hello"})

    assert client.data["search:hello:{}"] == json.dumps({"query": "hello"})
    assert client.ttls["search:hello:{}"] == 30
    assert cache.get("hello:{}") == {"query": "hello"}
    assert cache.get("missing") is None
    assert cache.clear() == 1
    assert cache.stats()["backend"] == "redis"


def test_redis_failures_are_contained_and_retried_later() -> None:
    clock = FakeClock()
    client = FakeRedis(fail=True)
    cache = RedisSearchCache(client=client, retry_seconds=30, clock=clock)

    assert cache.get("q") is None
    cache.set("q", {"a": 1})
    assert cache.is_available() is False
    assert client.pings == 1
    assert cache.stats()["errors"] == 1

    client.fail = False
    clock.now += 30
    assert cache.is_available() is True
    cache.set("q", {"a": 1})
    assert cache.get("q") == {"a": 1}


def test_redis_without_url_is_disabled() -> None:
    cache = RedisSearchCache(None)
    assert cache.is_available() is False
    assert cache.get("q") is None
    assert cache.clear() == 0


def test_tiered_cache_reports_serving_backend() -> None:
    client = FakeRedis()
    redis_tier = RedisSearchCache(client=client)
    memory_tier = MemorySearchCache()
    cache = TieredSearchCache([redis_tier, memory_tier])

    cache.set("k", {"v": 1})
    assert cache.get("k") == ({"v": 1}, "redis")

    client.data.clear()
    assert cache.get("k") == ({"v": 1}, "memory")
    assert cache.get("other") == (None, None)

    assert cache.invalidate_all() == {"redis": 0, "memory": 1}
    assert cache.backend("memory") is memory_tier
    assert set(cache.stats()) == {"redis", "memory"}


def test_tiered_cache_skips_unavailable_backend() -> None:
    cache = TieredSearchCache([RedisSearchCache(client=FakeRedis(fail=True)), MemorySearchCache()])
    cache.set("k", 1)
    assert cache.get("k") == (1, "memory")
