"""Tests for the process-local pointer cache and the cache factory."""

from __future__ import annotations

from intentvault.config import MemoryConfig
from intentvault.memory.pointer_cache import build_pointer_cache
from intentvault.memory.pointer_cache import InMemoryPointerCache
from intentvault.memory.pointer_cache import PointerCache
from intentvault.memory.pointer_cache import RedisPointerCache


class TestInMemoryPointerCache:
    async def test_set_get_delete(self):
        cache = InMemoryPointerCache()
        assert await cache.get("0xW") is None
        await cache.set("0xW", "blob-1")
        assert await cache.get("0xW") == "blob-1"
        await cache.set("0xW", "blob-2")
        assert await cache.get("0xW") == "blob-2"
        await cache.delete("0xW")
        assert await cache.get("0xW") is None

    async def test_seeded_entries_are_copied(self):
        seed = {"0xW": "blob-1"}
        cache = InMemoryPointerCache(seed)
        await cache.set("0xW", "blob-2")
        assert seed == {"0xW": "blob-1"}

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryPointerCache(), PointerCache)


class TestBuildPointerCache:
    def test_without_redis_url_uses_memory(self):
        assert isinstance(build_pointer_cache(MemoryConfig()), InMemoryPointerCache)

    async def test_with_redis_url_uses_redis(self):
        cache = build_pointer_cache(MemoryConfig(redis_url="redis://localhost:6399/0"))
        assert isinstance(cache, RedisPointerCache)
        assert isinstance(cache, PointerCache)
        await cache.close()
