"""Local identity -> pointer cache.

Remembers where the last committed snapshot of each wallet lives so the
memory manager can find it again on the next connect. The Redis backend
keys entries as ``intentvault:pointer:{identity}``.
"""

from __future__ import annotations

from typing import Protocol
from typing import runtime_checkable

from redis.asyncio import Redis  # type: ignore[import-untyped]

from intentvault.config import MemoryConfig

_PREFIX = "intentvault"
_POINTER_KEY = f"{_PREFIX}:pointer"


@runtime_checkable
class PointerCache(Protocol):
    """Identity-keyed string store."""

    async def get(self, identity: str) -> str | None: ...

    async def set(self, identity: str, pointer: str) -> None: ...

    async def delete(self, identity: str) -> None: ...


class InMemoryPointerCache:
    """Process-local cache, used in tests and single-process deployments."""

    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    async def get(self, identity: str) -> str | None:
        return self._entries.get(identity)

    async def set(self, identity: str, pointer: str) -> None:
        self._entries[identity] = pointer

    async def delete(self, identity: str) -> None:
        self._entries.pop(identity, None)


class RedisPointerCache:
    """Redis-backed pointer cache.

    Entries carry an optional TTL so that pointers outliving the blob
    store's retention window eventually disappear on their own.
    """

    def __init__(self, redis: Redis, *, ttl: int | None = None) -> None:
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _key(identity: str) -> str:
        return f"{_POINTER_KEY}:{identity}"

    async def get(self, identity: str) -> str | None:
        raw = await self._redis.get(self._key(identity))
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, bytes) else raw

    async def set(self, identity: str, pointer: str) -> None:
        await self._redis.set(self._key(identity), pointer, ex=self._ttl)

    async def delete(self, identity: str) -> None:
        await self._redis.delete(self._key(identity))

    async def close(self) -> None:
        await self._redis.aclose()


def build_pointer_cache(config: MemoryConfig) -> PointerCache:
    """Redis-backed cache when ``config.redis_url`` is set, else process-local."""
    if config.redis_url:
        return RedisPointerCache(Redis.from_url(config.redis_url))
    return InMemoryPointerCache()
