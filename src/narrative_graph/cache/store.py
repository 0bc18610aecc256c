"""
Cache store backends.

The coordinator only talks to the `CacheStore` protocol. Backends raise
`CacheError` on failure and leave swallowing to the coordinator.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import CacheError

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None: ...

    async def delete_matching(self, pattern: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisCacheStore:
    """redis.asyncio backend; pattern deletion walks keys with SCAN, never KEYS."""

    def __init__(self, url: str, *, scan_count: int = 500):
        self.url = url
        self.scan_count = scan_count
        self._client = redis.from_url(url)

    async def get(self, key: str) -> bytes | None:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise CacheError(f"Redis get failed for {key}", details=str(e)) from e

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, ttl_seconds, value)
        except RedisError as e:
            raise CacheError(f"Redis set failed for {key}", details=str(e)) from e

    async def delete_matching(self, pattern: str) -> int:
        deleted = 0
        try:
            batch: list[bytes] = []
            async for key in self._client.scan_iter(match=pattern, count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.scan_count:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
        except RedisError as e:
            raise CacheError(f"Redis delete failed for {pattern}", details=str(e)) from e
        return deleted

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryCacheStore:
    """Process-local store. Expiry uses the monotonic clock.

    Expired entries are dropped on read, and `set` sweeps the whole map at
    most once every `sweep_interval` seconds so keys that are never read
    again do not pile up.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = 0.0
        self._data: dict[str, tuple[bytes, float]] = {}

    async def get(self, key: str) -> bytes | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self._sweep(now)
        self._data[key] = (value, now + ttl_seconds)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))

    async def delete_matching(self, pattern: str) -> int:
        doomed = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
        for k in doomed:
            del self._data[k]
        return len(doomed)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


def build_cache_store(backend: str, redis_url: str) -> CacheStore | None:
    backend = (backend or "none").lower()
    if backend == "redis":
        logger.info("Using Redis cache at %s", redis_url)
        return RedisCacheStore(redis_url)
    if backend == "memory":
        logger.info("Using in-memory cache")
        return InMemoryCacheStore()
    if backend == "none":
        logger.info("Caching disabled")
        return None
    raise ValueError(f"Unknown cache backend: {backend}")
