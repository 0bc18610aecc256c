"""
Cache coordinator: read-through lookups, TTL-bound stores and
pattern-scoped invalidation after successful mutations.

Nothing here raises on a cache failure. The cache is an optimization and a
broken Redis must never turn a read or write into an error response.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from ..errors import CacheError
from .keys import CacheKeys, CacheTTL
from .store import CacheStore

logger = logging.getLogger(__name__)


class Mutation(Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"
    NODE_DELETE = "node_delete"


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def reset(self) -> None:
        self.hits = self.misses = self.sets = self.invalidations = self.errors = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "invalidations": self.invalidations,
            "errors": self.errors,
            "total_requests": self.hits + self.misses,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass(frozen=True)
class CacheLookup:
    hit: bool
    value: Any = None


@dataclass
class CacheCoordinator:
    store: CacheStore | None
    keys: CacheKeys = field(default_factory=CacheKeys)
    metrics: CacheMetrics = field(default_factory=CacheMetrics)
    default_ttl: int = CacheTTL.DEFAULT

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def scope(self, mutation: Mutation) -> list[str]:
        shared = ["graph:stats", "traversal:*", "neighbors:*"]
        node = ["nodes:*", "node:*"]
        rel = ["relationships:*", "relationship:*"]
        if mutation is Mutation.NODE:
            suffixes = node + shared
        elif mutation is Mutation.RELATIONSHIP:
            suffixes = rel + shared
        else:
            suffixes = node + rel + shared
        return [self.keys.pattern(s) for s in suffixes]

    async def lookup(self, key: str) -> CacheLookup:
        if self.store is None:
            return CacheLookup(False)
        try:
            raw = await self.store.get(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            self.metrics.errors += 1
            self.metrics.misses += 1
            return CacheLookup(False)
        if raw is None:
            self.metrics.misses += 1
            return CacheLookup(False)
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            self.metrics.errors += 1
            self.metrics.misses += 1
            return CacheLookup(False)
        self.metrics.hits += 1
        return CacheLookup(True, value)

    async def store_value(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if self.store is None:
            return
        ttl = ttl_seconds or self.default_ttl
        try:
            payload = json.dumps(value, default=str).encode()
            await self.store.set(key, payload, ttl)
        except (CacheError, TypeError, ValueError) as e:
            logger.warning("Cache store failed for %s: %s", key, e)
            self.metrics.errors += 1
            return
        self.metrics.sets += 1
        logger.debug("Cached %s (ttl=%ss)", key, ttl)

    async def invalidate(self, patterns: Iterable[str]) -> int:
        if self.store is None:
            return 0
        deleted = 0
        for pattern in patterns:
            try:
                deleted += await self.store.delete_matching(pattern)
            except CacheError as e:
                logger.warning("Cache invalidation failed for %s: %s", pattern, e)
                self.metrics.errors += 1
        self.metrics.invalidations += 1
        if deleted:
            logger.debug("Invalidated %d cache entries", deleted)
        return deleted

    async def invalidate_for(self, mutation: Mutation) -> int:
        return await self.invalidate(self.scope(mutation))
