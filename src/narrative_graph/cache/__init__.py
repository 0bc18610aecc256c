from .coordinator import CacheCoordinator, CacheLookup, CacheMetrics, Mutation
from .keys import CacheKeys, CacheTTL, params_digest
from .store import CacheStore, InMemoryCacheStore, RedisCacheStore, build_cache_store

__all__ = [
    "CacheCoordinator",
    "CacheKeys",
    "CacheLookup",
    "CacheMetrics",
    "CacheStore",
    "CacheTTL",
    "InMemoryCacheStore",
    "Mutation",
    "RedisCacheStore",
    "build_cache_store",
    "params_digest",
]
