"""
Cache stages composed by the route handlers.

`serve_cached` answers a read from the cache or the loader and schedules the
store; `schedule_invalidation` queues the pattern scope of a mutation. Both
add background tasks, which FastAPI only runs once the handler has returned
a response, so a failed mutation never invalidates anything.
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import BackgroundTasks
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..cache import CacheCoordinator, Mutation
from .envelope import envelope


async def serve_cached(
    cache: CacheCoordinator,
    background: BackgroundTasks,
    *,
    key: str,
    ttl: int,
    load: Callable[[], Any],
) -> JSONResponse:
    lookup = await cache.lookup(key)
    if lookup.hit:
        return envelope(lookup.value, headers={"X-Cache": "HIT", "X-Cache-Key": key})

    data = await run_in_threadpool(load)
    background.add_task(cache.store_value, key, data, ttl)
    return envelope(data, headers={"X-Cache": "MISS", "X-Cache-Key": key})


def schedule_invalidation(
    cache: CacheCoordinator,
    background: BackgroundTasks,
    mutation: Mutation,
) -> None:
    background.add_task(cache.invalidate_for, mutation)
