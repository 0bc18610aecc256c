from __future__ import annotations

import os

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ... import __version__
from ...cache import CacheCoordinator
from ...errors import CollaboratorError
from ...graph import GraphStore
from ..dependencies import get_cache, get_store
from ..envelope import envelope


def build_health_router() -> APIRouter:
    r = APIRouter(tags=["health"])

    @r.get("/health")
    async def health():
        return envelope(
            {"status": "healthy", "version": __version__, "host": os.uname().nodename}
        )

    @r.get("/health/detailed")
    async def health_detailed(
        store: GraphStore = Depends(get_store),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        try:
            await run_in_threadpool(store.query, "RETURN 1 AS ok")
            graph_status = "connected"
        except CollaboratorError:
            graph_status = "disconnected"

        if not cache.enabled:
            cache_status = "disabled"
        else:
            cache_status = "connected" if await cache.store.ping() else "disconnected"

        healthy = graph_status == "connected" and cache_status != "disconnected"
        return envelope(
            {
                "status": "healthy" if healthy else "degraded",
                "version": __version__,
                "services": {"neo4j": graph_status, "cache": cache_status},
            },
            status_code=200 if healthy else 503,
        )

    return r
