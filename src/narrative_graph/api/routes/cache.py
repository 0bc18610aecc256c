from __future__ import annotations

from fastapi import APIRouter, Depends

from ...cache import CacheCoordinator
from ..dependencies import get_cache
from ..envelope import envelope


def build_cache_router() -> APIRouter:
    r = APIRouter(prefix="/cache", tags=["cache"])

    @r.get("/metrics")
    async def metrics(cache: CacheCoordinator = Depends(get_cache)):
        return envelope({"enabled": cache.enabled, **cache.metrics.to_dict()})

    return r
