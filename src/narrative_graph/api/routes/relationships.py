from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.concurrency import run_in_threadpool

from ...cache import CacheCoordinator, CacheTTL, Mutation
from ...graph import NarrativeGraphService
from ..caching import schedule_invalidation, serve_cached
from ..dependencies import get_cache, get_graph
from ..envelope import envelope
from ..schemas import RelationshipIn, RelationshipUpdateIn


def build_relationships_router() -> APIRouter:
    r = APIRouter(prefix="/relationships", tags=["relationships"])

    @r.get("")
    async def list_relationships(
        background: BackgroundTasks,
        type: str | None = None,
        from_node_id: str | None = None,
        to_node_id: str | None = None,
        page: int = 1,
        limit: int = 20,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        params = {
            "type": type,
            "from_node_id": from_node_id,
            "to_node_id": to_node_id,
            "page": page,
            "limit": limit,
        }
        return await serve_cached(
            cache,
            background,
            key=cache.keys.relationships(params),
            ttl=CacheTTL.RELATIONSHIPS,
            load=lambda: graph.list_relationships(
                relation_type=type,
                from_node_id=from_node_id,
                to_node_id=to_node_id,
                page=page,
                limit=limit,
            ),
        )

    @r.post("", status_code=201)
    async def create_relationship(
        payload: RelationshipIn,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        edge = await run_in_threadpool(
            graph.create_relationship,
            payload.type,
            payload.from_node_id,
            payload.to_node_id,
            payload.properties,
        )
        schedule_invalidation(cache, background, Mutation.RELATIONSHIP)
        return envelope(edge.to_dict(), status_code=201)

    @r.get("/{relationship_id}")
    async def get_relationship(
        relationship_id: str,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        return await serve_cached(
            cache,
            background,
            key=cache.keys.relationship(relationship_id),
            ttl=CacheTTL.RELATIONSHIPS,
            load=lambda: graph.get_relationship(relationship_id).to_dict(),
        )

    @r.put("/{relationship_id}")
    async def update_relationship(
        relationship_id: str,
        payload: RelationshipUpdateIn,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        edge = await run_in_threadpool(graph.update_relationship, relationship_id, payload.properties)
        schedule_invalidation(cache, background, Mutation.RELATIONSHIP)
        return envelope(edge.to_dict())

    @r.delete("/{relationship_id}")
    async def delete_relationship(
        relationship_id: str,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        await run_in_threadpool(graph.delete_relationship, relationship_id)
        schedule_invalidation(cache, background, Mutation.RELATIONSHIP)
        return envelope({"id": relationship_id, "deleted": True})

    return r
