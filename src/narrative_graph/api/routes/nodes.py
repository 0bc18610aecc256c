from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.concurrency import run_in_threadpool

from ...cache import CacheCoordinator, CacheTTL, Mutation
from ...graph import NarrativeGraphService
from ..caching import schedule_invalidation, serve_cached
from ..dependencies import get_cache, get_graph
from ..envelope import envelope
from ..schemas import NodeIn, NodeUpdateIn, csv_list


def build_nodes_router() -> APIRouter:
    r = APIRouter(prefix="/nodes", tags=["nodes"])

    @r.get("")
    async def list_nodes(
        background: BackgroundTasks,
        type: str | None = None,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        params = {"page": page, "limit": limit, "search": search}
        return await serve_cached(
            cache,
            background,
            key=cache.keys.nodes(type, params),
            ttl=CacheTTL.NODES_LIST,
            load=lambda: graph.list_nodes(node_type=type, page=page, limit=limit, search=search),
        )

    @r.post("", status_code=201)
    async def create_node(
        payload: NodeIn,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        node = await run_in_threadpool(graph.create_node, payload.type, payload.properties)
        schedule_invalidation(cache, background, Mutation.NODE)
        return envelope(node.to_dict(), status_code=201)

    @r.get("/{node_id}")
    async def get_node(
        node_id: str,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        return await serve_cached(
            cache,
            background,
            key=cache.keys.node(node_id),
            ttl=CacheTTL.NODE,
            load=lambda: graph.get_node(node_id).to_dict(),
        )

    @r.put("/{node_id}")
    async def update_node(
        node_id: str,
        payload: NodeUpdateIn,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        node = await run_in_threadpool(graph.update_node, node_id, payload.properties)
        schedule_invalidation(cache, background, Mutation.NODE)
        return envelope(node.to_dict())

    @r.delete("/{node_id}")
    async def delete_node(
        node_id: str,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        await run_in_threadpool(graph.delete_node, node_id)
        # Attached relationships went with the node.
        schedule_invalidation(cache, background, Mutation.NODE_DELETE)
        return envelope({"id": node_id, "deleted": True})

    @r.get("/{node_id}/relationships")
    async def node_relationships(
        node_id: str,
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        return await serve_cached(
            cache,
            background,
            key=cache.keys.node_relationships(node_id),
            ttl=CacheTTL.RELATIONSHIPS,
            load=lambda: [e.to_dict() for e in graph.relationships_for_node(node_id)],
        )

    @r.get("/{node_id}/neighbors")
    async def node_neighbors(
        node_id: str,
        background: BackgroundTasks,
        direction: str = "both",
        relationship_types: str | None = None,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        rel_types = csv_list(relationship_types)
        return await serve_cached(
            cache,
            background,
            key=cache.keys.neighbors(node_id, {"direction": direction, "relationship_types": rel_types}),
            ttl=CacheTTL.NEIGHBORS,
            load=lambda: graph.neighbors(node_id, direction=direction, relationship_types=rel_types),
        )

    return r
