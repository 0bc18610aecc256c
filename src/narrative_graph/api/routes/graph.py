from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.concurrency import run_in_threadpool

from ...cache import CacheCoordinator, CacheTTL
from ...graph import NarrativeGraphService, allowed_pairs, check_compatibility
from ..caching import serve_cached
from ..dependencies import get_cache, get_graph
from ..envelope import envelope
from ..schemas import csv_list


def build_graph_router() -> APIRouter:
    r = APIRouter(prefix="/graph", tags=["graph"])

    @r.get("/compatibility")
    async def compatibility(
        from_type: str | None = None,
        to_type: str | None = None,
        relation_type: str | None = None,
    ):
        """Check one triple, or list the whole table when no triple is given."""
        if from_type and to_type and relation_type:
            verdict = check_compatibility(from_type, to_type, relation_type)
            return envelope(
                {
                    "from_type": from_type,
                    "relation_type": relation_type,
                    "to_type": to_type,
                    "valid": verdict.valid,
                    "reason": verdict.reason,
                }
            )
        return envelope(
            [
                {"from_type": src.value, "relation_type": rel.value, "to_type": dst.value}
                for src, rel, dst in allowed_pairs()
            ]
        )

    @r.get("/stats")
    async def stats(
        background: BackgroundTasks,
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        return await serve_cached(
            cache,
            background,
            key=cache.keys.graph_stats(),
            ttl=CacheTTL.GRAPH_STATS,
            load=graph.graph_stats,
        )

    @r.get("/traverse")
    async def traverse(
        start_node_id: str,
        background: BackgroundTasks,
        max_depth: int = 3,
        relationship_types: str | None = None,
        node_types: str | None = None,
        direction: str = "outgoing",
        graph: NarrativeGraphService = Depends(get_graph),
        cache: CacheCoordinator = Depends(get_cache),
    ):
        rel_types = csv_list(relationship_types)
        end_types = csv_list(node_types)
        params = {
            "max_depth": max_depth,
            "relationship_types": rel_types,
            "node_types": end_types,
            "direction": direction,
        }
        return await serve_cached(
            cache,
            background,
            key=cache.keys.traversal(start_node_id, params),
            ttl=CacheTTL.TRAVERSAL,
            load=lambda: graph.traverse(
                start_node_id,
                max_depth=max_depth,
                relationship_types=rel_types,
                node_types=end_types,
                direction=direction,
            ),
        )

    @r.post("/validate")
    async def validate_structure(graph: NarrativeGraphService = Depends(get_graph)):
        # Always read live; an audit answered from cache would hide fresh damage.
        return envelope(await run_in_threadpool(graph.validate_structure))

    return r
