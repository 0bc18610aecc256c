from .cache import build_cache_router
from .consistency import build_consistency_router
from .graph import build_graph_router
from .health import build_health_router
from .nodes import build_nodes_router
from .relationships import build_relationships_router

__all__ = [
    "build_cache_router",
    "build_consistency_router",
    "build_graph_router",
    "build_health_router",
    "build_nodes_router",
    "build_relationships_router",
]
