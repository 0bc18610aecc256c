from __future__ import annotations

import hashlib
import json
from typing import Any


class CacheTTL:
    """TTL policy per resource, in seconds."""

    NODES_LIST = 600
    NODE = 900
    RELATIONSHIPS = 300
    GRAPH_STATS = 1800
    TRAVERSAL = 600
    NEIGHBORS = 600
    DEFAULT = 300


def params_digest(params: dict[str, Any] | None) -> str:
    """Stable hash of filter parameters; key order does not matter."""
    param_str = json.dumps(params or {}, sort_keys=True, default=str)
    return hashlib.md5(param_str.encode()).hexdigest()


class CacheKeys:
    """Derives cache keys of the form ``{prefix}:{resource}[:...]``."""

    def __init__(self, prefix: str = "ng"):
        self.prefix = prefix

    def _k(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))

    def node(self, node_id: str) -> str:
        return self._k("node", node_id)

    def nodes(self, node_type: str | None, params: dict[str, Any] | None = None) -> str:
        return self._k("nodes", node_type or "all", params_digest(params))

    def relationship(self, relationship_id: str) -> str:
        return self._k("relationship", relationship_id)

    def node_relationships(self, node_id: str) -> str:
        return self._k("relationships", "node", node_id)

    def relationships(self, params: dict[str, Any] | None = None) -> str:
        return self._k("relationships", "list", params_digest(params))

    def graph_stats(self) -> str:
        return self._k("graph", "stats")

    def traversal(self, start_node_id: str, params: dict[str, Any] | None = None) -> str:
        return self._k("traversal", start_node_id, params_digest(params))

    def neighbors(self, node_id: str, params: dict[str, Any] | None = None) -> str:
        return self._k("neighbors", node_id, params_digest(params))

    def pattern(self, suffix: str) -> str:
        return self._k(suffix)
