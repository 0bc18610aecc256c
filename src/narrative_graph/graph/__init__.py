"""Story graph model, compatibility gate and graph store access."""

from .compatibility import CompatibilityResult, allowed_pairs, check_compatibility
from .models import Edge, Node, NodeType, RelationType
from .service import NarrativeGraphService
from .store import GraphStore

__all__ = [
    "CompatibilityResult",
    "Edge",
    "GraphStore",
    "NarrativeGraphService",
    "Node",
    "NodeType",
    "RelationType",
    "allowed_pairs",
    "check_compatibility",
]
