"""
Core graph element types for the narrative property graph.

Nodes and edges are owned by the graph store; the engine reads them and
proposes new edges through the compatibility gate.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class NodeType(Enum):
    """Node labels allowed in the story graph."""
    SCENE = "Scene"
    CHARACTER = "Character"
    CHOICE = "Choice"
    EVENT = "Event"
    LOCATION = "Location"
    ITEM = "Item"
    # Containers
    STORY = "Story"
    KNOT = "Knot"
    STITCH = "Stitch"
    CONTENT_ELEMENT = "ContentElement"


class RelationType(Enum):
    """Relationship types allowed in the story graph."""
    LEADS_TO = "LEADS_TO"
    APPEARS_IN = "APPEARS_IN"
    TRIGGERS = "TRIGGERS"
    REQUIRES = "REQUIRES"
    LOCATED_AT = "LOCATED_AT"
    # Hierarchy and cross-cutting links
    CONTAINS = "CONTAINS"
    BELONGS_TO = "BELONGS_TO"
    CONVERGES_TO = "CONVERGES_TO"
    GROUPED_WITH = "GROUPED_WITH"
    INFLUENCES = "INFLUENCES"
    APPEARS_THROUGHOUT = "APPEARS_THROUGHOUT"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Node:
    """Represents a node in the story graph."""
    type: NodeType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "properties": self.properties,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Edge:
    """Represents a directed, typed relationship between two nodes."""
    type: RelationType
    from_node_id: str
    to_node_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "from_node_id": self.from_node_id,
            "to_node_id": self.to_node_id,
            "properties": self.properties,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# Keys the store manages itself; never accepted from callers as properties.
SYSTEM_KEYS = frozenset({"id", "type", "created_at", "updated_at", "from_node_id", "to_node_id"})


def encode_properties(properties: dict[str, Any]) -> dict[str, Any]:
    """Prepare caller properties for the graph store.

    Neo4j only stores scalars and homogeneous lists, so nested mappings (and
    lists containing mappings) are serialized to JSON strings.
    """
    out: dict[str, Any] = {}
    for key, value in properties.items():
        if key in SYSTEM_KEYS:
            continue
        if isinstance(value, dict) or (
            isinstance(value, list) and any(isinstance(v, (dict, list)) for v in value)
        ):
            out[key] = json.dumps(value, sort_keys=True, default=str)
        else:
            out[key] = value
    return out


def decode_mapping(value: Any) -> dict[str, Any] | None:
    """Inverse of encode_properties for a single mapping-valued property."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if hasattr(value, "to_native"):
        # neo4j.time.DateTime
        return value.to_native()
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            pass
    return utcnow()
