"""
Node and relationship CRUD on top of a GraphStore.

This layer only forwards validated payloads; the one rule it enforces itself
is the compatibility gate, which runs before any relationship is written.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from ..errors import NotFoundError, RelationshipConstraintError, ValidationError
from .compatibility import check_compatibility
from .models import (
    Edge,
    Node,
    NodeType,
    RelationType,
    encode_properties,
    parse_timestamp,
    utcnow,
)
from .store import GraphStore

logger = logging.getLogger(__name__)

NODE_LABELS = [t.value for t in NodeType]

MAX_PAGE_SIZE = 100
MAX_TRAVERSAL_DEPTH = 10
MAX_TRAVERSAL_PATHS = 500
MAX_STRUCTURE_ISSUES = 100
EDGE_AUDIT_BATCH = 1000

DIRECTIONS = ("outgoing", "incoming", "both")

# Cycles are only meaningful along narrative flow; CONTAINS/BELONGS_TO pairs
# form two-edge loops by construction.
CYCLE_RELATION_TYPES = (RelationType.LEADS_TO, RelationType.TRIGGERS, RelationType.REQUIRES)

# One labeled branch per node type so each lookup can use its id constraint.
NODE_BY_ID = (
    "CALL { "
    + " UNION ".join(f"MATCH (n:{t.value} {{id: $id}}) RETURN n" for t in NodeType)
    + " } RETURN n {.*} AS node, labels(n) AS labels LIMIT 1"
)


def _node_type(value: NodeType | str) -> NodeType:
    if isinstance(value, NodeType):
        return value
    try:
        return NodeType(value)
    except ValueError:
        raise ValidationError(f"Invalid node type: {value}", details={"allowed": NODE_LABELS}) from None


def _relation_type(value: RelationType | str) -> RelationType:
    if isinstance(value, RelationType):
        return value
    try:
        return RelationType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid relationship type: {value}",
            details={"allowed": [t.value for t in RelationType]},
        ) from None


def _narrative_type(labels: list[str] | None) -> NodeType | None:
    return next((NodeType(label) for label in labels or [] if label in NODE_LABELS), None)


def _path_pattern(direction: str, rel_types: list[RelationType], depth: int) -> str:
    # Types and depth are interpolated only after validation.
    rels = f"[:{'|'.join(t.value for t in rel_types)}*1..{depth}]"
    if direction == "outgoing":
        return f"-{rels}->"
    if direction == "incoming":
        return f"<-{rels}-"
    return f"-{rels}-"


def _paging(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        raise ValidationError("Page must be a positive integer")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return (page - 1) * limit, limit


def _pagination(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


class NarrativeGraphService:
    """CRUD for story nodes and relationships."""

    def __init__(self, store: GraphStore):
        self.store = store

    # -- nodes --------------------------------------------------------------

    def _row_to_node(self, row: dict[str, Any]) -> Node:
        props = dict(row["node"])
        node_type = _narrative_type(row.get("labels"))
        if node_type is None:
            raise NotFoundError(f"Node with id {props.get('id')} not found")
        node_id = props.pop("id")
        created_at = parse_timestamp(props.pop("created_at", None))
        updated_at = parse_timestamp(props.pop("updated_at", None))
        return Node(
            type=node_type,
            id=node_id,
            properties=props,
            created_at=created_at,
            updated_at=updated_at,
        )

    def create_node(self, node_type: NodeType | str, properties: dict[str, Any]) -> Node:
        nt = _node_type(node_type)
        node = Node(type=nt)
        # Label is interpolated only after enum validation.
        q = f"""
        CREATE (n:{nt.value} {{id: $id, created_at: $created_at, updated_at: $updated_at}})
        SET n += $props
        RETURN n {{.*}} AS node, labels(n) AS labels
        """
        rows = self.store.query(
            q,
            {
                "id": node.id,
                "created_at": node.created_at.isoformat(),
                "updated_at": node.updated_at.isoformat(),
                "props": encode_properties(properties),
            },
        )
        created = self._row_to_node(rows[0])
        logger.info("Created %s node %s", nt.value, created.id)
        return created

    def get_node(self, node_id: str) -> Node:
        rows = self.store.query(NODE_BY_ID, {"id": node_id})
        if not rows:
            raise NotFoundError(f"Node with id {node_id} not found")
        return self._row_to_node(rows[0])

    def list_nodes(
        self,
        *,
        node_type: NodeType | str | None = None,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
    ) -> dict[str, Any]:
        skip, limit = _paging(page, limit)
        labels = [_node_type(node_type).value] if node_type else NODE_LABELS
        where = """
        WHERE any(l IN labels(n) WHERE l IN $labels)
          AND ($search IS NULL
               OR toLower(coalesce(n.name, n.title, n.text, '')) CONTAINS toLower($search))
        """
        params = {"labels": labels, "search": search or None, "skip": skip, "limit": limit}
        rows = self.store.query(
            f"""
            MATCH (n) {where}
            RETURN n {{.*}} AS node, labels(n) AS labels
            ORDER BY n.created_at DESC
            SKIP $skip LIMIT $limit
            """,
            params,
        )
        count_rows = self.store.query(f"MATCH (n) {where} RETURN count(n) AS total", params)
        total = int(count_rows[0]["total"]) if count_rows else 0
        return {
            "nodes": [self._row_to_node(r).to_dict() for r in rows],
            "pagination": _pagination(page, limit, total),
        }

    def update_node(self, node_id: str, properties: dict[str, Any]) -> Node:
        # id and type are immutable; encode_properties drops them.
        node = self.get_node(node_id)
        q = f"""
        MATCH (n:{node.type.value} {{id: $id}})
        SET n += $props, n.updated_at = $updated_at
        RETURN n {{.*}} AS node, labels(n) AS labels
        """
        rows = self.store.query(
            q,
            {
                "id": node_id,
                "props": encode_properties(properties),
                "updated_at": utcnow().isoformat(),
            },
        )
        if not rows:
            raise NotFoundError(f"Node with id {node_id} not found")
        logger.info("Updated node %s", node_id)
        return self._row_to_node(rows[0])

    def delete_node(self, node_id: str) -> None:
        node = self.get_node(node_id)
        q = f"""
        MATCH (n:{node.type.value} {{id: $id}})
        DETACH DELETE n
        RETURN count(n) AS deleted
        """
        rows = self.store.query(q, {"id": node_id})
        if not rows or int(rows[0]["deleted"]) == 0:
            raise NotFoundError(f"Node with id {node_id} not found")
        logger.info("Deleted node %s", node_id)

    # -- relationships ------------------------------------------------------

    @staticmethod
    def _row_to_edge(row: dict[str, Any]) -> Edge:
        props = dict(row["rel"])
        edge_id = props.pop("id")
        created_at = parse_timestamp(props.pop("created_at", None))
        updated_at = parse_timestamp(props.pop("updated_at", None))
        return Edge(
            type=RelationType(row["rel_type"]),
            from_node_id=row["from_node_id"],
            to_node_id=row["to_node_id"],
            id=edge_id,
            properties=props,
            created_at=created_at,
            updated_at=updated_at,
        )

    _EDGE_RETURN = "RETURN r {.*} AS rel, type(r) AS rel_type, a.id AS from_node_id, b.id AS to_node_id"

    def create_relationship(
        self,
        relation_type: RelationType | str,
        from_node_id: str,
        to_node_id: str,
        properties: dict[str, Any] | None = None,
    ) -> Edge:
        from_node = self.get_node(from_node_id)
        to_node = self.get_node(to_node_id)

        verdict = check_compatibility(from_node.type, to_node.type, relation_type)
        if not verdict.valid:
            rel_label = relation_type.value if isinstance(relation_type, RelationType) else str(relation_type)
            logger.warning(
                "Rejected relationship %s -[%s]-> %s: %s",
                from_node.type.value, rel_label, to_node.type.value, verdict.reason,
            )
            raise RelationshipConstraintError(
                verdict.reason or "Invalid relationship combination",
                from_type=from_node.type.value,
                relation_type=rel_label,
                to_type=to_node.type.value,
            )

        # The gate accepted it, so the type is a known enum member.
        rel = RelationType(relation_type)
        edge = Edge(type=rel, from_node_id=from_node_id, to_node_id=to_node_id)
        q = f"""
        MATCH (a:{from_node.type.value} {{id: $from_id}})
        MATCH (b:{to_node.type.value} {{id: $to_id}})
        CREATE (a)-[r:{rel.value} {{id: $id, created_at: $created_at, updated_at: $updated_at}}]->(b)
        SET r += $props
        {self._EDGE_RETURN}
        """
        rows = self.store.query(
            q,
            {
                "from_id": from_node_id,
                "to_id": to_node_id,
                "id": edge.id,
                "created_at": edge.created_at.isoformat(),
                "updated_at": edge.updated_at.isoformat(),
                "props": encode_properties(properties or {}),
            },
        )
        created = self._row_to_edge(rows[0])
        logger.info(
            "Created %s relationship %s (%s -> %s)", rel.value, created.id, from_node_id, to_node_id
        )
        return created

    def get_relationship(self, relationship_id: str) -> Edge:
        rows = self.store.query(
            f"MATCH (a)-[r]->(b) WHERE r.id = $id {self._EDGE_RETURN} LIMIT 1",
            {"id": relationship_id},
        )
        if not rows:
            raise NotFoundError(f"Relationship with id {relationship_id} not found")
        return self._row_to_edge(rows[0])

    def update_relationship(self, relationship_id: str, properties: dict[str, Any]) -> Edge:
        # Endpoints and type are fixed at creation; only properties change.
        rows = self.store.query(
            f"""
            MATCH (a)-[r]->(b) WHERE r.id = $id
            SET r += $props, r.updated_at = $updated_at
            {self._EDGE_RETURN}
            """,
            {
                "id": relationship_id,
                "props": encode_properties(properties),
                "updated_at": utcnow().isoformat(),
            },
        )
        if not rows:
            raise NotFoundError(f"Relationship with id {relationship_id} not found")
        logger.info("Updated relationship %s", relationship_id)
        return self._row_to_edge(rows[0])

    def delete_relationship(self, relationship_id: str) -> None:
        rows = self.store.query(
            "MATCH ()-[r]->() WHERE r.id = $id DELETE r RETURN count(r) AS deleted",
            {"id": relationship_id},
        )
        if not rows or int(rows[0]["deleted"]) == 0:
            raise NotFoundError(f"Relationship with id {relationship_id} not found")
        logger.info("Deleted relationship %s", relationship_id)

    def list_relationships(
        self,
        *,
        relation_type: RelationType | str | None = None,
        from_node_id: str | None = None,
        to_node_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        skip, limit = _paging(page, limit)
        rel_type = _relation_type(relation_type).value if relation_type is not None else None
        where = """
        WHERE ($type IS NULL OR type(r) = $type)
          AND ($from_id IS NULL OR a.id = $from_id)
          AND ($to_id IS NULL OR b.id = $to_id)
        """
        params = {
            "type": rel_type,
            "from_id": from_node_id,
            "to_id": to_node_id,
            "skip": skip,
            "limit": limit,
        }
        rows = self.store.query(
            f"""
            MATCH (a)-[r]->(b) {where}
            {self._EDGE_RETURN}
            ORDER BY r.created_at DESC
            SKIP $skip LIMIT $limit
            """,
            params,
        )
        count_rows = self.store.query(f"MATCH (a)-[r]->(b) {where} RETURN count(r) AS total", params)
        total = int(count_rows[0]["total"]) if count_rows else 0
        return {
            "relationships": [self._row_to_edge(r).to_dict() for r in rows],
            "pagination": _pagination(page, limit, total),
        }

    def relationships_for_node(self, node_id: str) -> list[Edge]:
        node = self.get_node(node_id)
        rows = self.store.query(
            f"""
            MATCH (n:{node.type.value} {{id: $id}})-[r]-()
            WITH DISTINCT r
            MATCH (a)-[r]->(b)
            {self._EDGE_RETURN}
            ORDER BY r.created_at
            """,
            {"id": node_id},
        )
        return [self._row_to_edge(r) for r in rows]

    # -- aggregates ---------------------------------------------------------

    def graph_stats(self) -> dict[str, Any]:
        node_rows = self.store.query(
            """
            MATCH (n)
            UNWIND labels(n) AS label
            WITH label WHERE label IN $labels
            RETURN label, count(*) AS count
            """,
            {"labels": NODE_LABELS},
        )
        rel_rows = self.store.query("MATCH ()-[r]->() RETURN type(r) AS type, count(r) AS count")
        nodes = {r["label"]: int(r["count"]) for r in node_rows}
        relationships = {r["type"]: int(r["count"]) for r in rel_rows}
        return {
            "nodes": nodes,
            "relationships": relationships,
            "total_nodes": sum(nodes.values()),
            "total_relationships": sum(relationships.values()),
        }

    # -- traversal ----------------------------------------------------------

    def traverse(
        self,
        start_node_id: str,
        *,
        max_depth: int = 3,
        relationship_types: list[RelationType | str] | None = None,
        node_types: list[NodeType | str] | None = None,
        direction: str = "outgoing",
        limit: int = MAX_TRAVERSAL_PATHS,
    ) -> dict[str, Any]:
        """Walk variable-length paths out of `start_node_id`.

        Only story nodes are followed. `node_types` restricts where a path may
        end, `relationship_types` which edges it may use. The result holds the
        distinct nodes and relationships seen plus each path as lists of ids.
        """
        if not isinstance(max_depth, int) or not 1 <= max_depth <= MAX_TRAVERSAL_DEPTH:
            raise ValidationError(f"max_depth must be between 1 and {MAX_TRAVERSAL_DEPTH}")
        if direction not in DIRECTIONS:
            raise ValidationError(
                f"Invalid direction: {direction}", details={"allowed": list(DIRECTIONS)}
            )
        if limit < 1 or limit > MAX_TRAVERSAL_PATHS:
            raise ValidationError(f"Limit must be between 1 and {MAX_TRAVERSAL_PATHS}")
        rel_types = [_relation_type(t) for t in relationship_types or []] or list(RelationType)
        end_labels = [_node_type(t).value for t in node_types] if node_types else None

        start = self.get_node(start_node_id)
        pattern = _path_pattern(direction, rel_types, max_depth)
        q = f"""
        MATCH path = (start:{start.type.value} {{id: $start_id}}){pattern}(node)
        WHERE all(x IN nodes(path) WHERE any(l IN labels(x) WHERE l IN $labels))
          AND ($node_types IS NULL OR any(l IN labels(node) WHERE l IN $node_types))
        RETURN [x IN nodes(path) | {{node: x {{.*}}, labels: labels(x)}}] AS path_nodes,
               [rel IN relationships(path) | {{rel: rel {{.*}}, rel_type: type(rel),
                 from_node_id: startNode(rel).id, to_node_id: endNode(rel).id}}] AS path_rels
        LIMIT $limit
        """
        rows = self.store.query(
            q,
            {
                "start_id": start_node_id,
                "labels": NODE_LABELS,
                "node_types": end_labels,
                "limit": limit,
            },
        )

        nodes: dict[str, dict[str, Any]] = {start.id: start.to_dict()}
        relationships: dict[str, dict[str, Any]] = {}
        paths = []
        for row in rows:
            path_nodes = [self._row_to_node(n) for n in row["path_nodes"]]
            path_rels = [self._row_to_edge(r) for r in row["path_rels"]]
            for n in path_nodes:
                nodes.setdefault(n.id, n.to_dict())
            for r in path_rels:
                relationships.setdefault(r.id, r.to_dict())
            paths.append(
                {
                    "length": len(path_rels),
                    "nodes": [n.id for n in path_nodes],
                    "relationships": [r.id for r in path_rels],
                }
            )
        logger.debug(
            "Traversal from %s (depth %d, %s) returned %d paths",
            start_node_id, max_depth, direction, len(paths),
        )
        return {
            "start_node_id": start_node_id,
            "nodes": list(nodes.values()),
            "relationships": list(relationships.values()),
            "paths": paths,
        }

    def neighbors(
        self,
        node_id: str,
        *,
        direction: str = "both",
        relationship_types: list[RelationType | str] | None = None,
    ) -> dict[str, Any]:
        result = self.traverse(
            node_id,
            max_depth=1,
            relationship_types=relationship_types,
            direction=direction,
        )
        return {
            "node_id": node_id,
            "neighbors": [n for n in result["nodes"] if n["id"] != node_id],
            "relationships": result["relationships"],
        }

    # -- structure ----------------------------------------------------------

    def validate_structure(
        self,
        *,
        max_cycle_length: int = MAX_TRAVERSAL_DEPTH,
        max_issues: int = MAX_STRUCTURE_ISSUES,
    ) -> dict[str, Any]:
        """Audit the stored graph.

        Reports story nodes with no relationships, nodes on a LEADS_TO /
        TRIGGERS / REQUIRES cycle, and existing relationships the
        compatibility table would reject (for example edges written before
        the table changed). Each list is capped at `max_issues`.
        """
        if not isinstance(max_cycle_length, int) or not 1 <= max_cycle_length <= MAX_TRAVERSAL_DEPTH:
            raise ValidationError(f"max_cycle_length must be between 1 and {MAX_TRAVERSAL_DEPTH}")
        if max_issues < 1:
            raise ValidationError("max_issues must be a positive integer")

        orphan_rows = self.store.query(
            """
            MATCH (n)
            WHERE any(l IN labels(n) WHERE l IN $labels) AND NOT (n)--()
            RETURN n.id AS node_id
            ORDER BY node_id
            LIMIT $limit
            """,
            {"labels": NODE_LABELS, "limit": max_issues},
        )
        orphaned = [r["node_id"] for r in orphan_rows]

        flow = "|".join(t.value for t in CYCLE_RELATION_TYPES)
        cycle_rows = self.store.query(
            f"""
            MATCH (start)-[:{flow}*1..{max_cycle_length}]->(start)
            WHERE any(l IN labels(start) WHERE l IN $labels)
            RETURN DISTINCT start.id AS node_id
            ORDER BY node_id
            LIMIT $limit
            """,
            {"labels": NODE_LABELS, "limit": max_issues},
        )
        cycles = [r["node_id"] for r in cycle_rows]

        invalid = self._audit_relationships(max_issues)

        issues = []
        if orphaned:
            issues.append(f"Found {len(orphaned)} orphaned nodes with no relationships")
        if cycles:
            issues.append(f"Found {len(cycles)} nodes involved in circular references")
        for edge in invalid:
            issues.append(
                f"Invalid relationship: {edge['from_node_id']} -[{edge['type']}]-> {edge['to_node_id']}"
            )
        if issues:
            logger.warning("Graph structure check found %d issues", len(issues))
        return {
            "is_valid": not issues,
            "issues": issues,
            "orphaned_nodes": orphaned,
            "circular_references": cycles,
            "invalid_relationships": invalid,
        }

    def _audit_relationships(self, max_issues: int) -> list[dict[str, Any]]:
        invalid: list[dict[str, Any]] = []
        skip = 0
        while len(invalid) < max_issues:
            rows = self.store.query(
                """
                MATCH (a)-[r]->(b)
                RETURN r.id AS id, type(r) AS rel_type,
                       a.id AS from_node_id, labels(a) AS from_labels,
                       b.id AS to_node_id, labels(b) AS to_labels
                ORDER BY id
                SKIP $skip LIMIT $batch
                """,
                {"skip": skip, "batch": EDGE_AUDIT_BATCH},
            )
            for row in rows:
                from_type = _narrative_type(row.get("from_labels"))
                to_type = _narrative_type(row.get("to_labels"))
                if from_type is None or to_type is None:
                    continue
                verdict = check_compatibility(from_type, to_type, row["rel_type"])
                if not verdict.valid:
                    invalid.append(
                        {
                            "id": row["id"],
                            "type": row["rel_type"],
                            "from_node_id": row["from_node_id"],
                            "from_type": from_type.value,
                            "to_node_id": row["to_node_id"],
                            "to_type": to_type.value,
                            "reason": verdict.reason,
                        }
                    )
            if len(rows) < EDGE_AUDIT_BATCH:
                break
            skip += EDGE_AUDIT_BATCH
        return invalid[:max_issues]
