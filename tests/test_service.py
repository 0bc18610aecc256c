import json

import pytest

from narrative_graph.errors import NotFoundError, RelationshipConstraintError, ValidationError
from narrative_graph.graph import NarrativeGraphService, NodeType, RelationType
from narrative_graph.graph.service import EDGE_AUDIT_BATCH, NODE_BY_ID

from .conftest import TS, FakeGraphStore, NodeTable, node_row


def created_node(params):
    return [{"node": {"id": params["id"], "created_at": params["created_at"],
                      "updated_at": params["updated_at"], **params["props"]},
             "labels": ["Scene"]}]


def created_edge(params):
    return [{
        "rel": {"id": params["id"], "created_at": params["created_at"],
                "updated_at": params["updated_at"], **params["props"]},
        "rel_type": "APPEARS_IN",
        "from_node_id": params["from_id"],
        "to_node_id": params["to_id"],
    }]


@pytest.fixture
def nodes() -> NodeTable:
    return NodeTable(
        {
            "char-1": ("Character", {"name": "Aria"}),
            "scene-1": ("Scene", {"title": "Dawn", "sequence": 1}),
        }
    )


@pytest.fixture
def service(nodes) -> tuple[NarrativeGraphService, FakeGraphStore]:
    store = (
        FakeGraphStore()
        .on("CREATE (n:", created_node)
        .on("CREATE (a)-[r:", created_edge)
        .on("SET n += $props", nodes.update)
        .on(NODE_BY_ID, nodes.lookup)
    )
    return NarrativeGraphService(store), store


def test_create_node_encodes_nested_properties(service):
    svc, store = service
    node = svc.create_node("Scene", {"title": "Dawn", "meta": {"mood": "calm"}, "id": "forged"})

    assert node.type is NodeType.SCENE
    assert node.id != "forged"
    assert node.properties["meta"] == json.dumps({"mood": "calm"}, sort_keys=True)
    cypher, _ = store.calls[0]
    assert "CREATE (n:Scene" in cypher


def test_create_node_rejects_unknown_type(service):
    svc, store = service
    with pytest.raises(ValidationError):
        svc.create_node("Spaceship", {})
    assert store.calls == []


def test_update_node_drops_identity_keys(service):
    svc, store = service
    node = svc.update_node("scene-1", {"title": "Dusk", "type": "Character", "id": "other"})

    assert node.type is NodeType.SCENE
    assert node.id == "scene-1"
    _, params = store.calls_matching("SET n += $props")[0]
    assert params["props"] == {"title": "Dusk"}


def test_get_missing_node(service):
    svc, _ = service
    with pytest.raises(NotFoundError):
        svc.get_node("missing")


def test_gate_rejects_before_any_write(service):
    svc, store = service
    with pytest.raises(RelationshipConstraintError) as exc:
        svc.create_relationship("APPEARS_IN", "scene-1", "char-1")

    assert exc.value.details == {
        "from_type": "Scene",
        "relation_type": "APPEARS_IN",
        "to_type": "Character",
    }
    assert store.calls_matching("CREATE (a)-[r:") == []


def test_unknown_relationship_type_is_rejected(service):
    svc, store = service
    with pytest.raises(RelationshipConstraintError) as exc:
        svc.create_relationship("KNOWS", "char-1", "scene-1")
    assert "unknown relationship type" in exc.value.message
    assert store.calls_matching("CREATE (a)-[r:") == []


def test_relationship_to_missing_node(service):
    svc, _ = service
    with pytest.raises(NotFoundError):
        svc.create_relationship("APPEARS_IN", "char-1", "missing")


def test_compatible_relationship_is_written(service):
    svc, store = service
    edge = svc.create_relationship(
        RelationType.APPEARS_IN,
        "char-1",
        "scene-1",
        {"role_in_scene": "hero", "character_state": {"alive": True}},
    )

    assert edge.type is RelationType.APPEARS_IN
    assert (edge.from_node_id, edge.to_node_id) == ("char-1", "scene-1")
    cypher, params = store.calls_matching("CREATE (a)-[r:")[0]
    assert "[r:APPEARS_IN" in cypher
    assert "MATCH (a:Character {id: $from_id})" in cypher
    assert "MATCH (b:Scene {id: $to_id})" in cypher
    assert params["props"]["character_state"] == '{"alive": true}'


def test_delete_missing_node(service):
    svc, store = service
    store.handlers.insert(0, ("DETACH DELETE", [{"deleted": 0}]))
    with pytest.raises(NotFoundError):
        svc.delete_node("ghost")


@pytest.mark.parametrize("page,limit", [(0, 20), (1, 0), (1, 101)])
def test_paging_bounds(service, page, limit):
    svc, _ = service
    with pytest.raises(ValidationError):
        svc.list_nodes(page=page, limit=limit)


def test_list_nodes_pagination(service):
    svc, store = service
    store.handlers.insert(0, ("RETURN count(n) AS total", [{"total": 45}]))
    store.handlers.insert(
        1, ("SKIP $skip LIMIT $limit", [{"node": {"id": "s9", "created_at": TS, "updated_at": TS},
                                         "labels": ["Scene"]}])
    )
    out = svc.list_nodes(node_type="Scene", page=2, limit=20)

    assert out["pagination"] == {"page": 2, "limit": 20, "total": 45, "total_pages": 3}
    assert out["nodes"][0]["id"] == "s9"
    _, params = store.calls_matching("SKIP $skip")[0]
    assert params["skip"] == 20
    assert params["labels"] == ["Scene"]


def test_graph_stats_totals():
    store = (
        FakeGraphStore()
        .on("UNWIND labels(n)", [{"label": "Scene", "count": 3}, {"label": "Character", "count": 2}])
        .on("type(r) AS type", [{"type": "APPEARS_IN", "count": 4}])
    )
    stats = NarrativeGraphService(store).graph_stats()
    assert stats["total_nodes"] == 5
    assert stats["total_relationships"] == 4


def test_node_lookup_is_label_anchored(service):
    svc, store = service
    svc.get_node("scene-1")
    cypher, params = store.calls[0]
    assert "MATCH (n:Scene {id: $id})" in cypher
    assert "MATCH (n:Character {id: $id})" in cypher
    assert "MATCH (n {id" not in cypher
    assert params == {"id": "scene-1"}


def test_update_and_delete_match_on_the_known_label(service):
    svc, store = service
    store.handlers.insert(0, ("DETACH DELETE", [{"deleted": 1}]))
    svc.update_node("char-1", {"name": "Bea"})
    svc.delete_node("scene-1")

    update_cypher, _ = store.calls_matching("SET n += $props")[0]
    delete_cypher, _ = store.calls_matching("DETACH DELETE")[0]
    assert "MATCH (n:Character {id: $id})" in update_cypher
    assert "MATCH (n:Scene {id: $id})" in delete_cypher


def test_relationships_for_node_anchor_on_label(service):
    svc, store = service
    svc.relationships_for_node("char-1")
    cypher, _ = store.calls[-1]
    assert "MATCH (n:Character {id: $id})-[r]-()" in cypher


# -- traversal ---------------------------------------------------------------

def path_rel(rel_id, from_id, to_id, rel_type="LEADS_TO"):
    return {
        "rel": {"id": rel_id, "created_at": TS, "updated_at": TS},
        "rel_type": rel_type,
        "from_node_id": from_id,
        "to_node_id": to_id,
    }


def story_paths(params):
    start = node_row("Scene", "scene-1", title="Dawn")
    middle = node_row("Scene", "scene-2", title="Noon")
    end = node_row("Choice", "choice-1", text="Go left")
    return [
        {"path_nodes": [start, middle], "path_rels": [path_rel("r1", "scene-1", "scene-2")]},
        {
            "path_nodes": [start, middle, end],
            "path_rels": [path_rel("r1", "scene-1", "scene-2"), path_rel("r2", "scene-2", "choice-1")],
        },
    ]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_depth": 0},
        {"max_depth": 11},
        {"direction": "sideways"},
        {"relationship_types": ["KNOWS"]},
        {"node_types": ["Spaceship"]},
    ],
)
def test_traverse_rejects_bad_parameters_before_querying(service, kwargs):
    svc, store = service
    with pytest.raises(ValidationError):
        svc.traverse("scene-1", **kwargs)
    assert store.calls == []


@pytest.mark.parametrize(
    "direction,pattern",
    [
        ("outgoing", "-[:LEADS_TO|TRIGGERS*1..2]->(node)"),
        ("incoming", "<-[:LEADS_TO|TRIGGERS*1..2]-(node)"),
        ("both", "-[:LEADS_TO|TRIGGERS*1..2]-(node)"),
    ],
)
def test_traverse_builds_a_labeled_path_pattern(service, direction, pattern):
    svc, store = service
    svc.traverse(
        "scene-1",
        max_depth=2,
        relationship_types=["LEADS_TO", RelationType.TRIGGERS],
        node_types=["Choice"],
        direction=direction,
    )
    cypher, params = store.calls_matching("MATCH path =")[0]
    assert "(start:Scene {id: $start_id})" + pattern in cypher
    assert params["start_id"] == "scene-1"
    assert params["node_types"] == ["Choice"]


def test_traverse_defaults_to_every_relationship_type(service):
    svc, store = service
    svc.traverse("char-1")
    cypher, params = store.calls_matching("MATCH path =")[0]
    assert "|".join(t.value for t in RelationType) + "*1..3]->" in cypher
    assert params["node_types"] is None


def test_traverse_collects_distinct_nodes_and_paths(service):
    svc, store = service
    store.handlers.insert(0, ("MATCH path =", story_paths))
    out = svc.traverse("scene-1", max_depth=2)

    assert [n["id"] for n in out["nodes"]] == ["scene-1", "scene-2", "choice-1"]
    assert [r["id"] for r in out["relationships"]] == ["r1", "r2"]
    assert out["paths"] == [
        {"length": 1, "nodes": ["scene-1", "scene-2"], "relationships": ["r1"]},
        {"length": 2, "nodes": ["scene-1", "scene-2", "choice-1"], "relationships": ["r1", "r2"]},
    ]


def test_traverse_from_missing_node(service):
    svc, _ = service
    with pytest.raises(NotFoundError):
        svc.traverse("ghost")


def test_neighbors_exclude_the_node_itself(service):
    svc, store = service
    store.handlers.insert(0, ("MATCH path =", story_paths))
    out = svc.neighbors("scene-1")

    assert out["node_id"] == "scene-1"
    assert "scene-1" not in [n["id"] for n in out["neighbors"]]
    cypher, _ = store.calls_matching("MATCH path =")[0]
    assert "*1..1]-(node)" in cypher


# -- structure ---------------------------------------------------------------

def edge_row(edge_id, rel_type, from_id, from_label, to_id, to_label):
    return {
        "id": edge_id,
        "rel_type": rel_type,
        "from_node_id": from_id,
        "from_labels": [from_label],
        "to_node_id": to_id,
        "to_labels": [to_label],
    }


def test_structure_reports_orphans_cycles_and_disallowed_edges():
    def edges(params):
        if params["skip"]:
            return []
        return [
            edge_row("e1", "APPEARS_IN", "char-1", "Character", "scene-1", "Scene"),
            edge_row("e2", "APPEARS_IN", "scene-1", "Scene", "char-1", "Character"),
            edge_row("e3", "KNOWS", "char-1", "Character", "user-1", "User"),
        ]

    store = (
        FakeGraphStore()
        .on("NOT (n)--()", [{"node_id": "orphan-1"}])
        .on("->(start)", [{"node_id": "scene-7"}])
        .on("SKIP $skip LIMIT $batch", edges)
    )
    result = NarrativeGraphService(store).validate_structure()

    assert result["is_valid"] is False
    assert result["orphaned_nodes"] == ["orphan-1"]
    assert result["circular_references"] == ["scene-7"]
    assert [e["id"] for e in result["invalid_relationships"]] == ["e2"]
    assert result["invalid_relationships"][0]["from_type"] == "Scene"
    assert "cannot have APPEARS_IN" in result["invalid_relationships"][0]["reason"]
    assert result["issues"] == [
        "Found 1 orphaned nodes with no relationships",
        "Found 1 nodes involved in circular references",
        "Invalid relationship: scene-1 -[APPEARS_IN]-> char-1",
    ]


def test_clean_structure_is_valid():
    store = FakeGraphStore().on(
        "SKIP $skip LIMIT $batch",
        lambda params: [] if params["skip"] else [
            edge_row("e1", "LEADS_TO", "scene-1", "Scene", "choice-1", "Choice"),
        ],
    )
    result = NarrativeGraphService(store).validate_structure()
    assert result["is_valid"] is True
    assert result["issues"] == []


def test_cycles_follow_narrative_flow_only():
    store = FakeGraphStore()
    NarrativeGraphService(store).validate_structure(max_cycle_length=4)
    cypher, _ = store.calls_matching("->(start)")[0]
    assert "[:LEADS_TO|TRIGGERS|REQUIRES*1..4]" in cypher


def test_edge_audit_pages_through_every_relationship():
    def edges(params):
        if params["skip"] == 0:
            return [
                edge_row(f"ok-{i}", "LEADS_TO", "scene-1", "Scene", "scene-2", "Scene")
                for i in range(EDGE_AUDIT_BATCH)
            ]
        if params["skip"] == EDGE_AUDIT_BATCH:
            return [edge_row("bad", "LEADS_TO", "char-1", "Character", "scene-2", "Scene")]
        return []

    store = FakeGraphStore().on("SKIP $skip LIMIT $batch", edges)
    result = NarrativeGraphService(store).validate_structure()

    assert [e["id"] for e in result["invalid_relationships"]] == ["bad"]
    assert len(store.calls_matching("SKIP $skip LIMIT $batch")) == 2


@pytest.mark.parametrize("length", [0, 11])
def test_structure_cycle_length_bounds(length):
    store = FakeGraphStore()
    with pytest.raises(ValidationError):
        NarrativeGraphService(store).validate_structure(max_cycle_length=length)
    assert store.calls == []
