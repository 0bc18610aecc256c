"""
Edge compatibility gate.

Every relationship write must pass through `check_compatibility` first: the
graph store itself has no schema, so this table is the only structural
guarantee on which node types a relationship type may connect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .models import NodeType, RelationType

_N = NodeType

# relation type -> list of (allowed from types, allowed to types)
COMPATIBILITY_TABLE: dict[RelationType, tuple[tuple[frozenset[NodeType], frozenset[NodeType]], ...]] = {
    RelationType.LEADS_TO: (
        (frozenset({_N.SCENE}), frozenset({_N.SCENE, _N.CHOICE})),
        (frozenset({_N.CHOICE}), frozenset({_N.SCENE})),
    ),
    RelationType.APPEARS_IN: (
        (frozenset({_N.CHARACTER}), frozenset({_N.SCENE, _N.EVENT})),
    ),
    RelationType.TRIGGERS: (
        (frozenset({_N.EVENT, _N.CHOICE, _N.SCENE}), frozenset({_N.EVENT})),
    ),
    RelationType.REQUIRES: (
        (frozenset({_N.SCENE, _N.CHOICE, _N.EVENT}), frozenset({_N.EVENT})),
    ),
    RelationType.LOCATED_AT: (
        (frozenset({_N.SCENE, _N.CHARACTER, _N.ITEM}), frozenset({_N.LOCATION})),
    ),
    RelationType.CONTAINS: (
        (frozenset({_N.STORY}), frozenset({_N.KNOT, _N.STITCH, _N.SCENE})),
        (frozenset({_N.KNOT}), frozenset({_N.STITCH, _N.SCENE})),
        (frozenset({_N.STITCH}), frozenset({_N.SCENE, _N.CONTENT_ELEMENT})),
        (frozenset({_N.SCENE}), frozenset({_N.CHOICE, _N.CONTENT_ELEMENT})),
    ),
    RelationType.BELONGS_TO: (
        (frozenset({_N.KNOT, _N.STITCH, _N.SCENE}), frozenset({_N.STORY})),
        (frozenset({_N.STITCH, _N.SCENE}), frozenset({_N.KNOT})),
        (frozenset({_N.SCENE, _N.CONTENT_ELEMENT}), frozenset({_N.STITCH})),
        (frozenset({_N.CHOICE, _N.CONTENT_ELEMENT}), frozenset({_N.SCENE})),
    ),
    RelationType.CONVERGES_TO: (
        (frozenset({_N.CHOICE}), frozenset({_N.SCENE})),
    ),
    RelationType.GROUPED_WITH: (
        (frozenset({_N.CHOICE}), frozenset({_N.CHOICE})),
    ),
    RelationType.INFLUENCES: (
        (frozenset({_N.CHARACTER}), frozenset({_N.CHARACTER, _N.EVENT, _N.SCENE, _N.CHOICE})),
    ),
    RelationType.APPEARS_THROUGHOUT: (
        (frozenset({_N.CHARACTER}), frozenset({_N.STORY, _N.KNOT, _N.STITCH})),
    ),
}


@dataclass(frozen=True, slots=True)
class CompatibilityResult:
    valid: bool
    reason: str | None = None


def _coerce(value: NodeType | RelationType | str, enum_cls):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _label(value: NodeType | RelationType | str) -> str:
    return value.value if isinstance(value, (NodeType, RelationType)) else str(value)


def check_compatibility(
    from_type: NodeType | str,
    to_type: NodeType | str,
    relation_type: RelationType | str,
) -> CompatibilityResult:
    """Check whether `relation_type` may connect a `from_type` node to a `to_type` node."""
    rel = _coerce(relation_type, RelationType)
    if rel is None or rel not in COMPATIBILITY_TABLE:
        return CompatibilityResult(False, f"unknown relationship type: {_label(relation_type)}")

    src = _coerce(from_type, NodeType)
    dst = _coerce(to_type, NodeType)
    if src is not None and dst is not None:
        for allowed_from, allowed_to in COMPATIBILITY_TABLE[rel]:
            if src in allowed_from and dst in allowed_to:
                return CompatibilityResult(True)

    return CompatibilityResult(
        False,
        f"Invalid relationship: {_label(from_type)} cannot have {rel.value} "
        f"relationship to {_label(to_type)}",
    )


def allowed_pairs() -> Iterator[tuple[NodeType, RelationType, NodeType]]:
    """Enumerate every (from_type, relation_type, to_type) triple the gate accepts."""
    for rel, pairs in COMPATIBILITY_TABLE.items():
        seen: set[tuple[NodeType, NodeType]] = set()
        for allowed_from, allowed_to in pairs:
            for src in sorted(allowed_from, key=lambda n: n.value):
                for dst in sorted(allowed_to, key=lambda n: n.value):
                    if (src, dst) not in seen:
                        seen.add((src, dst))
                        yield src, rel, dst
