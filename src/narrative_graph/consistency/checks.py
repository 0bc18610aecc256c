"""
Pure analysis functions behind the consistency checks.

Each function takes rows already fetched from the graph and returns
violations; none of them touch the store, so they are tested directly.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from ..graph.models import decode_mapping
from .models import ConsistencyViolation, Severity, ViolationCategory

# Role pairs a character cannot hold within one arc.
EXCLUSIVE_ROLES: tuple[tuple[str, str], ...] = (
    ("hero", "villain"),
    ("protagonist", "antagonist"),
)


@dataclass(frozen=True)
class TraitConflict:
    trait: str
    conflicts: tuple[str, ...]
    suggestion: str


TRAIT_CONFLICTS: tuple[TraitConflict, ...] = (
    TraitConflict(
        "brave",
        ("run away", "hide", "surrender"),
        "Consider a more courageous choice that aligns with brave personality",
    ),
    TraitConflict(
        "honest",
        ("lie", "deceive", "trick"),
        "This choice contradicts the honest nature - consider truthful alternatives",
    ),
    TraitConflict(
        "loyal",
        ("betray", "abandon", "desert"),
        "This choice conflicts with loyalty - consider options that show dedication",
    ),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# field -> predicate(previous, current) that flags an impossible change
STATE_PREDICATES: dict[str, Callable[[Any, Any], bool]] = {
    "age": lambda prev, curr: _is_number(prev) and _is_number(curr) and curr < prev,
    "alive": lambda prev, curr: prev is False and curr is True,
    "skill_level": lambda prev, curr: _is_number(prev) and _is_number(curr) and curr < prev - 2,
}


def _sequence_number(value: Any) -> float | None:
    """Numeric position of a scene, or None when it has none.

    Sequences written through the API may arrive as numeric strings.
    """
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _by_sequence(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    # Stable; rows without a usable sequence keep their relative order at the end.
    def key(row: dict[str, Any]) -> tuple[bool, float]:
        number = _sequence_number(row.get("sequence"))
        return (number is None, number or 0.0)

    return sorted(rows, key=key)


def _group_by_character(rows: Iterable[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[row["character_id"]].append(row)
    return grouped


def _display_name(row: dict[str, Any]) -> str:
    return row.get("character_name") or row["character_id"]


def behavior_conflicts(rows: Iterable[dict[str, Any]]) -> list[ConsistencyViolation]:
    """Flag characters holding mutually exclusive roles within one arc segment.

    An appearance with ``arc_change`` set starts a new segment, so a hero who
    turns villain through an explained arc is not a contradiction.
    """
    violations: list[ConsistencyViolation] = []
    for character_id, appearances in _group_by_character(rows).items():
        name = _display_name(appearances[0])
        segments: list[list[dict[str, Any]]] = [[]]
        for row in _by_sequence(appearances):
            if row.get("arc_change") and segments[-1]:
                segments.append([])
            segments[-1].append(row)

        reported: set[tuple[str, str]] = set()
        for segment in segments:
            roles = {str(r["role"]).strip().lower() for r in segment if r.get("role")}
            for a, b in EXCLUSIVE_ROLES:
                if (a, b) in reported or a not in roles or b not in roles:
                    continue
                reported.add((a, b))
                scenes = [r["scene_id"] for r in segment if r.get("role")]
                violations.append(
                    ConsistencyViolation(
                        id=f"behavior_{character_id}_{a}_{b}",
                        category=ViolationCategory.CHARACTER_BEHAVIOR,
                        severity=Severity.MEDIUM,
                        description=(
                            f'Character "{name}" exhibits contradictory behavior: '
                            f"plays both {a} and {b} roles"
                        ),
                        affected_node_ids=[character_id, *scenes],
                        suggested_fix="Clarify character motivation or create character development arc",
                    )
                )
    return violations


def timeline_conflicts(rows: Iterable[dict[str, Any]]) -> list[ConsistencyViolation]:
    scenes = [
        r
        for r in rows
        if _sequence_number(r.get("sequence")) is not None and r.get("narrative_time") is not None
    ]
    scenes = _by_sequence(scenes)
    violations: list[ConsistencyViolation] = []
    for current, following in zip(scenes, scenes[1:]):
        try:
            disordered = current["narrative_time"] >= following["narrative_time"]
        except TypeError:
            # Mixed types have no order.
            continue
        if not disordered:
            continue
        a, b = current["scene_id"], following["scene_id"]
        violations.append(
            ConsistencyViolation(
                id=f"timeline_{a}_{b}",
                category=ViolationCategory.TIMELINE_CONFLICT,
                severity=Severity.HIGH,
                description=(
                    f'Timeline conflict: Scene "{current.get("title") or a}" '
                    f"(time: {current['narrative_time']}) is sequenced before scene "
                    f'"{following.get("title") or b}" (time: {following["narrative_time"]})'
                ),
                affected_node_ids=[a, b],
                suggested_fix="Adjust narrative_time values to maintain chronological order",
            )
        )
    return violations


def state_contradictions(rows: Iterable[dict[str, Any]]) -> list[ConsistencyViolation]:
    violations: list[ConsistencyViolation] = []
    for character_id, snapshots in _group_by_character(rows).items():
        name = _display_name(snapshots[0])
        states: list[tuple[str, dict[str, Any]]] = []
        for r in _by_sequence(snapshots):
            state = decode_mapping(r.get("state"))
            if state is not None:
                states.append((r["scene_id"], state))
        for (prev_scene, prev), (curr_scene, curr) in zip(states, states[1:]):
            for key, prev_value in prev.items():
                predicate = STATE_PREDICATES.get(key)
                if predicate is None or key not in curr:
                    continue
                curr_value = curr[key]
                if not predicate(prev_value, curr_value):
                    continue
                violations.append(
                    ConsistencyViolation(
                        id=f"state_{character_id}_{curr_scene}_{key}",
                        category=ViolationCategory.STATE_CONTRADICTION,
                        severity=Severity.MEDIUM,
                        description=(
                            f'Character "{name}" has contradictory states: '
                            f"{key} changed from {prev_value} to {curr_value} impossibly"
                        ),
                        affected_node_ids=[character_id, prev_scene, curr_scene],
                        suggested_fix="Review character development and ensure logical state progression",
                    )
                )
    return violations


def _traits(value: Any) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    return [str(t).strip().lower() for t in value or [] if str(t).strip()]


def trait_conflict_for(traits: Iterable[str], choice_text: str) -> TraitConflict | None:
    """Return the first trait table entry the choice text contradicts."""
    text = (choice_text or "").lower()
    held = set(traits)
    for entry in TRAIT_CONFLICTS:
        if entry.trait in held and any(c in text for c in entry.conflicts):
            return entry
    return None


def trait_choice_conflicts(rows: Iterable[dict[str, Any]]) -> list[ConsistencyViolation]:
    violations: list[ConsistencyViolation] = []
    seen: set[tuple[str, str]] = set()
    for row in _by_sequence(rows):
        key = (row["character_id"], row["choice_id"])
        if key in seen:
            continue
        traits = _traits(row.get("traits"))
        conflict = trait_conflict_for(traits, row.get("choice_text") or "")
        if conflict is None:
            continue
        seen.add(key)
        violations.append(
            ConsistencyViolation(
                id=f"trait_{row['character_id']}_{row['choice_id']}",
                category=ViolationCategory.TRAIT_VIOLATION,
                severity=Severity.MEDIUM,
                description=(
                    f'Character "{_display_name(row)}" with traits [{", ".join(traits)}] '
                    f'makes contradictory choice: "{row.get("choice_text")}"'
                ),
                affected_node_ids=[row["character_id"], row["choice_id"], row["scene_id"]],
                suggested_fix=conflict.suggestion,
            )
        )
    return violations
