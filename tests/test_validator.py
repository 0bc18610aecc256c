import time

import pytest

from narrative_graph.consistency import (
    CheckStatus,
    ConsistencyValidator,
    ConsistencyViolation,
    Severity,
    ViolationCategory,
    confidence_score,
)
from narrative_graph.consistency import queries
from narrative_graph.errors import CollaboratorError, NotFoundError

from .conftest import FakeGraphStore


def make_violation(severity, category=ViolationCategory.TIMELINE_CONFLICT, vid="v"):
    return ConsistencyViolation(
        id=vid,
        category=category,
        severity=severity,
        description="d",
        affected_node_ids=[],
        suggested_fix="f",
    )


def story_store() -> FakeGraphStore:
    return FakeGraphStore().on(queries.STORY_EXISTS, [{"id": "story-1"}])


@pytest.mark.asyncio
async def test_disordered_scenes_end_to_end():
    store = story_store().on(
        queries.TIMELINE_SCENES,
        [
            {"scene_id": "A", "title": "Dawn", "sequence": 1, "narrative_time": 100},
            {"scene_id": "B", "title": "Dusk", "sequence": 2, "narrative_time": 50},
        ],
    )
    result = await ConsistencyValidator(store).validate_story("story-1")

    assert result.is_consistent is False
    assert len(result.violations) == 1
    v = result.violations[0]
    assert v.category is ViolationCategory.TIMELINE_CONFLICT
    assert v.severity is Severity.HIGH
    assert v.affected_node_ids == ["A", "B"]
    assert result.warnings == []
    assert result.confidence_score == pytest.approx(0.8)
    assert result.partial is False


@pytest.mark.asyncio
async def test_missing_story_raises_not_found():
    with pytest.raises(NotFoundError):
        await ConsistencyValidator(FakeGraphStore()).validate_story("nope")


@pytest.mark.asyncio
async def test_medium_findings_are_warnings():
    store = story_store().on(
        queries.TRAIT_CHOICES,
        [
            {
                "character_id": "c1",
                "character_name": "Aria",
                "traits": ["honest"],
                "scene_id": "s1",
                "sequence": 1,
                "choice_id": "ch1",
                "choice_text": "Lie to the guard",
            }
        ],
    )
    result = await ConsistencyValidator(store).validate_story("story-1")

    assert result.is_consistent is True
    assert result.violations == []
    assert len(result.warnings) == 1
    assert result.confidence_score == pytest.approx(0.95)


@pytest.mark.asyncio
async def test_failing_check_marks_result_partial():
    store = story_store()
    store.on(queries.CHARACTER_STATES, CollaboratorError("graph down"))
    store.on(
        queries.TIMELINE_SCENES,
        [
            {"scene_id": "A", "sequence": 1, "narrative_time": 2},
            {"scene_id": "B", "sequence": 2, "narrative_time": 1},
        ],
    )
    result = await ConsistencyValidator(store).validate_story("story-1")

    assert result.partial is True
    statuses = {c.name: c.status for c in result.checks}
    assert statuses["state_transitions"] is CheckStatus.FAILED
    assert statuses["timeline"] is CheckStatus.OK
    assert len(result.violations) == 1


@pytest.mark.asyncio
async def test_slow_check_times_out():
    def slow(params):
        time.sleep(0.3)
        return []

    store = story_store().on(queries.CHARACTER_ROLES, slow)
    result = await ConsistencyValidator(store, check_timeout=0.05).validate_story("story-1")

    statuses = {c.name: c.status for c in result.checks}
    assert statuses["character_behavior"] is CheckStatus.TIMED_OUT
    assert result.partial is True


@pytest.mark.asyncio
async def test_relationship_check_reports_not_implemented():
    result = await ConsistencyValidator(story_store()).validate_story("story-1")

    statuses = {c.name: c.status for c in result.checks}
    assert statuses["character_relationships"] is CheckStatus.NOT_IMPLEMENTED
    assert result.partial is False
    assert result.is_consistent is True
    assert result.confidence_score == 1.0


def test_check_methods_are_callable_directly():
    store = FakeGraphStore().on(
        queries.TIMELINE_SCENES,
        [
            {"scene_id": "A", "sequence": 1, "narrative_time": 5},
            {"scene_id": "B", "sequence": 2, "narrative_time": 4},
        ],
    )
    found = ConsistencyValidator(store).check_timeline("story-1")
    assert len(found) == 1
    assert store.calls_matching(queries.TIMELINE_SCENES)[0][1] == {"story_id": "story-1"}


def test_confidence_score_is_clamped():
    many = [make_violation(Severity.CRITICAL, vid=str(i)) for i in range(20)]
    assert confidence_score(many, []) == 0.0
    assert confidence_score([], []) == 1.0


def test_confidence_score_never_increases():
    violations = []
    warnings = []
    last = confidence_score(violations, warnings)
    for i, severity in enumerate([Severity.MEDIUM, Severity.HIGH, Severity.LOW, Severity.CRITICAL] * 3):
        target = violations if severity.blocking else warnings
        target.append(make_violation(severity, vid=str(i)))
        score = confidence_score(violations, warnings)
        assert 0.0 <= score <= last
        last = score


def test_confidence_double_counts_violations():
    score = confidence_score([make_violation(Severity.CRITICAL)], [make_violation(Severity.MEDIUM)])
    assert score == pytest.approx(1.0 - 0.1 - 0.05 - 0.2)


@pytest.mark.asyncio
async def test_report_orders_and_truncates_violations():
    validator = ConsistencyValidator(story_store())

    def mixed(story_id):
        out = [make_violation(Severity.HIGH, vid=f"h{i}") for i in range(9)]
        out.insert(3, make_violation(Severity.CRITICAL, ViolationCategory.STATE_CONTRADICTION, "c0"))
        out.append(make_violation(Severity.CRITICAL, ViolationCategory.CHARACTER_BEHAVIOR, "c1"))
        out.append(make_violation(Severity.MEDIUM, ViolationCategory.TRAIT_VIOLATION, "w0"))
        return out

    validator.checks = lambda: [("mixed", mixed)]
    report = await validator.generate_report("story-1")
    data = report.to_dict()

    assert data["summary"]["total_violations"] == 11
    assert data["summary"]["critical_violations"] == 2
    assert data["summary"]["total_warnings"] == 1
    assert [v["id"] for v in data["top_violations"][:3]] == ["c0", "c1", "h0"]
    assert len(data["top_violations"]) == 10
    assert data["violations_by_type"] == {
        "timeline_conflict": 9,
        "state_contradiction": 1,
        "character_behavior": 1,
    }
    # Warnings never produce recommendations.
    assert data["recommendations"] == [
        "Check narrative timeline order and adjust scene sequencing",
        "Validate character development arcs for logical progression",
        "Review character motivations and ensure consistent behavior patterns",
    ]
