"""
Consistency validator.

Runs the check categories against a story, splits findings into violations
and warnings, scores them and builds reports. Each category is isolated: a
failing or slow check marks the result partial instead of failing the run.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..errors import NotFoundError
from ..graph.store import GraphStore
from . import queries
from .checks import (
    behavior_conflicts,
    state_contradictions,
    timeline_conflicts,
    trait_choice_conflicts,
)
from .models import (
    CheckOutcome,
    CheckStatus,
    ConsistencyReport,
    ConsistencyViolation,
    Severity,
    ValidationResult,
    ViolationCategory,
)

logger = logging.getLogger(__name__)

SEVERITY_PENALTY = {
    Severity.CRITICAL: 0.2,
    Severity.HIGH: 0.1,
    Severity.MEDIUM: 0.05,
}

RECOMMENDATIONS = {
    ViolationCategory.CHARACTER_BEHAVIOR: "Review character motivations and ensure consistent behavior patterns",
    ViolationCategory.TIMELINE_CONFLICT: "Check narrative timeline order and adjust scene sequencing",
    ViolationCategory.STATE_CONTRADICTION: "Validate character development arcs for logical progression",
    ViolationCategory.TRAIT_VIOLATION: "Ensure character choices align with established personality traits",
}

TOP_VIOLATIONS = 10


def confidence_score(
    violations: list[ConsistencyViolation],
    warnings: list[ConsistencyViolation],
) -> float:
    """Score in [0, 1].

    Violations are penalized twice: once per item and once by severity.
    """
    score = 1.0 - 0.1 * len(violations) - 0.05 * len(warnings)
    for v in violations:
        score -= SEVERITY_PENALTY.get(v.severity, 0.0)
    return max(0.0, min(1.0, score))


def recommendations_for(violations: list[ConsistencyViolation]) -> list[str]:
    out: list[str] = []
    for v in violations:
        rec = RECOMMENDATIONS.get(v.category)
        if rec and rec not in out:
            out.append(rec)
    return out


class ConsistencyValidator:
    def __init__(self, store: GraphStore, *, check_timeout: float = 10.0):
        self.store = store
        self.check_timeout = check_timeout

    # -- individual checks (sync, safe to call directly) ---------------------

    def check_character_behavior(self, story_id: str) -> list[ConsistencyViolation]:
        return behavior_conflicts(self.store.query(queries.CHARACTER_ROLES, {"story_id": story_id}))

    def check_timeline(self, story_id: str) -> list[ConsistencyViolation]:
        return timeline_conflicts(self.store.query(queries.TIMELINE_SCENES, {"story_id": story_id}))

    def check_state_transitions(self, story_id: str) -> list[ConsistencyViolation]:
        return state_contradictions(self.store.query(queries.CHARACTER_STATES, {"story_id": story_id}))

    def check_trait_choices(self, story_id: str) -> list[ConsistencyViolation]:
        return trait_choice_conflicts(self.store.query(queries.TRAIT_CHOICES, {"story_id": story_id}))

    def check_character_relationships(self, story_id: str) -> list[ConsistencyViolation]:
        # TODO: define relationship consistency (e.g. mutual INFLUENCES that contradict roles).
        raise NotImplementedError("relationship consistency is not implemented")

    def checks(self) -> list[tuple[str, Callable[[str], list[ConsistencyViolation]]]]:
        return [
            ("character_behavior", self.check_character_behavior),
            ("timeline", self.check_timeline),
            ("state_transitions", self.check_state_transitions),
            ("trait_choices", self.check_trait_choices),
            ("character_relationships", self.check_character_relationships),
        ]

    # -- orchestration -------------------------------------------------------

    def story_exists(self, story_id: str) -> bool:
        return bool(self.store.query(queries.STORY_EXISTS, {"story_id": story_id}))

    async def _run_check(
        self,
        name: str,
        fn: Callable[[str], list[ConsistencyViolation]],
        story_id: str,
    ) -> tuple[CheckOutcome, list[ConsistencyViolation]]:
        loop = asyncio.get_running_loop()
        try:
            found = await asyncio.wait_for(
                loop.run_in_executor(None, fn, story_id), timeout=self.check_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Consistency check %s timed out after %ss", name, self.check_timeout)
            return CheckOutcome(name, CheckStatus.TIMED_OUT, error=f"timed out after {self.check_timeout}s"), []
        except NotImplementedError as e:
            return CheckOutcome(name, CheckStatus.NOT_IMPLEMENTED, error=str(e)), []
        except Exception as e:
            logger.exception("Consistency check %s failed for story %s", name, story_id)
            return CheckOutcome(name, CheckStatus.FAILED, error=str(e)), []
        return CheckOutcome(name, CheckStatus.OK, violation_count=len(found)), found

    async def validate_story(self, story_id: str) -> ValidationResult:
        logger.info("Starting consistency validation for story %s", story_id)
        loop = asyncio.get_running_loop()
        if not await loop.run_in_executor(None, self.story_exists, story_id):
            raise NotFoundError(f"Story with id {story_id} not found")

        results = await asyncio.gather(
            *(self._run_check(name, fn, story_id) for name, fn in self.checks())
        )

        violations: list[ConsistencyViolation] = []
        warnings: list[ConsistencyViolation] = []
        outcomes: list[CheckOutcome] = []
        for outcome, found in results:
            outcomes.append(outcome)
            for v in found:
                (violations if v.severity.blocking else warnings).append(v)

        partial = any(o.status in (CheckStatus.FAILED, CheckStatus.TIMED_OUT) for o in outcomes)
        result = ValidationResult(
            is_consistent=not violations,
            violations=violations,
            warnings=warnings,
            confidence_score=confidence_score(violations, warnings),
            partial=partial,
            checks=outcomes,
        )
        logger.info(
            "Validated story %s: %d violations, %d warnings, score=%.2f%s",
            story_id,
            len(violations),
            len(warnings),
            result.confidence_score,
            " (partial)" if partial else "",
        )
        return result

    async def generate_report(self, story_id: str) -> ConsistencyReport:
        result = await self.validate_story(story_id)

        by_type: dict[str, int] = {}
        for v in result.violations:
            by_type[v.category.value] = by_type.get(v.category.value, 0) + 1

        top = sorted(result.violations, key=lambda v: v.severity.rank, reverse=True)[:TOP_VIOLATIONS]

        return ConsistencyReport(
            story_id=story_id,
            total_violations=len(result.violations),
            critical_violations=sum(1 for v in result.violations if v.severity is Severity.CRITICAL),
            total_warnings=len(result.warnings),
            consistency_score=result.confidence_score,
            validation_date=result.validation_timestamp,
            partial=result.partial,
            violations_by_type=by_type,
            top_violations=top,
            recommendations=recommendations_for(result.violations),
        )

