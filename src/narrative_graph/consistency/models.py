from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..graph.models import utcnow


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def blocking(self) -> bool:
        """High and critical findings count as violations, the rest as warnings."""
        return self.rank >= _SEVERITY_RANK[Severity.HIGH]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3, Severity.CRITICAL: 4}


class ViolationCategory(Enum):
    CHARACTER_BEHAVIOR = "character_behavior"
    TIMELINE_CONFLICT = "timeline_conflict"
    STATE_CONTRADICTION = "state_contradiction"
    TRAIT_VIOLATION = "trait_violation"


@dataclass
class ConsistencyViolation:
    """A single logical contradiction found in a story graph."""
    id: str
    category: ViolationCategory
    severity: Severity
    description: str
    affected_node_ids: list[str]
    suggested_fix: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "description": self.description,
            "affected_node_ids": list(self.affected_node_ids),
            "suggested_fix": self.suggested_fix,
            "created_at": self.created_at.isoformat(),
        }


class RuleCategory(Enum):
    CHARACTER_TRAIT = "character_trait"
    BEHAVIOR_PATTERN = "behavior_pattern"
    TIMELINE_RULE = "timeline_rule"
    STATE_RULE = "state_rule"


@dataclass
class ConsistencyRule:
    """User-authored rule metadata. `rule_logic` is stored, never evaluated."""
    id: str
    name: str
    description: str
    category: RuleCategory
    rule_logic: str
    enabled: bool
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "rule_logic": self.rule_logic,
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat(),
        }


class CheckStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    NOT_IMPLEMENTED = "not_implemented"


@dataclass
class CheckOutcome:
    name: str
    status: CheckStatus
    violation_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "violation_count": self.violation_count,
            "error": self.error,
        }


@dataclass
class ValidationResult:
    is_consistent: bool
    violations: list[ConsistencyViolation]
    warnings: list[ConsistencyViolation]
    confidence_score: float
    validation_timestamp: datetime = field(default_factory=utcnow)
    partial: bool = False
    checks: list[CheckOutcome] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_consistent": self.is_consistent,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": [w.to_dict() for w in self.warnings],
            "confidence_score": self.confidence_score,
            "validation_timestamp": self.validation_timestamp.isoformat(),
            "partial": self.partial,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class ConsistencyReport:
    story_id: str
    total_violations: int
    critical_violations: int
    total_warnings: int
    consistency_score: float
    validation_date: datetime
    partial: bool
    violations_by_type: dict[str, int]
    top_violations: list[ConsistencyViolation]
    recommendations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "story_id": self.story_id,
            "summary": {
                "total_violations": self.total_violations,
                "critical_violations": self.critical_violations,
                "total_warnings": self.total_warnings,
                "consistency_score": self.consistency_score,
                "validation_date": self.validation_date.isoformat(),
                "partial": self.partial,
            },
            "violations_by_type": dict(self.violations_by_type),
            "top_violations": [v.to_dict() for v in self.top_violations],
            "recommendations": list(self.recommendations),
        }
