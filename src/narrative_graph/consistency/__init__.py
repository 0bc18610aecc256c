"""Narrative consistency validation: checks, scoring, reports and the rule registry."""

from .models import (
    CheckOutcome,
    CheckStatus,
    ConsistencyReport,
    ConsistencyRule,
    ConsistencyViolation,
    RuleCategory,
    Severity,
    ValidationResult,
    ViolationCategory,
)
from .rules import RuleRegistry
from .validator import ConsistencyValidator, confidence_score

__all__ = [
    "CheckOutcome",
    "CheckStatus",
    "ConsistencyReport",
    "ConsistencyRule",
    "ConsistencyValidator",
    "ConsistencyViolation",
    "RuleCategory",
    "RuleRegistry",
    "Severity",
    "ValidationResult",
    "ViolationCategory",
    "confidence_score",
]
