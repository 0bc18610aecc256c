from __future__ import annotations

import logging
import uuid
from typing import Any

from ..errors import ValidationError
from ..graph.models import parse_timestamp, utcnow
from ..graph.store import GraphStore
from . import queries
from .models import ConsistencyRule, RuleCategory

logger = logging.getLogger(__name__)

MAX_RULE_LOGIC_LENGTH = 2000


def _category(value: RuleCategory | str) -> RuleCategory:
    if isinstance(value, RuleCategory):
        return value
    try:
        return RuleCategory(value)
    except ValueError:
        raise ValidationError(
            f"Invalid rule category: {value}",
            details={"allowed": [c.value for c in RuleCategory]},
        ) from None


def _rule_from_row(props: dict[str, Any]) -> ConsistencyRule:
    return ConsistencyRule(
        id=props["id"],
        name=props.get("name", ""),
        description=props.get("description", ""),
        category=RuleCategory(props["category"]),
        rule_logic=props.get("rule_logic", ""),
        enabled=bool(props.get("enabled", False)),
        created_at=parse_timestamp(props.get("created_at")),
    )


class RuleRegistry:
    """Stores user-authored consistency rules as :ConsistencyRule nodes.

    Rules are metadata only; nothing in the engine evaluates `rule_logic`.
    """

    def __init__(self, store: GraphStore):
        self.store = store

    def create_rule(
        self,
        *,
        name: str,
        description: str,
        category: RuleCategory | str,
        rule_logic: str,
        enabled: bool = True,
    ) -> ConsistencyRule:
        if not name or not name.strip():
            raise ValidationError("Rule name is required")
        cat = _category(category)
        if not isinstance(rule_logic, str) or not rule_logic.strip():
            raise ValidationError("rule_logic must be a non-empty string")
        if len(rule_logic) > MAX_RULE_LOGIC_LENGTH:
            raise ValidationError(f"rule_logic must be at most {MAX_RULE_LOGIC_LENGTH} characters")

        rule_id = f"rule_{uuid.uuid4().hex[:16]}"
        rows = self.store.query(
            queries.CREATE_RULE,
            {
                "id": rule_id,
                "name": name.strip(),
                "description": description or "",
                "category": cat.value,
                "rule_logic": rule_logic,
                "enabled": bool(enabled),
                "created_at": utcnow().isoformat(),
            },
        )
        rule = _rule_from_row(rows[0]["rule"])
        logger.info("Created consistency rule %s (%s)", rule.id, cat.value)
        return rule

    def list_enabled_rules(self) -> list[ConsistencyRule]:
        return [_rule_from_row(r["rule"]) for r in self.store.query(queries.ENABLED_RULES)]
