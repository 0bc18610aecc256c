from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ...consistency import ConsistencyValidator, RuleRegistry
from ..dependencies import get_rules, get_validator
from ..envelope import envelope
from ..schemas import RuleIn


def build_consistency_router() -> APIRouter:
    r = APIRouter(prefix="/consistency", tags=["consistency"])

    # Validation output reflects the live graph and is never cached.

    @r.post("/validate/{story_id}")
    async def validate(story_id: str, validator: ConsistencyValidator = Depends(get_validator)):
        result = await validator.validate_story(story_id)
        return envelope(result.to_dict())

    @r.get("/report/{story_id}")
    async def report(story_id: str, validator: ConsistencyValidator = Depends(get_validator)):
        rep = await validator.generate_report(story_id)
        return envelope(rep.to_dict())

    @r.get("/rules")
    async def list_rules(rules: RuleRegistry = Depends(get_rules)):
        enabled = await run_in_threadpool(rules.list_enabled_rules)
        return envelope([rule.to_dict() for rule in enabled])

    @r.post("/rules", status_code=201)
    async def create_rule(payload: RuleIn, rules: RuleRegistry = Depends(get_rules)):
        rule = await run_in_threadpool(
            lambda: rules.create_rule(
                name=payload.name,
                description=payload.description,
                category=payload.category,
                rule_logic=payload.rule_logic,
                enabled=payload.enabled,
            )
        )
        return envelope(rule.to_dict(), status_code=201)

    return r
