from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class NodeIn(BaseModel):
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class NodeUpdateIn(BaseModel):
    properties: dict[str, Any] = Field(default_factory=dict)


class RelationshipIn(BaseModel):
    type: str
    from_node_id: str
    to_node_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class RelationshipUpdateIn(BaseModel):
    properties: dict[str, Any] = Field(default_factory=dict)


class RuleIn(BaseModel):
    name: str
    description: str = ""
    category: str
    rule_logic: str
    enabled: bool = True


def csv_list(value: str | None) -> list[str] | None:
    """Split a comma-separated query value; blank input means no filter."""
    if not value:
        return None
    items = [v.strip() for v in value.split(",") if v.strip()]
    return items or None
