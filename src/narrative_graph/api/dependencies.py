from __future__ import annotations

from fastapi import Request

from ..cache import CacheCoordinator
from ..consistency import ConsistencyValidator, RuleRegistry
from ..graph import GraphStore, NarrativeGraphService


def get_store(request: Request) -> GraphStore:
    return request.app.state.store


def get_graph(request: Request) -> NarrativeGraphService:
    return request.app.state.graph


def get_cache(request: Request) -> CacheCoordinator:
    return request.app.state.cache


def get_validator(request: Request) -> ConsistencyValidator:
    return request.app.state.validator


def get_rules(request: Request) -> RuleRegistry:
    return request.app.state.rules
