from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from narrative_graph.api import create_app
from narrative_graph.cache import InMemoryCacheStore
from narrative_graph.errors import CacheError
from narrative_graph.settings import NarrativeGraphSettings

TS = "2024-01-01T00:00:00+00:00"


class FakeGraphStore:
    """Scripted GraphStore: the first registered needle contained in the
    Cypher text decides the response. Unmatched queries return no rows."""

    def __init__(self) -> None:
        self.handlers: list[tuple[str, Any]] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def on(self, needle: str, result: Any) -> "FakeGraphStore":
        self.handlers.append((needle, result))
        return self

    def query(self, cypher: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        params = params or {}
        self.calls.append((cypher, params))
        for needle, result in self.handlers:
            if needle in cypher:
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    return result(params)
                return [dict(r) for r in result]
        return []

    def calls_matching(self, needle: str) -> list[tuple[str, dict[str, Any]]]:
        return [c for c in self.calls if needle in c[0]]

    def close(self) -> None:
        self.closed = True


class FailingCacheStore:
    async def get(self, key: str) -> bytes | None:
        raise CacheError("cache down")

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        raise CacheError("cache down")

    async def delete_matching(self, pattern: str) -> int:
        raise CacheError("cache down")

    async def ping(self) -> bool:
        return False

    async def close(self) -> None:
        pass


def node_row(node_type: str, node_id: str, **props: Any) -> dict[str, Any]:
    return {
        "node": {"id": node_id, "created_at": TS, "updated_at": TS, **props},
        "labels": [node_type],
    }


class NodeTable:
    """Answers node lookups by id for the graph service queries."""

    def __init__(self, nodes: dict[str, tuple[str, dict[str, Any]]]):
        self.nodes = nodes

    def lookup(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        entry = self.nodes.get(params.get("id"))
        if entry is None:
            return []
        node_type, props = entry
        return [node_row(node_type, params["id"], **props)]

    def update(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        entry = self.nodes.get(params.get("id"))
        if entry is None:
            return []
        node_type, props = entry
        props.update(params["props"])
        return [node_row(node_type, params["id"], **props)]


@pytest.fixture
def graph_store() -> FakeGraphStore:
    return FakeGraphStore()


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def app_settings() -> NarrativeGraphSettings:
    return NarrativeGraphSettings(
        cache_backend="memory",
        cache_prefix="ng",
        validation_check_timeout_seconds=2.0,
    )


@pytest.fixture
def app(graph_store, cache_store, app_settings):
    return create_app(graph_store, cache_store, app_settings)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
