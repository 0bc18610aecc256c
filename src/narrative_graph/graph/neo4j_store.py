from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from neo4j import GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable, SessionExpired
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..errors import CollaboratorError
from .models import NodeType

logger = logging.getLogger(__name__)

TransientGraphError = (ServiceUnavailable, SessionExpired)


def transient_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=0.2, max=2.0),
        retry=retry_if_exception_type(TransientGraphError),
    )


@dataclass(slots=True)
class Neo4jConfig:
    uri: str
    user: str
    password: str
    database: str = "neo4j"


class Neo4jGraphStore:
    """Neo4j-backed graph store.

    One session per call; the driver is thread-safe and shared, so the
    validator can query from several worker threads at once.
    """

    def __init__(self, cfg: Neo4jConfig):
        self.cfg = cfg
        self._driver = GraphDatabase.driver(cfg.uri, auth=(cfg.user, cfg.password))

    def close(self) -> None:
        self._driver.close()

    def ensure_schema(self) -> None:
        stmts = [
            f"CREATE CONSTRAINT {t.value.lower()}_id IF NOT EXISTS FOR (n:{t.value}) REQUIRE n.id IS UNIQUE"
            for t in NodeType
        ]
        stmts += [
            "CREATE CONSTRAINT consistency_rule_id IF NOT EXISTS FOR (n:ConsistencyRule) REQUIRE n.id IS UNIQUE",
            "CREATE INDEX scene_sequence IF NOT EXISTS FOR (n:Scene) ON (n.sequence)",
        ]
        for q in stmts:
            self.query(q)

    @transient_retry()
    def _run(self, cypher: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        with self._driver.session(database=self.cfg.database) as s:
            res = s.run(cypher, params)
            return [r.data() for r in res]

    def query(self, cypher: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            return self._run(cypher, params or {})
        except (Neo4jError, DriverError) as e:
            logger.error("Graph query failed: %s", e)
            raise CollaboratorError("Graph store query failed", details=str(e)) from e

