from __future__ import annotations

import asyncio
import logging

import uvicorn

from .api import create_app
from .cache import build_cache_store
from .graph.neo4j_store import Neo4jConfig, Neo4jGraphStore
from .settings import NarrativeGraphSettings, settings

logger = logging.getLogger(__name__)


def build_graph_store(cfg: NarrativeGraphSettings) -> Neo4jGraphStore:
    if not cfg.neo4j_password:
        raise RuntimeError("Neo4j not configured. Set NARRATIVE_GRAPH_NEO4J_PASSWORD.")
    store = Neo4jGraphStore(
        Neo4jConfig(
            uri=cfg.neo4j_uri,
            user=cfg.neo4j_user,
            password=cfg.neo4j_password,
            database=cfg.neo4j_database,
        )
    )
    store.ensure_schema()
    return store


async def _main(cfg: NarrativeGraphSettings, host: str | None = None, port: int | None = None) -> None:
    store = build_graph_store(cfg)
    cache_store = build_cache_store(cfg.cache_backend, cfg.redis_url)
    app = create_app(store, cache_store, cfg)

    config = uvicorn.Config(
        app,
        host=host or cfg.bind_host,
        port=port or cfg.bind_port,
        log_level=(cfg.log_level or "info").lower(),
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    finally:
        if cache_store is not None:
            await cache_store.close()
        store.close()
        logger.info("Graph and cache connections closed")


def main(host: str | None = None, port: int | None = None) -> None:
    asyncio.run(_main(settings, host, port))


if __name__ == "__main__":
    main()
