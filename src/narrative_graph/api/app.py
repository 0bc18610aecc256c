from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from .. import __version__
from ..cache import CacheCoordinator, CacheKeys, CacheMetrics, CacheStore
from ..consistency import ConsistencyValidator, RuleRegistry
from ..errors import ErrorCode, NarrativeGraphError
from ..graph import GraphStore, NarrativeGraphService
from ..settings import NarrativeGraphSettings, settings as default_settings
from .envelope import error_envelope
from .routes import (
    build_cache_router,
    build_consistency_router,
    build_graph_router,
    build_health_router,
    build_nodes_router,
    build_relationships_router,
)

logger = logging.getLogger(__name__)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NarrativeGraphError)
    async def narrative_graph_error(request: Request, exc: NarrativeGraphError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return error_envelope(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return error_envelope(
            {"code": ErrorCode.VALIDATION_ERROR, "message": "Request validation failed", "details": details},
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_envelope(
            {"code": ErrorCode.INTERNAL_SERVER_ERROR, "message": "Internal server error"},
            status_code=500,
        )


def create_app(
    store: GraphStore,
    cache_store: CacheStore | None = None,
    app_settings: NarrativeGraphSettings | None = None,
) -> FastAPI:
    cfg = app_settings or default_settings
    app = FastAPI(title="Narrative Graph - Consistency Service", version=__version__)

    app.state.settings = cfg
    app.state.store = store
    app.state.graph = NarrativeGraphService(store)
    app.state.validator = ConsistencyValidator(store, check_timeout=cfg.validation_check_timeout_seconds)
    app.state.rules = RuleRegistry(store)
    app.state.cache = CacheCoordinator(
        store=cache_store,
        keys=CacheKeys(cfg.cache_prefix),
        metrics=CacheMetrics(),
        default_ttl=cfg.cache_default_ttl,
    )

    _install_error_handlers(app)

    for router in (
        build_health_router(),
        build_nodes_router(),
        build_relationships_router(),
        build_graph_router(),
        build_consistency_router(),
        build_cache_router(),
    ):
        app.include_router(router, prefix="/api")

    return app
