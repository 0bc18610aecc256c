from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..graph.models import utcnow


def envelope(
    data: Any,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Wrap a successful payload as {success, data, timestamp}."""
    body = {"success": True, "data": data, "timestamp": utcnow().isoformat()}
    return JSONResponse(content=jsonable_encoder(body), status_code=status_code, headers=headers)


def error_envelope(error: dict[str, Any], *, status_code: int) -> JSONResponse:
    body = {"success": False, "error": error, "timestamp": utcnow().isoformat()}
    return JSONResponse(content=jsonable_encoder(body), status_code=status_code)
