"""Error taxonomy shared by the graph service, validator and HTTP layer."""

from __future__ import annotations

from typing import Any


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RELATIONSHIP_CONSTRAINT_VIOLATION = "RELATIONSHIP_CONSTRAINT_VIOLATION"
    DATABASE_ERROR = "DATABASE_ERROR"
    CACHE_ERROR = "CACHE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class NarrativeGraphError(Exception):
    """Base class for errors that map onto an HTTP status and error code."""

    status_code: int = 500
    code: str = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationError(NarrativeGraphError):
    """Caller supplied a malformed payload."""

    status_code = 400
    code = ErrorCode.VALIDATION_ERROR


class RelationshipConstraintError(ValidationError):
    """A proposed edge was rejected by the compatibility gate."""

    code = ErrorCode.RELATIONSHIP_CONSTRAINT_VIOLATION

    def __init__(self, message: str, *, from_type: str, relation_type: str, to_type: str):
        super().__init__(
            message,
            details={"from_type": from_type, "relation_type": relation_type, "to_type": to_type},
        )


class NotFoundError(NarrativeGraphError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, message: str = "Resource not found", details: Any = None):
        super().__init__(message, details)


class CollaboratorError(NarrativeGraphError):
    """The graph store (or another backing service) failed or is unreachable."""

    status_code = 500
    code = ErrorCode.DATABASE_ERROR


class CacheError(CollaboratorError):
    code = ErrorCode.CACHE_ERROR
