from __future__ import annotations

from typing import Any, Protocol


class GraphStore(Protocol):
    """Abstraction for the backing graph database.

    `query` executes a parameterized Cypher statement and returns one dict per
    record. Implementations must bind every caller-supplied value as a
    parameter and release their session before returning or raising.
    """

    def query(self, cypher: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...
