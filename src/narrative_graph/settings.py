from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NarrativeGraphSettings(BaseSettings):
    """Unified configuration for the narrative graph service.

    Environment variables are prefixed with NARRATIVE_GRAPH_.
    """

    model_config = SettingsConfigDict(env_prefix="NARRATIVE_GRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- HTTP ---
    bind_host: str = "0.0.0.0"
    bind_port: int = 8090

    # --- Graph DB (Neo4j) ---
    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str | None = Field(default=None)
    neo4j_database: str = "neo4j"

    # --- Cache ---
    cache_backend: str = Field(default="redis", description="redis|memory|none")
    redis_url: str = "redis://localhost:6379/0"
    cache_prefix: str = "ng"
    cache_default_ttl: int = Field(default=300, description="Seconds, when no TTL policy applies")

    # --- Validation ---
    validation_check_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single consistency check category",
    )


settings = NarrativeGraphSettings()
