"""
Service settings (pydantic-settings).

Values come from the environment and an optional `.env` at the repository
root. Read them through `get_settings()`; tests build isolated instances
with `get_settings_for_testing(**overrides)`.

Only the Supabase URL and service key are required. Redis, Algolia and
OpenAI are optional: without them the service runs on in-memory counters,
the catalog store path, and no semantic fallback.
"""

from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


def _split_csv(value, lower: bool = False):
    if not isinstance(value, str):
        return value
    items = [item.strip() for item in value.split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Runtime
    # ==========================================================================
    environment: str = Field(default="development", description="development, staging or production")
    debug: bool = Field(default=False, description="DEBUG-level logs")
    port: int = Field(default=8080, description="HTTP port")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Storefront / admin origins (comma-separated in the env)",
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        return _split_csv(v)

    # ==========================================================================
    # Supabase: catalog, trending aggregate, miss ledger, auth
    # ==========================================================================
    supabase_url: str = Field(..., description="Project URL")
    supabase_service_key: str = Field(..., description="Service-role key (server side only)")
    supabase_jwt_secret: str = Field(default="", description="HS256 secret that signs access tokens")
    admin_roles: List[str] = Field(
        default=["admin", "super_admin"],
        description="app_metadata.role values that may call /api/search/admin/*",
    )

    @field_validator("admin_roles", mode="before")
    @classmethod
    def parse_admin_roles(cls, v):
        return _split_csv(v, lower=True)

    # ==========================================================================
    # Redis: trending counters and response caches
    # ==========================================================================
    redis_enabled: bool = Field(default=False, description="In-memory store when off")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # ==========================================================================
    # Algolia: fast full-text index
    # ==========================================================================
    algolia_app_id: str = Field(default="")
    algolia_search_key: str = Field(default="")
    algolia_write_key: str = Field(default="", description="Needed for index sync and configuration")
    algolia_index_name: str = Field(default="products", description="Primary index; replicas are suffixed")

    @property
    def algolia_enabled(self) -> bool:
        return bool(self.algolia_app_id and (self.algolia_search_key or self.algolia_write_key))

    # ==========================================================================
    # OpenAI: query embeddings for the semantic fallback
    # ==========================================================================
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_timeout_seconds: float = Field(default=10.0)
    semantic_search_enabled: bool = Field(
        default=True,
        description="Try embedding retrieval before admitting a zero-result search",
    )

    # ==========================================================================
    # Search tuning
    # ==========================================================================
    search_cache_ttl_seconds: int = Field(default=300, description="Answered searches")
    autocomplete_cache_ttl_seconds: int = Field(default=600, description="Non-empty suggestion lists")
    trending_cache_ttl_seconds: int = Field(default=300, description="Decayed trending lists")
    popular_cache_ttl_seconds: int = Field(default=600, description="7d popular queries")
    relevance_candidate_limit: int = Field(
        default=100,
        description="Catalog candidates scored in memory for the relevance sort",
    )
    miss_dedup_window_seconds: int = Field(
        default=3600,
        description="Repeats of a missed query inside this window share one record",
    )
    trending_retention_days: int = Field(default=30, description="Idle trending rows older than this are purged")
    miss_conversion_rate: float = Field(default=0.15, description="Demand-gap revenue estimate input")
    miss_average_order_value: float = Field(default=500.0, description="Demand-gap revenue estimate input")

    # ==========================================================================
    # Detached tasks (FastAPI background tasks: trending, miss writes, index pushes)
    # ==========================================================================
    task_dead_letter_size: int = Field(default=200, description="Failed detached tasks kept for inspection")


@lru_cache
def get_settings() -> Settings:
    """
    Process-wide settings.

    Raises:
        ValidationError: SUPABASE_URL or SUPABASE_SERVICE_KEY is missing.
    """
    return Settings(_env_file=ENV_FILE if ENV_FILE.exists() else None)


def get_settings_for_testing(**overrides) -> Settings:
    """Uncached settings with test credentials and `overrides`."""
    values = {
        "supabase_url": "https://test.supabase.co",
        "supabase_service_key": "test-key",
        "supabase_jwt_secret": "test-jwt-secret",
        "environment": "testing",
        "debug": True,
    }
    values.update(overrides)
    return Settings(**values)
