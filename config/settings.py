"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``MGNREGA_`` prefix; infrastructure settings use
their canonical environment variable names via ``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the MGNREGA district dashboard.

    Environment variables are loaded from a ``.env`` file when present.
    App-specific keys are prefixed with ``MGNREGA_``; infra keys use
    their standard names (configured via ``validation_alias``).
    """

    model_config = SettingsConfigDict(
        env_prefix="MGNREGA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"

    # ── Redis ──────────────────────────────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    store_namespace: str = "mgnrega:"

    # ── API ────────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=4000, validation_alias="API_PORT")
    cors_origins: str = Field(default="", validation_alias="CORS_ORIGINS")

    # ── Admin API Key ──────────────────────────────────────────────────
    admin_api_key: str = Field(default="", validation_alias="ADMIN_API_KEY")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── data.gov.in source ─────────────────────────────────────────────
    data_gov_api_key: str | None = Field(default=None, validation_alias="DATA_GOV_API_KEY")
    data_gov_resource_id: str = "ee03643a-ee4c-48c2-ac30-9f2ff26ab722"
    request_timeout_seconds: float = 30.0

    # ── Collection heuristics ──────────────────────────────────────────
    target_state: str = "UTTAR PRADESH"
    page_size: int = Field(default=10, ge=1)
    max_pages: int = Field(default=1500, ge=1)
    min_records: int = Field(default=300, ge=0)
    min_combinations: int = Field(default=200, ge=0)
    page_delay_seconds: float = Field(default=0.1, ge=0.0)  # between page requests

    # ── Sync schedule ──────────────────────────────────────────────────
    sync_interval_hours: float = Field(default=6, gt=0)
    enable_auto_sync: bool = True

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()
