"""Application configuration for Relay services."""
from __future__ import annotations

from functools import lru_cache
import json
import logging
from typing import Annotated, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger("relay.config")

CsvList = Annotated[List[str], NoDecode]


def _split_csv(value: str | list[str]) -> list[str]:
    """Accept JSON arrays or comma separated strings for list fields."""

    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            return json.loads(stripped)
        return [item.strip() for item in stripped.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Relay", description="Human readable application name.")
    environment: str = Field(default="development", description="Environment name for log tagging.")
    api_v1_prefix: str = Field(default="/api/v1", description="Prefix for versioned API routes.")
    allowed_origins: CsvList = Field(
        default_factory=lambda: ["*"],
        description="List of CORS origins allowed to access the API.",
    )
    api_keys: CsvList = Field(
        default_factory=list,
        description="Optional list of static API keys that can access administrative routes.",
    )
    database_url: str = Field(
        default="sqlite:///./relay.db",
        description="Database connection string used for the pending event table.",
    )
    log_level: str = Field(default="INFO", description="Application log level.")
    log_format: str = Field(
        default="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        description="Format string for console log records.",
    )

    project_id: str | None = Field(default=None, description="Analytics project identifier.")
    site_id: str | None = Field(default=None, description="Identifier of the site reporting events.")
    client_version: str = Field(default="1.0.0", description="Version reported in every event envelope.")
    session_cookie_name: str = Field(
        default="session",
        description="Cookie whose value is reported as the envelope session identifier.",
    )

    collect_enabled: bool = Field(default=True, description="Schedule the drain worker on startup.")
    collect_endpoint: str = Field(
        default="https://collect.relay.local/collect",
        description="Remote collection endpoint receiving event batches.",
    )
    collect_batch_size: int = Field(default=50, ge=1, description="Maximum number of events per outbound batch.")
    collect_interval_seconds: int = Field(default=300, ge=1, description="Interval between drain cycles.")
    collect_timeout_seconds: float = Field(default=1.0, gt=0, description="Timeout for a single batch send.")
    collect_max_redirects: int = Field(default=5, ge=0, description="Redirects followed by a batch send.")
    collect_excluded_prefixes: CsvList = Field(
        default_factory=list,
        description="Request path prefixes never recorded; administrative routes are always excluded.",
    )

    @field_validator("api_keys", "allowed_origins", "collect_excluded_prefixes", mode="before")
    def _split_lists(cls, value: str | list[str]) -> list[str]:
        return _split_csv(value)

    @model_validator(mode="after")
    def _ensure_admin_excluded(self) -> "Settings":
        admin_prefixes = ["/admin", f"{self.api_v1_prefix}/admin"]
        missing = [prefix for prefix in admin_prefixes if prefix not in self.collect_excluded_prefixes]
        if missing:
            object.__setattr__(self, "collect_excluded_prefixes", [*self.collect_excluded_prefixes, *missing])
        return self

    @property
    def collect_configured(self) -> bool:
        """True when both identity values needed to build events are present."""

        return bool(self.project_id) and bool(self.site_id)


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    settings = Settings()
    if not settings.collect_configured:
        logger.info("Project or site identifier missing; request analytics will not be recorded")
    return settings
