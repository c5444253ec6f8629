"""
Configuration settings for the LunarCrush cache refresher.
Uses Pydantic Settings for type-safe environment variable loading.
"""
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lunarcrush_cache.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # LUNARCRUSH API CONFIGURATION
    # ==========================================================================
    lunarcrush_api_key: str = Field(description="LunarCrush API key")
    lunarcrush_api_base_url: str = Field(
        default="https://lunarcrush.com/api4/public",
        description="LunarCrush public API base URL"
    )
    lunarcrush_rate_limit_rps: float = Field(
        default=1.0,
        gt=0.0,
        le=50.0,
        description="Sustained request rate towards LunarCrush"
    )
    lunarcrush_burst: int = Field(
        default=5,  # a whole group fan-out goes out without waiting
        ge=1,
        le=50,
        description="Requests allowed in a burst before throttling kicks in"
    )

    # ==========================================================================
    # GENERAL API SETTINGS
    # ==========================================================================
    api_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)

    # ==========================================================================
    # RETRY CONFIGURATION (429 only)
    # ==========================================================================
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=10.0, ge=0.0, le=300.0)

    # ==========================================================================
    # DATABASE CONFIGURATION
    # ==========================================================================
    database_url: str = Field(description="Postgres DSN of the cache database")
    database_service_key: str = Field(description="Service credential (database password)")
    db_pool_min_size: int = Field(default=1, ge=1, le=20)
    db_pool_max_size: int = Field(default=5, ge=1, le=50)
    db_command_timeout_seconds: float = Field(default=60.0, gt=0.0, le=600.0)

    # ==========================================================================
    # CACHE CONFIGURATION
    # ==========================================================================
    cache_ttl_minutes: int = Field(
        default=180,
        ge=1,
        le=7 * 24 * 60,
        description="Minutes before a cache entry is considered stale by readers"
    )

    # ==========================================================================
    # SCHEDULING CONFIGURATION
    # ==========================================================================
    refresh_interval_minutes: int = Field(default=10, ge=1, le=1440)
    run_refresh_on_startup: bool = Field(default=True)
    parallel_groups: bool = Field(
        default=False,
        description="Refresh the trends/market/latest groups concurrently"
    )

    # ==========================================================================
    # LOGGING
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    @field_validator("lunarcrush_api_key", "database_url", "database_service_key")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("lunarcrush_api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    # ==========================================================================
    # DERIVED PROPERTIES
    # ==========================================================================

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_minutes * 60

    @property
    def masked_database_url(self) -> str:
        """Database URL safe for printing."""
        url = self.database_url
        if "@" in url:
            prefix, host = url.rsplit("@", 1)
            scheme_user = prefix.rsplit(":", 1)[0] if prefix.count(":") > 1 else prefix
            return f"{scheme_user}:****@{host}"
        return url


REQUIRED_ENV_VARS = ("LUNARCRUSH_API_KEY", "DATABASE_URL", "DATABASE_SERVICE_KEY")


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: If a required variable is missing or a value is invalid.
            The message names every offending variable.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "settings"
            if error["type"] == "missing":
                problems.append(f"{field.upper()} is not set")
            else:
                problems.append(f"{field.upper()}: {error['msg']}")
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(problems)
        ) from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
