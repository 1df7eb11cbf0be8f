"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists and we are not under pytest
_env_file = str(_env_path) if _env_path.is_file() and not os.getenv("TESTING") else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class FailurePolicy(str, Enum):
    """What a component does when the backing store cannot answer.

    OPEN lets the request through unchecked, CLOSED rejects it.
    """

    OPEN = "open"
    CLOSED = "closed"


class AppSettings(BaseSettings):
    """Application-wide configuration (HTTP surface and rate limiting)."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_header: str = Field(
        "X-API-Key",
        description="Header carrying the caller's API key",
    )
    api_key_query_param: str = Field(
        "api_key",
        description="Query parameter accepted as a fallback for the API key",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable sliding-window rate limiting per API key",
    )
    rate_limit_requests: int = Field(
        60,
        description="Maximum number of requests allowed per window (per API key)",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        60,
        description="Sliding window length in seconds",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_failure_policy: FailurePolicy = Field(
        FailurePolicy.OPEN,
        description="Behaviour when the limiter backend is unavailable",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the backing key-value service."""

    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Per-command socket timeout; a timeout counts as unavailability",
        gt=0,
    )
    socket_connect_timeout_seconds: float = Field(
        2.0,
        description="Connection establishment timeout",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Partitioned record store, lookup cache and search settings."""

    partition_count: int = Field(
        1000,
        description="Number of shards. Changing it without a migration orphans data.",
        ge=1,
    )
    partition_prefix: str = Field(
        "part",
        description="Key prefix for shard hashes",
    )
    cache_prefix: str = Field(
        "num",
        description="Key prefix for cached lookups",
    )
    cache_ttl_seconds: int = Field(
        3600,
        description="Lifetime of a cached lookup",
        ge=1,
    )
    cache_backend: str = Field(
        "redis",
        description="Lookup cache backend: 'redis' (shared) or 'memory' (per process)",
    )
    cache_max_entries: int = Field(
        10000,
        description="Upper bound on entries for the in-memory cache backend",
        ge=1,
    )
    search_max_matches: int = Field(
        1000,
        description="Stop scanning shards once this many matches were collected",
        ge=1,
    )
    search_max_page_size: int = Field(
        100,
        description="Largest accepted page size for search results",
        ge=1,
    )
    search_scan_count: int = Field(
        500,
        description="COUNT hint passed to HSCAN while searching",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class QuotaSettings(BaseSettings):
    """Quota ledger settings."""

    key_prefix: str = Field(
        "apikey",
        description="Key prefix for credential hashes",
    )
    failure_policy: FailurePolicy = Field(
        FailurePolicy.CLOSED,
        description="Behaviour when the ledger backend is unavailable",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
