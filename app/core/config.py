"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.utils.durations import parse_duration_ms


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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and os.getenv("TESTING") != "true":
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    security_headers_enabled: bool = Field(
        True,
        description="Attach CSP and related security headers to every response",
    )
    csp_connect_src: str = Field(
        "'self' https://*.supabase.co",
        description="Value of the connect-src directive in the Content-Security-Policy",
    )
    slack_webhook_url: str | None = Field(
        None,
        description="Incoming webhook that receives critical client error alerts",
    )
    alert_timeout_seconds: float = Field(
        5.0,
        description="Timeout for outbound alert webhooks in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-route-class request rate limits and backing store."""

    enabled: bool = Field(
        True,
        description="Enable request rate limiting",
    )
    backend: str = Field(
        "memory",
        description="Counter store: 'memory' (per process) or 'redis' (shared)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (backend=redis only)",
    )
    redis_key_prefix: str = Field(
        "rl:",
        description="Namespace prepended to every Redis key",
    )
    redis_socket_timeout_seconds: float = Field(
        0.5,
        description="Redis command timeout; a timeout counts as store unavailability",
        gt=0,
    )
    fail_closed: bool = Field(
        False,
        description="Reject requests when the store is unreachable (default admits)",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on limited responses",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as client IP (behind a proxy)",
    )

    general_requests: int = Field(
        100,
        description="Requests per window for pages and other general traffic",
        ge=1,
    )
    general_window: int = Field(
        60_000,
        description="General window, e.g. '1 m' (stored as milliseconds)",
    )
    api_requests: int = Field(
        50,
        description="Requests per window for /api/ routes",
        ge=1,
    )
    api_window: int = Field(
        60_000,
        description="API window, e.g. '1 m' (stored as milliseconds)",
    )
    auth_requests: int = Field(
        5,
        description="Requests per window for /auth/ routes",
        ge=1,
    )
    auth_window: int = Field(
        900_000,
        description="Auth window, e.g. '15 m' (stored as milliseconds)",
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Interval of the background sweep of expired entries (0 disables)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("general_window", "api_window", "auth_window", mode="before")
    @classmethod
    def _parse_window(cls, value: str | int) -> int:
        return parse_duration_ms(value)

    @field_validator("backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"memory", "redis"}:
            raise ValueError("backend must be 'memory' or 'redis'")
        return backend


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
