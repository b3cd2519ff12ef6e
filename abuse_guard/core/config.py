"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import Literal

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

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_guard_settings() -> "GuardSettings":
    """Build rate limit engine settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return GuardSettings()  # type: ignore[call-arg]


def _build_store_settings() -> "StoreSettings":
    return StoreSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


class GuardSettings(BaseSettings):
    """Rate limit engine defaults.

    These values are used for any action without a persisted override.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limit enforcement on protected routes",
    )
    secret_salt: str = Field(
        default_factory=lambda: secrets.token_hex(32),
        description=(
            "Process-wide salt mixed into client identifiers. Generated per "
            "process when unset, which resets all client buckets on restart"
        ),
    )
    default_window_seconds: int = Field(
        60,
        description="Counting window length in seconds",
        ge=1,
    )
    default_limit: int = Field(
        10,
        description="Maximum requests allowed per window",
        ge=1,
    )
    default_block_duration_seconds: int = Field(
        300,
        description="Base block duration applied when the limit is exceeded",
        ge=1,
    )
    default_progressive_delay: bool = Field(
        True,
        description="Slow down clients approaching their limit",
    )
    default_fail_mode: Literal["open", "closed"] = Field(
        "open",
        description="Whether requests pass (open) or fail (closed) when the store is down",
    )
    max_progressive_delay_seconds: float = Field(
        5.0,
        description="Upper bound for the progressive delay sleep",
        ge=0,
    )
    escalation_threshold: int = Field(
        5,
        description="Violations within 24h that trigger an extended block",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    trusted_proxy_headers: bool = Field(
        True,
        description="Consult forwarded-for style headers when resolving client IPs",
    )

    model_config = SettingsConfigDict(
        env_prefix="GUARD_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """TTL key-value store configuration."""

    backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Store backend (memory is per-process only)",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL used when backend=redis",
    )
    key_prefix: str = Field(
        "",
        description="Namespace prepended to every key in shared stores",
    )
    memory_max_entries: int | None = Field(
        100_000,
        description="Maximum keys held by the in-memory store (None for unlimited)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field("json", description="Log output format")
    output: Literal["stdout", "file"] = Field("stdout", description="Log destination")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10_485_760, description="Rotate file logs after this size (0 disables)")
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")
    security_level: Literal["info", "warning", "error", "critical"] = Field(
        "info",
        description="Minimum level recorded by the security event logger",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on admin routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are out of range.
    """

    app_env: str = APP_ENV
    guard: GuardSettings = Field(default_factory=_build_guard_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
