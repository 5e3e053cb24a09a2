"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
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


FailurePolicyName = Literal["fallback", "open", "closed"]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_payment_settings() -> "PaymentSettings":
    return PaymentSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    session_tokens: str | None = Field(
        None,
        description=(
            "Comma-separated list of token:user_id pairs accepted as bearer "
            "sessions by the static identity provider"
        ),
    )
    public_base_url: str = Field(
        "http://localhost:3000",
        description="Public storefront URL used for checkout back URLs and webhook notifications",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format: structured JSON or plain text",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Log destination",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Admission control configuration.

    Each operation class has its own window, quota and failure policy. The
    failure policy only applies when the shared backend breaks during a live
    check: ``fallback`` uses the in-process counter, ``open`` admits the
    request and ``closed`` denies it.
    """

    enabled: bool = Field(True, description="Enable rate limiting on API routes")
    redis_url: str | None = Field(
        None,
        description="Shared backend URL (redis://...). In-process counters are used when unset",
    )
    backend_timeout_seconds: float = Field(
        2.0,
        description="Connect/operation timeout for the shared backend",
        gt=0,
    )
    backend_retry_seconds: float = Field(
        30.0,
        description="How long a failing shared backend is bypassed before it is tried again",
        ge=0,
    )
    max_memory_entries: int = Field(
        10_000,
        description="Maximum number of keys tracked by the in-process limiter",
        ge=1,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers alongside Retry-After when throttling",
    )

    auth_window_ms: int = Field(15 * 60 * 1000, ge=1)
    auth_max_requests: int = Field(5, ge=1)
    auth_failure_policy: FailurePolicyName = "fallback"

    api_window_ms: int = Field(60 * 1000, ge=1)
    api_max_requests: int = Field(60, ge=1)
    api_failure_policy: FailurePolicyName = "fallback"

    payment_window_ms: int = Field(5 * 60 * 1000, ge=1)
    payment_max_requests: int = Field(10, ge=1)
    payment_failure_policy: FailurePolicyName = "fallback"

    cart_window_ms: int = Field(60 * 1000, ge=1)
    cart_max_requests: int = Field(30, ge=1)
    cart_failure_policy: FailurePolicyName = "fallback"

    web_window_ms: int = Field(60 * 1000, ge=1)
    web_max_requests: int = Field(100, ge=1)
    web_failure_policy: FailurePolicyName = "fallback"

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class PaymentSettings(BaseSettings):
    """MercadoPago integration configuration."""

    webhook_secret: str | None = Field(
        None,
        description="Webhook signing secret. Verification fails closed when unset",
    )
    webhook_max_age_seconds: int = Field(
        15 * 60,
        description="Maximum accepted age of a webhook signature timestamp",
        ge=1,
    )
    access_token: str | None = Field(
        None,
        description="MercadoPago API access token",
    )
    api_base_url: str = Field(
        "https://api.mercadopago.com",
        description="MercadoPago REST API base URL",
    )
    timeout_seconds: float = Field(5.0, description="Provider request timeout", gt=0)
    currency_id: str = Field("ARS", description="Currency used for checkout items")
    preference_ttl_minutes: int = Field(
        30,
        description="Minutes a checkout preference stays payable",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="PAYMENTS_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    payments: PaymentSettings = Field(default_factory=_build_payment_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
