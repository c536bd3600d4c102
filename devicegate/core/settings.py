# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Application Settings

Configuration management using pydantic-settings.
Supports environment variables and .env files.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure secret values (compared lower-cased, "-" folded to "_")
INSECURE_SECRETS = frozenset(
    {
        "change_me_in_production",
        "change_me",
        "changeme",
        "secret",
        "jwt_secret",
        "your_secret_key",
        "supersecret",
        "password",
        "123456",
        "development",
        "dev_secret",
        "test_secret",
        "placeholder",
    }
)


class DatabaseSettings(BaseSettings):
    """Session/identity database configuration."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./devicegate.db",
        description="SQLAlchemy async connection URL (postgresql+asyncpg:// in production)",
    )
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    echo: bool = Field(default=False, description="Echo SQL queries")


class SecuritySettings(BaseSettings):
    """Token signing configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    access_token_secret: str = Field(
        default="CHANGE_ME_IN_PRODUCTION", description="Secret key for access token signing"
    )
    refresh_token_secret: str = Field(
        default="CHANGE_ME_IN_PRODUCTION", description="Secret key for refresh token signing"
    )
    jwt_algorithm: str = Field(default="HS256")
    token_issuer: str = Field(default="devicegate")
    access_token_ttl_minutes: int = Field(default=15, ge=1)
    refresh_token_ttl_days: int = Field(default=30, ge=1)

    @field_validator("access_token_secret", "refresh_token_secret")
    @classmethod
    def validate_secret(cls, v: str) -> str:
        """
        Validate signing secrets meet security requirements.

        CRITICAL: This prevents deployment with insecure defaults.
        """
        if v.lower().replace("-", "_") in INSECURE_SECRETS:
            raise ValueError(
                "Token secret is set to an insecure default. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(64))"'
            )

        if len(v) < 32:
            raise ValueError(f"Token secret must be at least 32 characters (got {len(v)})")

        if len(set(v)) < 10:
            raise ValueError(
                "Token secret appears to have low entropy (too many repeated characters)"
            )

        return v


class SessionSettings(BaseSettings):
    """Device session admission configuration."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    device_limit: int = Field(
        default=5, ge=0, description="Maximum concurrently logged-in devices per identity"
    )
    eviction_inactivity_threshold_hours: float = Field(
        default=24.0,
        gt=0,
        description="Sessions logged in longer ago than this are evicted first",
    )
    write_retries: int = Field(
        default=1, ge=0, le=10, description="Session mutation retries after an aborted transaction"
    )
    transaction_timeout_seconds: float = Field(default=10.0, gt=0)
    rotate_refresh_tokens: bool = Field(
        default=False, description="Issue a new refresh token on every renewal"
    )
    reconcile_batch_size: int = Field(default=500, ge=1)


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="OBSERVABILITY_")

    metrics_namespace: str = Field(default="devicegate")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or human


class Settings(BaseSettings):
    """
    Main application settings.

    Usage:
        settings = get_settings()
        print(settings.session.device_limit)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    environment: str = Field(default="development")  # development, staging, production

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    """
    return Settings()


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Settings",
    "DatabaseSettings",
    "SecuritySettings",
    "SessionSettings",
    "ObservabilitySettings",
    "get_settings",
]
