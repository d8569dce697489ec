"""
Sparkmatch — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Sparkmatch backend."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "sparkmatch"
    DB_PASSWORD: str = ""
    DB_NAME: str = "sparkmatch"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # Cloud SQL connector (used when an instance connection name is set)
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = True

    # ------------------------------------------------------------------ #
    # Redis — optional pub/sub backplane for real-time fan-out
    # ------------------------------------------------------------------ #
    REDIS_URL: str = ""
    REDIS_CHANNEL: str = "sparkmatch:events"

    # ------------------------------------------------------------------ #
    # Security
    # ------------------------------------------------------------------ #
    SECRET_KEY: str  # Fernet key used to sign access tokens
    TOKEN_TTL_SECONDS: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------ #
    # Messaging rules
    # ------------------------------------------------------------------ #
    EDIT_WINDOW_MINUTES: int = 15
    MESSAGE_MAX_LENGTH: int = 1000

    # ------------------------------------------------------------------ #
    # Discovery / swipes
    # ------------------------------------------------------------------ #
    DISCOVERY_DEFAULT_LIMIT: int = 10
    DISCOVERY_BATCH_SIZE: int = 50
    SWIPE_RETENTION_DAYS: int = 30
    RECENT_ACTIVITY_DAYS: int = 7

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "http://localhost:8081"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("EDIT_WINDOW_MINUTES", "MESSAGE_MAX_LENGTH", "TOKEN_TTL_SECONDS")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime::

        from sparkmatch.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
