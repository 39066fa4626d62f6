"""
Matchbox — Application Configuration

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
    """Central configuration for the Matchbox service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket, private IP, or local URL
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "matchbox_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "matchbox"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = False

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 70.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Matching
    # ------------------------------------------------------------------ #
    MATCH_CREATE_MAX_RETRIES: int = 3
    DISCOVER_PAGE_MAX: int = 100

    # ------------------------------------------------------------------ #
    # Conversations
    # ------------------------------------------------------------------ #
    MESSAGE_PAGE_DEFAULT: int = 50
    MESSAGE_PAGE_MAX: int = 200
    MESSAGE_MAX_LENGTH: int = 4000

    # ------------------------------------------------------------------ #
    # Live notifications (server-sent events)
    # ------------------------------------------------------------------ #
    NOTIFICATION_BUFFER_SIZE: int = 32
    SSE_PING_INTERVAL_SECONDS: float = 30.0

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

    @field_validator(
        "MATCH_CREATE_MAX_RETRIES",
        "DISCOVER_PAGE_MAX",
        "MESSAGE_PAGE_DEFAULT",
        "MESSAGE_PAGE_MAX",
        "MESSAGE_MAX_LENGTH",
        "NOTIFICATION_BUFFER_SIZE",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be a positive integer, got {v}")
        return v

    @field_validator("SSE_PING_INTERVAL_SECONDS", "REQUEST_TIMEOUT_SECONDS")
    @classmethod
    def _interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Interval must be greater than 0, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from matchbox.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
