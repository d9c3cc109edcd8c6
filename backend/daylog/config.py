"""
Daylog Backend — Application Configuration
============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a default `settings` object.
Who:   Imported by the application factory; every component also accepts an
       explicit Settings instance so tests can build isolated copies.
When:  Loaded once at module import time; validated before the app starts.
"""

from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for a local, single-user install.
    Attributes are grouped by concern for readability.
    """

    # ── Entry Store ───────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///<path> or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./daylog.db",
        description="Async SQLAlchemy URL of the journal database",
    )

    # What happens when the stored table shape differs from the expected one:
    #   recreate: drop the table and start empty
    #   fail:     refuse to open, keep the data
    schema_mismatch_policy: str = Field(default="recreate")

    # Pending snapshots per subscriber before the oldest is dropped
    subscriber_queue_size: int = Field(default=16, ge=1, le=1024)

    # ── Media Storage ─────────────────────────────────────────────────────
    storage_root: str = Field(default="./storage")

    # 10MB for photos, 25MB for voice recordings
    max_image_size: int = Field(default=10_485_760, ge=1_024, le=52_428_800)
    max_audio_size: int = Field(default=26_214_400, ge=1_024, le=104_857_600)

    # ── Weather ───────────────────────────────────────────────────────────
    weather_api_url: str = Field(default="https://api.open-meteo.com/v1/forecast")
    weather_latitude: float = Field(default=65.01, ge=-90, le=90)
    weather_longitude: float = Field(default=25.47, ge=-180, le=180)
    weather_timeout: float = Field(default=10.0, gt=0, le=60)

    # Tenacity retry settings for weather API calls (seconds)
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=8.0, ge=0, le=120)

    # Circuit breaker: open after N consecutive failures, try again after M seconds
    cb_failure_threshold: int = Field(default=5, ge=1, le=20)
    cb_recovery_timeout: int = Field(default=60, ge=0, le=300)

    # ── Display ───────────────────────────────────────────────────────────
    # IANA zone name used for the human-readable entry dates
    display_timezone: str = Field(default="UTC")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Comma-separated list of allowed origins
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="127.0.0.1")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("display_timezone")
    @classmethod
    def validate_display_timezone(cls, v: str) -> str:
        """Ensures the display zone is a known IANA time zone name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown display_timezone '{v}'") from e
        return v

    @field_validator("schema_mismatch_policy")
    @classmethod
    def validate_schema_mismatch_policy(cls, v: str) -> str:
        valid_policies = {"recreate", "fail"}
        lower = v.lower()
        if lower not in valid_policies:
            raise ValueError(
                f"Invalid schema_mismatch_policy '{v}'. Must be one of: {valid_policies}"
            )
        return lower

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # DATABASE_URL and database_url both work
    }


# Default instance used when no explicit Settings is passed
settings = Settings()
