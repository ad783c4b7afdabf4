"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. The settings object is frozen: it is
built once at start-up and handed to the components that need it (token
codec, rate limiter, services) instead of being mutated at runtime.
"""

import warnings
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET_KEY = "change-me-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Database - relative path for local dev, override via DATABASE_URL
    database_url: str = "sqlite:///./helpdesk.db"
    sql_echo: bool = False

    # Token signing
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_seconds: int = 60 * 60 * 24  # 24 hours

    # Account security
    password_min_length: int = 8
    max_login_attempts: int = 5
    lockout_time: int = 900  # seconds (15 minutes)

    # Registration marks email as verified until a real verification flow exists
    auto_verify_email: bool = True

    # Server
    app_name: str = "BuzzUp Helpdesk"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Coarse per-IP request throttling (slowapi)
    rate_limit_enabled: bool = True

    # Only honour X-Forwarded-For when running behind a trusted reverse proxy
    trust_forwarded_for: bool = False

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == DEFAULT_SECRET_KEY:
            warnings.warn(
                "Using default SECRET_KEY is insecure! Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        elif len(v) < 32:
            warnings.warn(
                "SECRET_KEY should be at least 32 characters for security.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator("access_token_expire_seconds", "lockout_time", "max_login_attempts", "password_min_length")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse to start in production mode with a weak signing secret."""
        if not self.debug:
            if self.secret_key == DEFAULT_SECRET_KEY:
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)}). Generate a secure key with: "
                    "python -c \"import secrets; print(secrets.token_urlsafe(32))\""
                )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
