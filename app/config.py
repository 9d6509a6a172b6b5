# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.FIREBASE_PROJECT_ID)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Durations are expressed in seconds unless the field name says otherwise.
# =============================================================================

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ASSETS_PATH = str(Path(__file__).parent / "templates")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Covers the console server, the seed utility and the device API.
    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug logging"
    )

    DEV_MODE: bool = Field(
        default=False,
        description="Relaxes cookie security so the console works over plain HTTP"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the server to"
    )

    API_PORT: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for the server"
    )

    SERVER_NAME: str = Field(
        default="Diagnosis Verification Server",
        description="Display name rendered in page titles"
    )

    ASSETS_PATH: str = Field(
        default=DEFAULT_ASSETS_PATH,
        description="Directory holding the Jinja2 templates"
    )

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------

    DATABASE_URL: str = Field(
        default="sqlite:///./verification.db",
        description="SQLAlchemy database URL (postgres:// is accepted)"
    )

    # -------------------------------------------------------------------------
    # Firebase Configuration
    # -------------------------------------------------------------------------
    # The web values are rendered into the login page for the JS SDK.
    # The admin SDK picks up credentials from the environment (ADC).

    FIREBASE_API_KEY: str = Field(default="", description="Firebase web API key")
    FIREBASE_AUTH_DOMAIN: str = Field(default="", description="Firebase auth domain")
    FIREBASE_DATABASE_URL: str = Field(default="", description="Firebase database URL")
    FIREBASE_PROJECT_ID: str = Field(default="", description="Firebase / GCP project ID")
    FIREBASE_STORAGE_BUCKET: str = Field(default="", description="Firebase storage bucket")
    FIREBASE_MESSAGE_SENDER_ID: str = Field(default="", description="Firebase messaging sender ID")
    FIREBASE_APP_ID: str = Field(default="", description="Firebase app ID")
    FIREBASE_MEASUREMENT_ID: str = Field(default="", description="Firebase analytics measurement ID")

    # -------------------------------------------------------------------------
    # Sessions & CSRF
    # -------------------------------------------------------------------------

    COOKIE_KEYS: str = Field(
        default="dev-cookie-key-change-in-production",
        min_length=16,
        description="Comma-separated cookie signing keys (first key signs)"
    )

    COOKIE_DOMAIN: str | None = Field(
        default=None,
        description="Domain attribute for the session cookie"
    )

    SESSION_DURATION: int = Field(
        default=86400,
        ge=300,
        description="Lifetime of a console session"
    )

    REVOKE_CHECK_PERIOD: int = Field(
        default=300,
        ge=0,
        description="How often a session is re-checked against the identity provider for revocation"
    )

    CSRF_AUTH_KEY: str = Field(
        default="dev-csrf-key-change-in-production",
        min_length=16,
        description="Key used to sign CSRF tokens"
    )

    # -------------------------------------------------------------------------
    # Rate Limiting
    # -------------------------------------------------------------------------

    RATE_LIMIT_TYPE: Literal["memory", "redis", "noop"] = Field(
        default="memory",
        description="Backing store for rate limiting"
    )

    RATE_LIMIT_TOKENS: int = Field(
        default=60,
        ge=1,
        description="Requests allowed per interval per key"
    )

    RATE_LIMIT_INTERVAL: int = Field(
        default=60,
        ge=1,
        description="Rate limit window"
    )

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the shared rate limit store"
    )

    # -------------------------------------------------------------------------
    # Verification Codes
    # -------------------------------------------------------------------------

    CODE_DURATION: int = Field(default=900, ge=60, description="Short code lifetime")
    LONG_CODE_DURATION: int = Field(default=86400, ge=60, description="Long code lifetime")
    CODE_DIGITS: int = Field(default=8, ge=6, le=20, description="Length of the short numeric code")
    LONG_CODE_LENGTH: int = Field(default=16, ge=12, le=64, description="Length of the long code")
    COLLISION_RETRY_COUNT: int = Field(default=6, ge=1, description="Attempts before giving up on code collisions")
    ALLOWED_SYMPTOM_AGE: int = Field(default=14, ge=1, description="Oldest symptom/test date accepted, in days")
    MAX_CODE_AGE: int = Field(default=14 * 86400, ge=86400, description="Oldest symptom date a stored code may carry")
    VERIFICATION_TOKEN_DURATION: int = Field(default=86400, ge=60, description="Lifetime of a token issued for a redeemed code")

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        # Load from .env file in project root
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail on empty values (production sets env vars directly)
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cookie_keys_list(self) -> list[str]:
        """Parse COOKIE_KEYS into a list. The first entry signs new cookies."""
        return [key.strip() for key in self.COOKIE_KEYS.split(",") if key.strip()]

    @property
    def session_secret(self) -> str:
        return self.cookie_keys_list[0]

    @property
    def firebase_web_config(self) -> dict[str, str]:
        """
        Firebase config for the browser SDK.

        Rendered into the login page; none of these values are secrets.
        """
        return {
            "apiKey": self.FIREBASE_API_KEY,
            "authDomain": self.FIREBASE_AUTH_DOMAIN,
            "databaseURL": self.FIREBASE_DATABASE_URL,
            "projectId": self.FIREBASE_PROJECT_ID,
            "storageBucket": self.FIREBASE_STORAGE_BUCKET,
            "messagingSenderId": self.FIREBASE_MESSAGE_SENDER_ID,
            "appId": self.FIREBASE_APP_ID,
            "measurementId": self.FIREBASE_MEASUREMENT_ID,
        }

    @property
    def firebase_admin_options(self) -> dict[str, str]:
        """Options passed to firebase_admin.initialize_app."""
        options = {
            "projectId": self.FIREBASE_PROJECT_ID,
            "databaseURL": self.FIREBASE_DATABASE_URL,
            "storageBucket": self.FIREBASE_STORAGE_BUCKET,
        }
        return {k: v for k, v in options.items() if v}

    @property
    def session_duration(self) -> timedelta:
        return timedelta(seconds=self.SESSION_DURATION)

    @property
    def revoke_check_period(self) -> timedelta:
        return timedelta(seconds=self.REVOKE_CHECK_PERIOD)

    @property
    def allowed_symptom_age(self) -> timedelta:
        return timedelta(days=self.ALLOWED_SYMPTOM_AGE)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
