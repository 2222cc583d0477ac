# apps/api/podcast_api/core/config.py
"""
Central configuration & settings for the Podcast Platform API.
Loads from environment variables with strict validation (pydantic-settings v2+).
Billing knobs (trial length, proration month, simulated settlement delay) live here
so the subscription lifecycle never reads os.environ directly.
"""

from functools import lru_cache
from typing import Any, List

from pydantic import (
    EmailStr,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Podcast Platform API Settings
    All values loaded from environment variables (.env or platform secrets).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # ────────────────────────────────────────────────
    # Core App
    # ────────────────────────────────────────────────
    ENVIRONMENT: str = Field(
        "development",
        description="Runtime environment (development, staging, production, test)"
    )
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = Field("INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    FRONTEND_URL: str = Field(
        "http://localhost:5173",
        description="Base URL of the frontend (used in emails, checkout redirects, CORS)"
    )

    # ────────────────────────────────────────────────
    # Database (PostgreSQL + asyncpg, SQLite + aiosqlite for dev/tests)
    # ────────────────────────────────────────────────
    DATABASE_URL: str = Field(
        "sqlite+aiosqlite:///./podcast.db",
        description="SQLAlchemy async connection string"
    )
    DB_AUTO_CREATE: bool = Field(True, description="Create missing tables on startup")

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not (v.startswith("postgresql+asyncpg://") or v.startswith("sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must use an async driver (postgresql+asyncpg:// or sqlite+aiosqlite://)")
        return v

    # ────────────────────────────────────────────────
    # Stripe Billing
    # ────────────────────────────────────────────────
    STRIPE_SECRET_KEY: SecretStr = SecretStr("sk_test_placeholder")
    STRIPE_WEBHOOK_SECRET: SecretStr = SecretStr("whsec_placeholder")
    STRIPE_WEBHOOK_TOLERANCE: int = Field(300, ge=0, description="Signature timestamp tolerance (seconds)")

    # ────────────────────────────────────────────────
    # Subscription lifecycle
    # ────────────────────────────────────────────────
    FREE_PLAN_NAME: str = Field("Free", description="Catalog name of the free tier")
    FREE_TRIAL_DAYS: int = Field(7, ge=1)
    # Proration assumes a fixed billing month regardless of plan.duration
    PRORATION_MONTH_DAYS: int = Field(30, ge=1)
    DEFAULT_RENEWAL_DAYS: int = Field(30, ge=1)
    PAYMENT_SIMULATION_DELAY_SECONDS: float = Field(2.0, ge=0)
    DEFAULT_CURRENCY: str = Field("USD", pattern=r"^(USD|EUR|GBP|INR)$")

    # ────────────────────────────────────────────────
    # Email (SendGrid)
    # ────────────────────────────────────────────────
    SENDGRID_API_KEY: SecretStr | None = None
    EMAIL_FROM: EmailStr = Field(
        "no-reply@podcast.example.com",
        description="Default sender email"
    )

    # ────────────────────────────────────────────────
    # Monitoring (Sentry)
    # ────────────────────────────────────────────────
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = Field(0.3, ge=0, le=1)

    # ────────────────────────────────────────────────
    # JWT & Security
    # ────────────────────────────────────────────────
    JWT_SECRET_KEY: SecretStr = SecretStr("dev-access-secret-change-me-0123456789abcdef")
    JWT_REFRESH_SECRET: SecretStr = SecretStr("dev-refresh-secret-change-me-0123456789abcdef")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(15, ge=1, le=1440)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(30, ge=1, le=90)
    VERIFICATION_TOKEN_HOURS: int = Field(24, ge=1)

    COOKIE_SECURE: bool = Field(True, description="Set to False in development only")
    COOKIE_DEFAULTS: dict[str, Any] = Field(default_factory=lambda: {
        "httponly": True,
        "secure": True,
        "samesite": "strict",
        "path": "/",
    })

    RATE_LIMIT_STORAGE_URI: str = "memory://"
    RATE_LIMIT_ENABLED: bool = True

    # ────────────────────────────────────────────────
    # CORS
    # ────────────────────────────────────────────────
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def compute_cors_origins(self) -> "Settings":
        """Auto-populate CORS_ORIGINS from FRONTEND_URL if empty."""
        if not self.CORS_ORIGINS:
            self.CORS_ORIGINS = [self.FRONTEND_URL]
        return self

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        if self.ENVIRONMENT in ("staging", "production"):
            for name in ("JWT_SECRET_KEY", "JWT_REFRESH_SECRET"):
                if len(getattr(self, name).get_secret_value()) < 32:
                    raise ValueError(f"{name} must be at least 32 characters long")
        return self

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def validate_env(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ["development", "staging", "production", "test"]:
            raise ValueError("Invalid ENVIRONMENT value")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_dev(self) -> bool:
        return self.ENVIRONMENT in ("development", "test")

    def get_cookie_options(self, max_age: int | None = None) -> dict[str, Any]:
        """Get secure cookie options, adjusted for environment."""
        opts = self.COOKIE_DEFAULTS.copy()
        opts["secure"] = self.COOKIE_SECURE and self.is_production
        if max_age is not None:
            opts["max_age"] = max_age
        return opts


# ────────────────────────────────────────────────
# Singleton instance (cached)
# ────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
