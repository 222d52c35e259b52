"""Application configuration using Pydantic Settings."""

import json
from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FailurePolicy(str, Enum):
    """What the gates do when the key-value store is unavailable."""

    CLOSED = "closed"
    OPEN = "open"


def _parse_list(raw: str, default: list[str]) -> list[str]:
    """Parse a JSON array, comma-separated list, or single value."""
    v = raw.strip() if raw else ""
    if not v:
        return default
    if v.startswith("["):
        try:
            parsed = json.loads(v)
            return [str(x) for x in parsed] if isinstance(parsed, list) else [v]
        except json.JSONDecodeError:
            pass
    if "," in v:
        return [item.strip() for item in v.split(",") if item.strip()]
    return [v]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    PORT: int = 8787
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool | None = None

    # Key-value store
    REDIS_URL: str = "redis://localhost:6379"

    # Gates
    RATE_LIMIT_PER_MINUTE: int = Field(default=100, ge=1)
    STORAGE_FAILURE_POLICY: FailurePolicy = FailurePolicy.CLOSED

    # Tiers: JSON object keyed by tier id, see TierRegistry.from_settings
    TIERS: str | None = None

    # Stripe
    STRIPE_PRICE_ID: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_WEBHOOK_TOLERANCE: int = 300

    # Identity provider (Clerk)
    CLERK_SECRET_KEY: str | None = None
    CLERK_API_URL: str = "https://api.clerk.com/v1"
    CLERK_TIMEOUT_SECONDS: float = 10.0

    # Token verification
    AUTH_JWT_KEY: str | None = None
    AUTH_JWT_ALGORITHMS_RAW: str = Field(default="RS256", validation_alias="AUTH_JWT_ALGORITHMS")
    AUTH_JWT_AUDIENCE: str | None = None
    AUTH_TIER_CLAIM: str = "plan"

    # CORS - stored as raw string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS_RAW: str = Field(
        default='["http://localhost:5173"]',
        validation_alias="CORS_ORIGINS",
    )

    # Error reporting
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float | None = None

    @property
    def AUTH_JWT_ALGORITHMS(self) -> list[str]:  # noqa: N802 - matches env var name
        return _parse_list(self.AUTH_JWT_ALGORITHMS_RAW, ["RS256"])

    @property
    def CORS_ORIGINS(self) -> list[str]:  # noqa: N802 - matches env var name
        """Parse CORS origins from JSON array, comma-separated, or plain string."""
        return _parse_list(self.CORS_ORIGINS_RAW, ["http://localhost:5173"])

    def missing(self) -> list[str]:
        """List required settings that are not configured."""
        required = {
            "STRIPE_WEBHOOK_SECRET": self.STRIPE_WEBHOOK_SECRET,
            "CLERK_SECRET_KEY": self.CLERK_SECRET_KEY,
            "AUTH_JWT_KEY": self.AUTH_JWT_KEY,
            "REDIS_URL": self.REDIS_URL,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
