"""FastAPI application factory."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meterline.api.dependencies import MeteringServices
from meterline.api.routes import health, tiers, usage, webhooks
from meterline.config import Settings, get_settings
from meterline.exceptions import (
    MeterlineError,
    MissingSettingsError,
    QuotaExceeded,
    RateLimitExceeded,
)
from meterline.identity import ClerkUserMetadataClient, TokenVerifier
from meterline.observability import capture_exception
from meterline.rate_limiter import RateLimiter
from meterline.redis_client import get_redis_client
from meterline.storage import RedisKeyValueStore
from meterline.tiers import TierRegistry
from meterline.usage_ledger import UsageLedger
from meterline.webhooks import WebhookReconciler

logger = structlog.get_logger()


def build_services(settings: Settings) -> MeteringServices:
    """Wire components from settings.

    Raises:
        ConfigurationError: If required settings or tier definitions are missing.
    """
    missing = settings.missing()
    if missing:
        logger.error("Environment validation failed", missing=missing)
        raise MissingSettingsError(missing)

    tier_registry = TierRegistry.from_settings(settings)
    redis_client = get_redis_client(settings.REDIS_URL)
    store = RedisKeyValueStore(redis_client)
    metadata_client = ClerkUserMetadataClient(
        settings.CLERK_SECRET_KEY,
        base_url=settings.CLERK_API_URL,
        timeout=settings.CLERK_TIMEOUT_SECONDS,
    )

    return MeteringServices(
        tiers=tier_registry,
        rate_limiter=RateLimiter(
            store,
            limit=settings.RATE_LIMIT_PER_MINUTE,
            failure_policy=settings.STORAGE_FAILURE_POLICY,
        ),
        ledger=UsageLedger(store, tier_registry, failure_policy=settings.STORAGE_FAILURE_POLICY),
        reconciler=WebhookReconciler(
            store,
            metadata_client,
            tier_registry,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
        ),
        verifier=TokenVerifier(
            settings.AUTH_JWT_KEY,
            default_tier=tier_registry.lowest().id,
            algorithms=settings.AUTH_JWT_ALGORITHMS,
            audience=settings.AUTH_JWT_AUDIENCE,
            tier_claim=settings.AUTH_TIER_CLAIM,
        ),
        redis=redis_client,
        metadata_client=metadata_client,
    )


async def _meterline_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render domain errors as JSON with their mapped status code."""
    assert isinstance(exc, MeterlineError)
    headers: dict[str, str] = {}
    content: dict[str, Any] = {"error": exc.message}

    if isinstance(exc, RateLimitExceeded):
        content = {
            "error": "Rate limit exceeded",
            "message": exc.message,
            "retryAfter": exc.retry_after,
        }
        headers["Retry-After"] = str(exc.retry_after)
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = "0"
    elif isinstance(exc, QuotaExceeded):
        content = {
            "error": "Monthly limit reached",
            "usageCount": exc.count,
            "limit": exc.limit,
            "plan": exc.tier,
            "message": exc.message,
        }
    elif exc.status_code >= 500:
        # Keep backend details (keys, upstream responses) out of the response.
        logger.error(
            "Request failed",
            path=str(request.url.path),
            error_type=type(exc).__name__,
            error=exc.message,
        )
        capture_exception(exc, tags={"path": str(request.url.path)})
        content = {"error": "Service temporarily unavailable"}

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all that never exposes internals; the error id correlates logs."""
    error_id = str(uuid.uuid4())[:8]
    logger.exception(
        "Unhandled exception",
        error_id=error_id,
        path=str(request.url.path),
        method=request.method,
        exc_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred. Please try again later.",
            "error_id": error_id,
        },
    )


def create_app(
    settings: Settings | None = None,
    services: MeteringServices | None = None,
) -> FastAPI:
    """Create the metering API.

    Configuration is validated here, before anything is served.
    """
    settings = settings or get_settings()
    if services is None:
        services = build_services(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        await services.startup()
        logger.info("Metering API started", environment=settings.ENVIRONMENT)
        yield
        await services.shutdown()
        logger.info("Metering API stopped")

    app = FastAPI(title="meterline", version=settings.VERSION, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
    app.add_exception_handler(MeterlineError, _meterline_error_handler)
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(health.router)
    app.include_router(tiers.router)
    app.include_router(usage.router)
    app.include_router(webhooks.router)
    return app
