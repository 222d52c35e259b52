"""FastAPI dependency functions and the per-process service container."""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from meterline.exceptions import RateLimitExceeded
from meterline.identity import ClerkUserMetadataClient, TokenVerifier, VerifiedIdentity
from meterline.rate_limiter import RateLimiter, RateLimitResult
from meterline.redis_client import RedisClient
from meterline.tiers import TierRegistry
from meterline.usage_ledger import UsageLedger
from meterline.webhooks import WebhookReconciler


@dataclass
class MeteringServices:
    """Components shared by every request.

    They hold no per-request state; all coordination goes through the
    key-value store.
    """

    tiers: TierRegistry
    rate_limiter: RateLimiter
    ledger: UsageLedger
    reconciler: WebhookReconciler
    verifier: TokenVerifier
    redis: RedisClient | None = None
    metadata_client: ClerkUserMetadataClient | None = None

    async def startup(self) -> None:
        if self.redis is not None:
            await self.redis.connect()

    async def shutdown(self) -> None:
        if self.metadata_client is not None:
            await self.metadata_client.aclose()
        if self.redis is not None:
            await self.redis.disconnect()


def get_services(request: Request) -> MeteringServices:
    services: MeteringServices = request.app.state.services
    return services


Services = Annotated[MeteringServices, Depends(get_services)]


async def get_identity(
    services: Services,
    authorization: Annotated[str | None, Header()] = None,
) -> VerifiedIdentity:
    """Resolve the caller from the bearer token."""
    return services.verifier.verify(authorization)


CurrentIdentity = Annotated[VerifiedIdentity, Depends(get_identity)]


async def enforce_rate_limit(
    identity: CurrentIdentity,
    services: Services,
) -> RateLimitResult:
    """Count the request against the caller's minute window."""
    result = await services.rate_limiter.check_and_increment(identity.user_id)
    if not result.allowed:
        raise RateLimitExceeded(limit=result.limit, retry_after=result.retry_after)
    return result


RateLimited = Annotated[RateLimitResult, Depends(enforce_rate_limit)]
