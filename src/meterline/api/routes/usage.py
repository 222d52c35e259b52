"""Metered business endpoint and usage reporting."""

from typing import Any

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from meterline.api.dependencies import CurrentIdentity, RateLimited, Services
from meterline.models.billing import Quota
from meterline.rate_limiter import RateLimitResult

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["usage"])


class UsageSummary(BaseModel):
    count: int
    limit: Quota
    plan: str


class DataResponse(BaseModel):
    """Response for a metered unit of work."""

    success: bool = True
    data: dict[str, Any]
    usage: UsageSummary


class UsageResponse(BaseModel):
    """Read-only usage report for the current billing period."""

    user_id: str = Field(serialization_alias="userId")
    plan: str
    usage_count: int = Field(serialization_alias="usageCount")
    limit: Quota
    remaining: Quota
    period_start: str = Field(serialization_alias="periodStart")
    period_end: str = Field(serialization_alias="periodEnd")


def _set_rate_limit_headers(response: Response, rate: RateLimitResult) -> None:
    response.headers["X-RateLimit-Limit"] = str(rate.limit)
    response.headers["X-RateLimit-Remaining"] = str(rate.remaining)


@router.post("/data", response_model=DataResponse)
async def process_data(
    identity: CurrentIdentity,
    rate: RateLimited,
    services: Services,
    response: Response,
) -> DataResponse:
    """Gate one unit of work behind the rate limit and the monthly quota."""
    _set_rate_limit_headers(response, rate)
    result = await services.ledger.require(identity.user_id, identity.tier)

    logger.info(
        "Processed metered request",
        user_id=identity.user_id,
        plan=identity.tier,
        count=result.count,
    )
    return DataResponse(
        data={"message": "Request processed successfully"},
        usage=UsageSummary(count=result.count, limit=result.limit, plan=identity.tier),
    )


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    identity: CurrentIdentity,
    rate: RateLimited,
    services: Services,
    response: Response,
) -> UsageResponse:
    """Report usage for the current period without consuming quota."""
    _set_rate_limit_headers(response, rate)
    snapshot = await services.ledger.peek(identity.user_id, identity.tier)
    return UsageResponse(
        user_id=identity.user_id,
        plan=identity.tier,
        usage_count=snapshot.count,
        limit=snapshot.limit,
        remaining=snapshot.remaining,
        period_start=snapshot.period_start,
        period_end=snapshot.period_end,
    )
