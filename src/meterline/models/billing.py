"""Billing models: tiers, usage records and gate results."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED: Literal["unlimited"] = "unlimited"

# A finite monthly allowance or the unlimited marker. The marker is a string
# so it can never be confused with a numeric quota.
Quota = Annotated[int, Field(ge=0)] | Literal["unlimited"]


class TierDefinition(BaseModel):
    """A subscription tier loaded from configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    display_name: str = Field(alias="name")
    monthly_price: Decimal = Field(default=Decimal(0), ge=0, alias="price")
    quota: Quota = 0
    billing_price_reference: str | None = Field(default=None, alias="price_id")

    @property
    def is_unlimited(self) -> bool:
        return self.quota == UNLIMITED

    @property
    def purchasable(self) -> bool:
        """Whether checkout can be offered for this tier."""
        return bool(self.billing_price_reference)


class TierListing(BaseModel):
    """Public view of a tier for pricing pages."""

    id: str
    name: str
    price: float
    limit: Quota
    purchasable: bool


class UsageRecord(BaseModel):
    """Per-user monthly usage counter as stored under ``usage:{user_id}``.

    Stored with the original field names (``usageCount``, ``plan``,
    ``lastUpdated``, ``periodStart``, ``periodEnd``) so existing records stay
    readable.
    """

    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(default=0, ge=0, alias="usageCount")
    tier: str = Field(alias="plan")
    last_updated: datetime = Field(alias="lastUpdated")
    period_start: str | None = Field(default=None, alias="periodStart")
    period_end: str | None = Field(default=None, alias="periodEnd")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ConsumeResult(BaseModel):
    """Outcome of a ``UsageLedger.consume`` call."""

    accepted: bool
    count: int
    limit: Quota
    tier: str
    period_start: str | None = None
    period_end: str | None = None


class UsageSnapshot(BaseModel):
    """Read-only usage view returned by ``UsageLedger.peek``."""

    count: int
    limit: Quota
    remaining: Quota
    tier: str
    period_start: str
    period_end: str
