"""Pydantic models shared across meterline components."""

from meterline.models.billing import (
    UNLIMITED,
    ConsumeResult,
    Quota,
    TierDefinition,
    TierListing,
    UsageRecord,
    UsageSnapshot,
)
from meterline.models.events import (
    CheckoutSession,
    StripeEvent,
    Subscription,
    WebhookResult,
    WebhookStatus,
)

__all__ = [
    "UNLIMITED",
    "CheckoutSession",
    "ConsumeResult",
    "Quota",
    "StripeEvent",
    "Subscription",
    "TierDefinition",
    "TierListing",
    "UsageRecord",
    "UsageSnapshot",
    "WebhookResult",
    "WebhookStatus",
]
