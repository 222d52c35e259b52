"""Multi-tenant usage metering and tiered billing on a key-value store."""

from meterline.config import FailurePolicy, Settings, get_settings
from meterline.period import BillingPeriod, current_period, needs_reset
from meterline.rate_limiter import RateLimiter, RateLimitResult
from meterline.storage import KeyValueStore, RedisKeyValueStore
from meterline.tiers import TierRegistry
from meterline.usage_ledger import UsageLedger
from meterline.webhooks import WebhookReconciler

__version__ = "0.1.0"

__all__ = [
    "BillingPeriod",
    "FailurePolicy",
    "KeyValueStore",
    "RateLimitResult",
    "RateLimiter",
    "RedisKeyValueStore",
    "Settings",
    "TierRegistry",
    "UsageLedger",
    "WebhookReconciler",
    "__version__",
    "current_period",
    "get_settings",
    "needs_reset",
]
