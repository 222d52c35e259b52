"""HTTP routes."""

from meterline.api.routes import health, tiers, usage, webhooks

__all__ = ["health", "tiers", "usage", "webhooks"]
