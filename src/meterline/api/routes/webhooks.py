"""Stripe webhook entry point."""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Header, Request

from meterline.api.dependencies import Services
from meterline.models.events import WebhookStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/webhook", tags=["webhooks"])


@router.post("/stripe")
async def handle_stripe_webhook(
    request: Request,
    services: Services,
    stripe_signature: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Handle incoming Stripe webhook events.

    The raw body is needed for signature verification. Duplicate deliveries
    are acknowledged without being applied again.
    """
    payload = await request.body()
    result = await services.reconciler.process_webhook_event(payload, stripe_signature)

    logger.info(
        "Processed Stripe webhook",
        event_id=result.event_id,
        event_type=result.event_type,
        status=result.status.value,
    )
    if result.status is WebhookStatus.DUPLICATE:
        return {"received": True, "idempotent": True}
    return {"received": True}
