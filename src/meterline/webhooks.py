"""Idempotent reconciliation of Stripe billing events into user tier metadata.

Each delivery moves through::

    RECEIVED -> SIGNATURE_VERIFIED -> DUPLICATE | NEW -> APPLIED -> RECORDED

and ends in ``RECORDED`` or ``REJECTED``. The processed-event marker is only
written after the mutation succeeded, so a rejected or failed delivery is
fully retried when Stripe redelivers it. Stripe does not redeliver events it
got a 4xx for, so events rejected for missing metadata are dropped.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

import stripe
import structlog
from pydantic import BaseModel, ValidationError

from meterline.exceptions import (
    MeterlineError,
    MissingWebhookSecretError,
    WebhookPayloadInvalid,
    WebhookSignatureInvalid,
)
from meterline.identity import UserMetadataStore
from meterline.models.events import (
    CheckoutSession,
    StripeEvent,
    Subscription,
    WebhookResult,
    WebhookStatus,
)
from meterline.period import as_utc
from meterline.storage import KeyValueStore, processed_event_key
from meterline.tiers import TierRegistry

logger = structlog.get_logger()

# Matches Stripe's redelivery window.
PROCESSED_EVENT_TTL_SECONDS = 30 * 24 * 60 * 60
DEFAULT_SIGNATURE_TOLERANCE_SECONDS = 300

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class WebhookState(str, Enum):
    """Processing states of a single webhook delivery."""

    RECEIVED = "received"
    SIGNATURE_VERIFIED = "signature_verified"
    DUPLICATE = "duplicate"
    NEW = "new"
    APPLIED = "applied"
    RECORDED = "recorded"
    REJECTED = "rejected"


ModelT = TypeVar("ModelT", bound=BaseModel)
EventHandler = Callable[[StripeEvent], Awaitable[None]]


class WebhookReconciler:
    """Applies subscription lifecycle events to the identity provider exactly once."""

    def __init__(
        self,
        store: KeyValueStore,
        metadata_store: UserMetadataStore,
        tiers: TierRegistry,
        webhook_secret: str | None,
        tolerance: int = DEFAULT_SIGNATURE_TOLERANCE_SECONDS,
    ) -> None:
        if not webhook_secret:
            logger.error(
                "STRIPE_WEBHOOK_SECRET not configured - webhook signature verification is required"
            )
            raise MissingWebhookSecretError
        self._store = store
        self._metadata_store = metadata_store
        self._tiers = tiers
        self._secret = webhook_secret
        self._tolerance = tolerance
        self._handlers: dict[str, EventHandler] = {
            CHECKOUT_SESSION_COMPLETED: self._apply_checkout_completed,
            SUBSCRIPTION_CREATED: self._apply_subscription_active,
            SUBSCRIPTION_UPDATED: self._apply_subscription_active,
            SUBSCRIPTION_DELETED: self._apply_subscription_canceled,
        }

    async def process_webhook_event(
        self,
        raw_body: bytes | str,
        signature: str | None,
        now: datetime | None = None,
    ) -> WebhookResult:
        """Verify, deduplicate, apply and record one webhook delivery.

        Raises:
            WebhookSignatureInvalid: Signature header missing or not valid.
            WebhookPayloadInvalid: Verified body is malformed or lacks user/tier.
            IdentityProviderError: The tier metadata update failed.
            StorageError: The idempotency lookup or marker write failed.
        """
        now = as_utc(now)
        event_id: str | None = None
        try:
            event = self._verify(raw_body, signature)
            event_id = event.id
            self._log_transition(event, WebhookState.SIGNATURE_VERIFIED)

            marker_key = processed_event_key(event.id)
            if await self._store.get(marker_key) is not None:
                self._log_transition(event, WebhookState.DUPLICATE)
                logger.info(
                    "Skipping duplicate webhook event", event_type=event.type, event_id=event.id
                )
                return self._result(event, WebhookStatus.DUPLICATE, WebhookState.DUPLICATE)
            self._log_transition(event, WebhookState.NEW)

            handler = self._handlers.get(event.type)
            if handler is None:
                logger.debug("Unhandled webhook event", event_type=event.type, event_id=event.id)
                status = WebhookStatus.IGNORED
            else:
                await handler(event)
                self._log_transition(event, WebhookState.APPLIED)
                status = WebhookStatus.PROCESSED

            await self._store.put(
                marker_key,
                now.isoformat(),
                expire_after_seconds=PROCESSED_EVENT_TTL_SECONDS,
            )
        except MeterlineError as e:
            logger.warning(
                "Webhook rejected",
                event_id=event_id,
                state=WebhookState.REJECTED.value,
                error_type=type(e).__name__,
                error=e.message,
            )
            raise

        self._log_transition(event, WebhookState.RECORDED)
        return self._result(event, status, WebhookState.RECORDED)

    def _verify(self, raw_body: bytes | str, signature: str | None) -> StripeEvent:
        if not signature:
            raise WebhookSignatureInvalid("missing stripe-signature header")

        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError as e:
            raise WebhookPayloadInvalid(None, "Invalid payload encoding") from e

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._secret, self._tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureInvalid(str(e)) from e

        try:
            return StripeEvent.model_validate_json(payload)
        except ValidationError as e:
            raise WebhookPayloadInvalid(None, "Invalid payload") from e

    async def _apply_checkout_completed(self, event: StripeEvent) -> None:
        session = _parse(CheckoutSession, event)
        user_id = _require(event, session.user_id, "No userId in checkout session")
        tier = self._require_tier(event, session.tier, "Missing tier metadata")

        await self._metadata_store.update_public_metadata(
            user_id,
            _compact({"plan": tier, "stripeCustomerId": session.customer_id}),
        )
        logger.info("Updated user plan after checkout", user_id=user_id, plan=tier)

    async def _apply_subscription_active(self, event: StripeEvent) -> None:
        subscription = _parse(Subscription, event)
        user_id = _require(event, subscription.user_id, "No userId in subscription metadata")
        tier = self._require_tier(event, subscription.tier, "Missing tier metadata")

        await self._metadata_store.update_public_metadata(
            user_id,
            _compact(
                {
                    "plan": tier,
                    "stripeCustomerId": subscription.customer_id,
                    "subscriptionId": subscription.id,
                }
            ),
        )
        logger.info("Updated user plan from subscription", user_id=user_id, plan=tier)

    async def _apply_subscription_canceled(self, event: StripeEvent) -> None:
        subscription = _parse(Subscription, event)
        user_id = _require(
            event, subscription.user_id, "No userId in deleted subscription metadata"
        )
        free_tier = self._tiers.lowest().id

        # Usage is left alone; the ledger picks up the new tier from the next token.
        await self._metadata_store.update_public_metadata(user_id, {"plan": free_tier})
        logger.info("Downgraded user after cancellation", user_id=user_id, plan=free_tier)

    def _require_tier(self, event: StripeEvent, tier: str | None, reason: str) -> str:
        tier = _require(event, tier, reason)
        if tier not in self._tiers:
            raise WebhookPayloadInvalid(event.id, f"Unknown tier '{tier}'")
        return tier

    @staticmethod
    def _log_transition(event: StripeEvent, state: WebhookState) -> None:
        logger.debug(
            "Webhook state transition",
            event_id=event.id,
            event_type=event.type,
            state=state.value,
        )

    @staticmethod
    def _result(
        event: StripeEvent, status: WebhookStatus, state: WebhookState
    ) -> WebhookResult:
        return WebhookResult(
            status=status,
            event_id=event.id,
            event_type=event.type,
            state=state.value,
        )


def _parse(model: type[ModelT], event: StripeEvent) -> ModelT:
    try:
        return model.model_validate(event.data.object_)
    except ValidationError as e:
        raise WebhookPayloadInvalid(event.id, f"Malformed {event.type} object") from e


def _require(event: StripeEvent, value: str | None, reason: str) -> str:
    if not value:
        logger.error(reason, event_id=event.id, event_type=event.type)
        raise WebhookPayloadInvalid(event.id, reason)
    return value


def _compact(metadata: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in metadata.items() if v is not None}
