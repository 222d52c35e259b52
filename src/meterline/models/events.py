"""Stripe webhook event payloads and reconciliation results."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookStatus(str, Enum):
    """How a webhook delivery was resolved."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class EventData(BaseModel):
    """The ``data`` envelope of a Stripe event."""

    model_config = ConfigDict(populate_by_name=True)

    object_: dict[str, Any] = Field(default_factory=dict, alias="object")


class StripeEvent(BaseModel):
    """The subset of a Stripe event needed for tier reconciliation."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str
    data: EventData = Field(default_factory=EventData)


class _MetadataCarrier(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    customer: str | dict[str, Any] | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def customer_id(self) -> str | None:
        """Customer id whether or not the customer object was expanded."""
        if isinstance(self.customer, dict):
            return self.customer.get("id")
        return self.customer

    @property
    def user_id(self) -> str | None:
        return self.metadata.get("userId") or None

    @property
    def tier(self) -> str | None:
        return self.metadata.get("tier") or None


class CheckoutSession(_MetadataCarrier):
    """``checkout.session.completed`` object."""

    client_reference_id: str | None = None

    @property
    def user_id(self) -> str | None:
        return self.client_reference_id or super().user_id


class Subscription(_MetadataCarrier):
    """``customer.subscription.*`` object."""

    status: str | None = None


class WebhookResult(BaseModel):
    """Acknowledgement returned to the webhook entry point."""

    status: WebhookStatus
    event_id: str
    event_type: str
    state: str
