"""Pytest configuration for meterline tests."""

import hashlib
import hmac
import json
import time
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from meterline.exceptions import StorageError
from meterline.tiers import TierRegistry, default_tier_config

WEBHOOK_SECRET = "whsec_test_secret"
JWT_KEY = "test-jwt-signing-key"


class InMemoryStore:
    """Dict-backed ``KeyValueStore`` that records TTLs and can be made to fail."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.put_calls = 0
        self.fail_get = False
        self.fail_put = False

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise StorageError("get", key, "connection refused")
        return self.data.get(key)

    async def put(
        self,
        key: str,
        value: str,
        expire_after_seconds: int | None = None,
    ) -> None:
        if self.fail_put:
            raise StorageError("put", key, "connection refused")
        self.put_calls += 1
        self.data[key] = value
        self.ttls[key] = expire_after_seconds


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory key-value store."""
    return InMemoryStore()


@pytest.fixture
def tiers() -> TierRegistry:
    """Default tiers: free (5/month) and pro (unlimited, purchasable)."""
    return TierRegistry.from_config(default_tier_config("price_pro_monthly"))


@pytest.fixture
def metadata_store() -> MagicMock:
    """Mock identity-provider metadata store."""
    client = MagicMock()
    client.update_public_metadata = AsyncMock(return_value=None)
    return client


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``stripe-signature`` header value for ``payload``."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{ts}.{payload}".encode(),
        hashlib.sha256,
    ).hexdigest()
    return f"t={ts},v1={digest}"


def make_event(
    event_id: str,
    event_type: str,
    obj: dict[str, Any],
) -> str:
    """Serialize a minimal Stripe event."""
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


@pytest.fixture
def signer() -> Callable[..., str]:
    return sign_payload


@pytest.fixture
def checkout_event() -> str:
    """A completed checkout for user_123 upgrading to pro."""
    return make_event(
        "evt_checkout_1",
        "checkout.session.completed",
        {
            "id": "cs_test_1",
            "client_reference_id": "user_123",
            "customer": "cus_abc",
            "metadata": {"userId": "user_123", "tier": "pro"},
        },
    )
