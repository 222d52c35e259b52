"""Key-value store boundary and the persisted key layout.

Every piece of state lives in one namespace. The layout below is shared with
records written by earlier deployments and must not change.
"""

from typing import Protocol, runtime_checkable

import structlog
from redis.exceptions import RedisError

from meterline.exceptions import StorageError
from meterline.redis_client import RedisClient

logger = structlog.get_logger()

USAGE_KEY_PREFIX = "usage:"
RATE_LIMIT_KEY_PREFIX = "ratelimit:"
PROCESSED_EVENT_KEY_PREFIX = "webhook:stripe:"


def usage_key(user_id: str) -> str:
    return f"{USAGE_KEY_PREFIX}{user_id}"


def rate_window_key(user_id: str, minute_bucket: int) -> str:
    return f"{RATE_LIMIT_KEY_PREFIX}{user_id}:{minute_bucket}"


def processed_event_key(event_id: str) -> str:
    return f"{PROCESSED_EVENT_KEY_PREFIX}{event_id}"


@runtime_checkable
class KeyValueStore(Protocol):
    """The two primitives the metering layer relies on.

    Implementations raise ``StorageError`` for any backend failure. There are
    no transactions: a read followed by a write is not atomic.
    """

    async def get(self, key: str) -> str | None: ...

    async def put(
        self,
        key: str,
        value: str,
        expire_after_seconds: int | None = None,
    ) -> None: ...


class RedisKeyValueStore:
    """``KeyValueStore`` backed by Redis string keys."""

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, RuntimeError, OSError) as e:
            logger.warning("Key-value read failed", key=key, error=str(e))
            raise StorageError("get", key, str(e)) from e

    async def put(
        self,
        key: str,
        value: str,
        expire_after_seconds: int | None = None,
    ) -> None:
        try:
            await self._client.set(key, value, ex=expire_after_seconds)
        except (RedisError, RuntimeError, OSError) as e:
            logger.warning("Key-value write failed", key=key, error=str(e))
            raise StorageError("put", key, str(e)) from e
