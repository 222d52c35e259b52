"""Fixed-window per-minute rate limiting on the key-value store."""

import math
from dataclasses import dataclass
from datetime import datetime

import structlog

from meterline.config import FailurePolicy
from meterline.exceptions import StorageError
from meterline.period import as_utc
from meterline.storage import KeyValueStore, rate_window_key

logger = structlog.get_logger()

DEFAULT_RATE_LIMIT_PER_MINUTE = 100
RATE_WINDOW_SECONDS = 60
# Keeps a bucket alive through the minute after the one it counts.
RATE_WINDOW_TTL_SECONDS = 120


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int
    limit: int
    retry_after: int


def minute_bucket(now: datetime) -> int:
    """Wall-clock minute index, ``floor(epoch_ms / 60000)``."""
    return math.floor(now.timestamp() * 1000) // (RATE_WINDOW_SECONDS * 1000)


def seconds_until_next_window(now: datetime) -> int:
    elapsed = now.timestamp() % RATE_WINDOW_SECONDS
    return max(1, math.ceil(RATE_WINDOW_SECONDS - elapsed))


class RateLimiter:
    """Counts requests per user in wall-clock minute buckets.

    Windows are aligned to the minute, not sliding, so up to twice the limit
    can land across a boundary. Read and write are separate round trips;
    concurrent requests may both pass on the same count.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = DEFAULT_RATE_LIMIT_PER_MINUTE,
        failure_policy: FailurePolicy = FailurePolicy.CLOSED,
    ) -> None:
        if limit < 1:
            raise ValueError("Rate limit must be at least 1 request per minute")
        self._store = store
        self.limit = limit
        self.failure_policy = failure_policy

    async def check_and_increment(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count one request for ``user_id`` unless the window is full.

        Rejections are not counted.

        Raises:
            StorageError: If the store fails and the policy is fail-closed.
        """
        now = as_utc(now)
        key = rate_window_key(user_id, minute_bucket(now))
        retry_after = seconds_until_next_window(now)

        try:
            count = await self._read_count(key)
            if count >= self.limit:
                logger.warning(
                    "Rate limit exceeded",
                    user_id=user_id,
                    count=count,
                    limit=self.limit,
                )
                return RateLimitResult(
                    allowed=False, remaining=0, limit=self.limit, retry_after=retry_after
                )

            await self._store.put(key, str(count + 1), expire_after_seconds=RATE_WINDOW_TTL_SECONDS)
        except StorageError:
            if self.failure_policy is FailurePolicy.CLOSED:
                logger.exception("Rate limit check failed - rejecting (fail-closed)", user_id=user_id)
                raise
            logger.warning("Rate limit check failed - allowing (fail-open)", user_id=user_id)
            return RateLimitResult(
                allowed=True, remaining=self.limit, limit=self.limit, retry_after=retry_after
            )

        return RateLimitResult(
            allowed=True,
            remaining=self.limit - count - 1,
            limit=self.limit,
            retry_after=retry_after,
        )

    async def _read_count(self, key: str) -> int:
        raw = await self._store.get(key)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError as e:
            raise StorageError("get", key, f"non-integer rate window value {raw!r}") from e
