"""Monthly usage ledger with tier-aware quota enforcement."""

from datetime import datetime
from typing import cast

import structlog
from pydantic import ValidationError

from meterline.config import FailurePolicy
from meterline.exceptions import QuotaExceeded, StorageError
from meterline.models.billing import UNLIMITED, ConsumeResult, UsageRecord, UsageSnapshot
from meterline.period import as_utc, current_period, needs_reset
from meterline.storage import KeyValueStore, usage_key
from meterline.tiers import TierRegistry

logger = structlog.get_logger()


class UsageLedger:
    """Per-user request counter reset at each calendar month.

    The tier is always taken from the caller's latest verified claim; the
    ledger only remembers the last one it saw. Load, check and store are
    separate round trips, so concurrent requests can slightly overshoot a
    quota.
    """

    def __init__(
        self,
        store: KeyValueStore,
        tiers: TierRegistry,
        failure_policy: FailurePolicy = FailurePolicy.CLOSED,
    ) -> None:
        self._store = store
        self._tiers = tiers
        self.failure_policy = failure_policy

    async def _load(self, user_id: str, tier: str, now: datetime) -> UsageRecord:
        """Load the record for the current period, resetting a stale one in memory."""
        key = usage_key(user_id)
        raw = await self._store.get(key)
        period = current_period(now)

        if raw is None:
            return UsageRecord(
                count=0,
                tier=tier,
                last_updated=now,
                period_start=period.start,
                period_end=period.end,
            )

        try:
            record = UsageRecord.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError("get", key, f"unreadable usage record: {e}") from e

        if needs_reset(record, now):
            logger.info(
                "Billing period rolled over, resetting usage",
                user_id=user_id,
                previous_period_start=record.period_start,
                period_start=period.start,
            )
            record.count = 0
            record.period_start = period.start
            record.period_end = period.end
        return record

    async def consume(
        self,
        user_id: str,
        tier: str,
        now: datetime | None = None,
    ) -> ConsumeResult:
        """Count one unit of work against the user's monthly quota.

        A rejection leaves the stored record untouched.

        Raises:
            StorageError: If the store fails and the policy is fail-closed.
        """
        now = as_utc(now)
        limit = self._tiers.definition_of(tier).quota

        try:
            record = await self._load(user_id, tier, now)
            record.tier = tier

            if limit != UNLIMITED and record.count >= limit:
                logger.warning(
                    "Monthly quota exceeded",
                    user_id=user_id,
                    tier=tier,
                    count=record.count,
                    limit=limit,
                )
                return ConsumeResult(
                    accepted=False,
                    count=record.count,
                    limit=limit,
                    tier=tier,
                    period_start=record.period_start,
                    period_end=record.period_end,
                )

            record.count += 1
            record.last_updated = now
            await self._store.put(usage_key(user_id), record.to_json())
        except StorageError:
            if self.failure_policy is FailurePolicy.CLOSED:
                logger.exception("Usage check failed - rejecting (fail-closed)", user_id=user_id)
                raise
            logger.warning("Usage check failed - allowing (fail-open)", user_id=user_id)
            return ConsumeResult(accepted=True, count=0, limit=limit, tier=tier)

        logger.debug("Usage recorded", user_id=user_id, tier=tier, count=record.count, limit=limit)
        return ConsumeResult(
            accepted=True,
            count=record.count,
            limit=limit,
            tier=tier,
            period_start=record.period_start,
            period_end=record.period_end,
        )

    async def require(
        self,
        user_id: str,
        tier: str,
        now: datetime | None = None,
    ) -> ConsumeResult:
        """``consume`` that raises ``QuotaExceeded`` on rejection."""
        result = await self.consume(user_id, tier, now)
        if not result.accepted:
            raise QuotaExceeded(count=result.count, limit=cast("int", result.limit), tier=tier)
        return result

    async def peek(
        self,
        user_id: str,
        tier: str,
        now: datetime | None = None,
    ) -> UsageSnapshot:
        """Current usage without writing anything.

        Storage errors always propagate here, whatever the failure policy.
        """
        now = as_utc(now)
        period = current_period(now)
        record = await self._load(user_id, tier, now)
        limit = self._tiers.definition_of(tier).quota
        remaining = UNLIMITED if limit == UNLIMITED else max(0, limit - record.count)

        return UsageSnapshot(
            count=record.count,
            limit=limit,
            remaining=remaining,
            tier=tier,
            period_start=record.period_start or period.start,
            period_end=record.period_end or period.end,
        )
