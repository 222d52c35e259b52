"""Tests for the fixed-window rate limiter."""

from datetime import UTC, datetime, timedelta

import pytest

from meterline.config import FailurePolicy
from meterline.exceptions import StorageError
from meterline.rate_limiter import (
    RATE_WINDOW_TTL_SECONDS,
    RateLimiter,
    minute_bucket,
    seconds_until_next_window,
)
from meterline.storage import rate_window_key

from .conftest import InMemoryStore

NOW = datetime(2025, 3, 10, 12, 0, 15, tzinfo=UTC)


class TestWindowMath:
    """Tests for bucket and retry computations."""

    def test_minute_bucket(self) -> None:
        expected = int(NOW.timestamp() * 1000) // 60000
        assert minute_bucket(NOW) == expected

    def test_same_minute_same_bucket(self) -> None:
        assert minute_bucket(NOW) == minute_bucket(NOW + timedelta(seconds=44))

    def test_next_minute_new_bucket(self) -> None:
        assert minute_bucket(NOW + timedelta(seconds=45)) == minute_bucket(NOW) + 1

    def test_seconds_until_next_window(self) -> None:
        assert seconds_until_next_window(NOW) == 45

    def test_seconds_until_next_window_at_boundary(self) -> None:
        assert seconds_until_next_window(NOW.replace(second=0)) == 60


class TestRateLimiterInit:
    """Tests for RateLimiter construction."""

    def test_rejects_zero_limit(self, store: InMemoryStore) -> None:
        with pytest.raises(ValueError):
            RateLimiter(store, limit=0)

    def test_defaults(self, store: InMemoryStore) -> None:
        limiter = RateLimiter(store)
        assert limiter.limit == 100
        assert limiter.failure_policy is FailurePolicy.CLOSED


class TestCheckAndIncrement:
    """Tests for RateLimiter.check_and_increment."""

    @pytest.mark.asyncio
    async def test_first_request(self, store: InMemoryStore) -> None:
        limiter = RateLimiter(store, limit=100)
        result = await limiter.check_and_increment("user_1", NOW)

        assert result.allowed is True
        assert result.remaining == 99
        assert result.limit == 100
        key = rate_window_key("user_1", minute_bucket(NOW))
        assert store.data[key] == "1"
        assert store.ttls[key] == RATE_WINDOW_TTL_SECONDS

    @pytest.mark.asyncio
    async def test_hundred_pass_then_reject_then_next_minute(self, store: InMemoryStore) -> None:
        limiter = RateLimiter(store, limit=100)

        for i in range(100):
            result = await limiter.check_and_increment("user_1", NOW)
            assert result.allowed is True
            assert result.remaining == 99 - i

        rejected = await limiter.check_and_increment("user_1", NOW + timedelta(seconds=10))
        assert rejected.allowed is False
        assert rejected.remaining == 0
        assert rejected.retry_after == 35

        next_minute = await limiter.check_and_increment("user_1", NOW + timedelta(seconds=45))
        assert next_minute.allowed is True
        assert next_minute.remaining == 99

    @pytest.mark.asyncio
    async def test_rejection_is_not_counted(self, store: InMemoryStore) -> None:
        limiter = RateLimiter(store, limit=2)
        await limiter.check_and_increment("user_1", NOW)
        await limiter.check_and_increment("user_1", NOW)
        puts_before = store.put_calls

        await limiter.check_and_increment("user_1", NOW)
        await limiter.check_and_increment("user_1", NOW)

        assert store.put_calls == puts_before
        assert store.data[rate_window_key("user_1", minute_bucket(NOW))] == "2"

    @pytest.mark.asyncio
    async def test_users_are_independent(self, store: InMemoryStore) -> None:
        limiter = RateLimiter(store, limit=1)
        assert (await limiter.check_and_increment("user_1", NOW)).allowed is True
        assert (await limiter.check_and_increment("user_2", NOW)).allowed is True
        assert (await limiter.check_and_increment("user_1", NOW)).allowed is False

    @pytest.mark.asyncio
    async def test_fail_closed_propagates(self, store: InMemoryStore) -> None:
        store.fail_get = True
        limiter = RateLimiter(store)

        with pytest.raises(StorageError):
            await limiter.check_and_increment("user_1", NOW)

    @pytest.mark.asyncio
    async def test_fail_open_allows(self, store: InMemoryStore) -> None:
        store.fail_put = True
        limiter = RateLimiter(store, limit=10, failure_policy=FailurePolicy.OPEN)

        result = await limiter.check_and_increment("user_1", NOW)

        assert result.allowed is True
        assert result.remaining == 10

    @pytest.mark.asyncio
    async def test_corrupt_counter_is_storage_error(self, store: InMemoryStore) -> None:
        store.data[rate_window_key("user_1", minute_bucket(NOW))] = "not-a-number"
        limiter = RateLimiter(store)

        with pytest.raises(StorageError):
            await limiter.check_and_increment("user_1", NOW)
