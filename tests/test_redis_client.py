"""Tests for the Redis client wrapper."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from meterline.redis_client import RedisClient, clear_redis_clients, get_redis_client


class TestRedisClientInit:
    """Tests for RedisClient initialization."""

    def test_init_with_defaults(self) -> None:
        client = RedisClient("redis://localhost:6379")
        assert client._url == "redis://localhost:6379"
        assert client._decode_responses is True
        assert client._socket_timeout == 5.0
        assert client._client is None

    def test_client_property_requires_connect(self) -> None:
        client = RedisClient("redis://localhost:6379")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = client.client


class TestRedisClientConnect:
    """Tests for RedisClient connect/disconnect."""

    @pytest.mark.asyncio
    async def test_connect_creates_client(self) -> None:
        with patch("meterline.redis_client.redis.from_url") as mock_from_url:
            mock_client = MagicMock()
            mock_from_url.return_value = mock_client

            client = RedisClient("redis://localhost:6379")
            await client.connect()

            mock_from_url.assert_called_once_with(
                "redis://localhost:6379",
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
            assert client._client is mock_client

    @pytest.mark.asyncio
    async def test_connect_idempotent(self) -> None:
        with patch("meterline.redis_client.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()

            client = RedisClient("redis://localhost:6379")
            await client.connect()
            await client.connect()

            mock_from_url.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect(self) -> None:
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock()
        client = RedisClient("redis://localhost:6379")
        client._client = mock_client

        await client.disconnect()

        mock_client.aclose.assert_awaited_once()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self) -> None:
        client = RedisClient("redis://localhost:6379")
        await client.disconnect()
        assert client._client is None


class TestRedisClientOperations:
    """Tests for basic key operations."""

    @pytest.mark.asyncio
    async def test_get(self, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = "value"
        client = RedisClient("redis://localhost:6379")
        client._client = mock_redis

        assert await client.get("key") == "value"

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_redis: MagicMock) -> None:
        client = RedisClient("redis://localhost:6379")
        client._client = mock_redis

        assert await client.get("key") is None

    @pytest.mark.asyncio
    async def test_set_with_expiry(self, mock_redis: MagicMock) -> None:
        client = RedisClient("redis://localhost:6379")
        client._client = mock_redis

        assert await client.set("key", "value", ex=120) is True
        mock_redis.set.assert_awaited_once_with("key", "value", ex=120)

    @pytest.mark.asyncio
    async def test_ping(self, mock_redis: MagicMock) -> None:
        client = RedisClient("redis://localhost:6379")
        client._client = mock_redis

        assert await client.ping() is True


class TestGetRedisClient:
    """Tests for the client cache."""

    def test_returns_same_instance(self) -> None:
        clear_redis_clients()
        first = get_redis_client("redis://cache-test:6379")
        second = get_redis_client("redis://cache-test:6379")
        assert first is second

    def test_clear(self) -> None:
        first = get_redis_client("redis://cache-test:6379")
        clear_redis_clients()
        assert get_redis_client("redis://cache-test:6379") is not first


@pytest.fixture
def mock_redis() -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.ping = AsyncMock(return_value=True)
    return client
