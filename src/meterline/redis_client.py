"""Async Redis client wrapper backing the metering key-value namespace."""

from typing import Any, cast

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()


class RedisClient:
    """Async Redis client wrapper.

    Owns the connection lifecycle and exposes the handful of string
    operations the metering layer needs. Errors from redis are not caught
    here; ``RedisKeyValueStore`` translates them.
    """

    def __init__(
        self,
        url: str,
        decode_responses: bool = True,
        socket_timeout: float | None = 5.0,
    ) -> None:
        """Initialize Redis client.

        Args:
            url: Redis connection URL (e.g., redis://localhost:6379)
            decode_responses: Whether to decode responses as strings
            socket_timeout: Seconds before a single command times out
        """
        self._url = url
        self._decode_responses = decode_responses
        self._socket_timeout = socket_timeout
        self._client: Any = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is not None:
            return

        self._client = redis.from_url(  # type: ignore[no-untyped-call]
            self._url,
            decode_responses=self._decode_responses,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )
        logger.info("Connected to Redis", url=self._url)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Disconnected from Redis")

    @property
    def client(self) -> Any:
        """Get the underlying Redis client."""
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def get(self, key: str) -> str | None:
        """Get a value by key."""
        result = await self.client.get(key)
        if result is None:
            return None
        return cast("str", result)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        """Set a value with optional expiration in seconds."""
        result = await self.client.set(key, value, ex=ex)
        return bool(result)


# Global instance cache - use dict for mutable singleton pattern
_redis_clients: dict[str, RedisClient] = {}


def get_redis_client(url: str = "redis://localhost:6379") -> RedisClient:
    """Get or create a Redis client for the given URL.

    The client must be connected before use by calling ``await client.connect()``.
    """
    if url not in _redis_clients:
        _redis_clients[url] = RedisClient(url)
    return _redis_clients[url]


def clear_redis_clients() -> None:
    """Clear all cached Redis clients. Useful for testing."""
    _redis_clients.clear()
