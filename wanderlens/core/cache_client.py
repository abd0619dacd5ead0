"""
Redis cache client for the WanderLens location service.

Backs the persistent key-value storage (last-known location, session slot)
when ``STORAGE_BACKEND=redis``. Failures are logged and reported as misses so
that callers fall back instead of erroring.
"""

import asyncio
import logging
from typing import Optional

from redis import asyncio as aioredis
from redis.asyncio import Redis

from wanderlens.config.settings import get_settings


class CacheClientError(Exception):
    """Base exception for cache client errors"""
    pass


class CacheClient:
    """
    Redis client with lazy connection management and error handling.

    ``get`` returns ``None`` and ``set``/``delete`` return ``False`` whenever
    Redis is unreachable; after ``max_retries`` failed connects the client
    stops trying until ``reset_retries`` is called.
    """

    def __init__(self, redis_url: Optional[str] = None, max_retries: int = 3):
        """
        Initialize the cache client.

        Args:
            redis_url: Redis connection URL (optional, uses settings if not provided)
            max_retries: Failed connection attempts before the client gives up
        """
        self.redis_url = redis_url or get_settings().redis.url
        self.redis_client: Optional[Redis] = None
        self.logger = logging.getLogger(__name__)
        self._connection_lock = asyncio.Lock()
        self._is_connected = False
        self._connection_retries = 0
        self._max_retries = max_retries

    async def connect(self) -> bool:
        """
        Establish connection to Redis server.

        Returns:
            True if connection successful, False otherwise
        """
        async with self._connection_lock:
            if self._is_connected and self.redis_client:
                return True

            try:
                self.logger.info(f"Connecting to Redis at {self.redis_url}")
                self.redis_client = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=5.0,
                    socket_connect_timeout=5.0,
                    retry_on_timeout=True,
                    health_check_interval=30
                )
                await self.redis_client.ping()
                self._is_connected = True
                self._connection_retries = 0
                self.logger.info("Successfully connected to Redis")
                return True

            except Exception as e:
                self._connection_retries += 1
                self.logger.error(
                    f"Failed to connect to Redis (attempt {self._connection_retries}): {str(e)}"
                )
                await self._close_client()
                return False

    async def disconnect(self) -> None:
        """Disconnect from Redis server."""
        async with self._connection_lock:
            if self.redis_client:
                await self._close_client()
                self.logger.info("Disconnected from Redis")

    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Args:
            key: Cache key to retrieve

        Returns:
            Cached value as string or None if not found/error
        """
        if not await self._ensure_connection():
            return None

        try:
            value = await self.redis_client.get(key)
            self.logger.debug(f"Cache {'hit' if value else 'miss'} for key: {key}")
            return value

        except Exception as e:
            self.logger.warning(f"Error getting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return None

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key to set
            value: Value to cache
            ttl_seconds: Time to live in seconds (optional)

        Returns:
            True if successful, False otherwise
        """
        if not await self._ensure_connection():
            return False

        try:
            if ttl_seconds:
                result = await self.redis_client.setex(key, ttl_seconds, value)
            else:
                result = await self.redis_client.set(key, value)
            return bool(result)

        except Exception as e:
            self.logger.warning(f"Error setting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if a key was removed, False otherwise
        """
        if not await self._ensure_connection():
            return False

        try:
            result = await self.redis_client.delete(key)
            return result > 0

        except Exception as e:
            self.logger.warning(f"Error deleting cache key '{key}': {str(e)}")
            await self._handle_connection_error()
            return False

    async def ping(self) -> bool:
        """Ping Redis server to check connectivity."""
        if not await self._ensure_connection():
            return False

        try:
            return await self.redis_client.ping() is True
        except Exception as e:
            self.logger.warning(f"Redis ping failed: {str(e)}")
            await self._handle_connection_error()
            return False

    def reset_retries(self) -> None:
        self._connection_retries = 0

    async def _ensure_connection(self) -> bool:
        if self._is_connected and self.redis_client:
            return True

        if self._connection_retries >= self._max_retries:
            self.logger.warning(
                f"Max connection retries ({self._max_retries}) exceeded, "
                "cache operations will be disabled"
            )
            return False

        return await self.connect()

    async def _handle_connection_error(self) -> None:
        """Handle connection errors by marking connection as failed."""
        await self._close_client()

    async def _close_client(self) -> None:
        self._is_connected = False
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                self.logger.debug(f"Ignoring error while closing Redis client: {e}")
            self.redis_client = None

    @property
    def is_connected(self) -> bool:
        """Check if client is connected to Redis."""
        return self._is_connected and self.redis_client is not None
