"""
Redis cache client for the proximity service.

Only provider data is cached here (nearby place searches). Every operation
degrades to a cache miss when Redis is disabled or unreachable.
"""

import asyncio
import json
import logging
from typing import Optional, Any

from redis import asyncio as aioredis
from redis.asyncio import Redis

from app.config.settings import settings


class CacheClientError(Exception):
    """Base exception for cache client errors"""
    pass


class CacheClient:
    """
    Redis cache client with lazy connection and retry limits.
    """

    def __init__(self, redis_url: Optional[str] = None, enabled: Optional[bool] = None):
        self.redis_url = redis_url or settings.redis.url
        self.enabled = settings.redis.enabled if enabled is None else enabled
        self.redis_client: Optional[Redis] = None
        self.logger = logging.getLogger(__name__)
        self._connection_lock = asyncio.Lock()
        self._is_connected = False
        self._connection_retries = 0
        self._max_retries = 3

    async def connect(self) -> bool:
        """
        Establish connection to Redis server.

        Returns:
            True if connection successful, False otherwise
        """
        if not self.enabled:
            return False

        async with self._connection_lock:
            if self._is_connected and self.redis_client:
                return True

            try:
                self.logger.info(f"Connecting to Redis at {settings.redis.host}:{settings.redis.port}")
                self.redis_client = aioredis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=settings.redis.socket_timeout,
                    socket_connect_timeout=settings.redis.socket_timeout,
                )
                await self.redis_client.ping()
                self._is_connected = True
                self._connection_retries = 0
                self.logger.info("Successfully connected to Redis")
                return True

            except Exception as e:
                self._connection_retries += 1
                self.logger.error(
                    f"Failed to connect to Redis (attempt {self._connection_retries}): {e}"
                )
                await self._handle_connection_error()
                return False

    async def disconnect(self) -> None:
        """Disconnect from Redis server."""
        async with self._connection_lock:
            if self.redis_client:
                try:
                    await self.redis_client.aclose()
                    self.logger.info("Disconnected from Redis")
                except Exception as e:
                    self.logger.warning(f"Error during Redis disconnect: {e}")
                finally:
                    self.redis_client = None
                    self._is_connected = False

    async def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None on miss/error."""
        if not await self._ensure_connection():
            return None

        try:
            value = await self.redis_client.get(key)
        except Exception as e:
            self.logger.warning(f"Error getting cache key '{key}': {e}")
            await self._handle_connection_error()
            return None

        if value is None:
            self.logger.debug(f"Cache miss for key: {key}")
            return None
        try:
            decoded = json.loads(value)
        except ValueError as e:
            self.logger.warning(f"Ignoring undecodable cache entry '{key}': {e}")
            return None
        self.logger.debug(f"Cache hit for key: {key}")
        return decoded

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store value as JSON; True when Redis accepted it."""
        if not await self._ensure_connection():
            return False

        try:
            payload = json.dumps(value)
            if ttl_seconds:
                result = await self.redis_client.setex(key, ttl_seconds, payload)
            else:
                result = await self.redis_client.set(key, payload)
            return bool(result)
        except Exception as e:
            self.logger.warning(f"Error setting cache key '{key}': {e}")
            await self._handle_connection_error()
            return False

    async def _ensure_connection(self) -> bool:
        if self._is_connected and self.redis_client:
            return True

        if not self.enabled:
            return False

        if self._connection_retries >= self._max_retries:
            return False

        return await self.connect()

    async def _handle_connection_error(self) -> None:
        """Mark the connection as failed so the next call reconnects."""
        self._is_connected = False
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                self.logger.debug(f"Ignoring error while closing Redis client: {e}")
            self.redis_client = None

    @property
    def is_connected(self) -> bool:
        return self._is_connected and self.redis_client is not None
