"""Redis Client for the Roadmap Auth Service

Async Redis connection used by the shared superadmin determination
cache (SUPERADMIN_CACHE_BACKEND=redis). The default in-process cache
needs no Redis at all.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from roadmap_auth.config.settings import get_settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis client wrapper"""

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._client: Optional[redis.Redis] = None

    async def connect(self):
        """Establish the Redis connection and verify it with PING

        Raises:
            RedisError: If Redis cannot be reached; no connection is kept
        """
        if not self._client:
            settings = get_settings()
            url = self._url or settings.redis_url
            client = redis.from_url(url)
            try:
                await client.ping()
            except RedisError:
                await client.aclose()
                raise
            self._client = client
            logger.info(
                f"Connected to Redis: {settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
            )

    async def disconnect(self):
        """Close Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    def get_client(self) -> redis.Redis:
        """Get the underlying Redis client

        Raises:
            RuntimeError: If client not connected
        """
        if not self._client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client


# Global Redis client instance
_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """Get or create global Redis client"""
    global _redis_client
    if not _redis_client:
        client = RedisClient()
        await client.connect()
        _redis_client = client
    return _redis_client


async def close_redis_client():
    """Close global Redis client"""
    global _redis_client
    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
