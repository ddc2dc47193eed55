"""Short-lived memo of expensive yes/no determinations.

Used for the superadmin directory fallback. Entries expire by TTL only;
losing the cache or racing on a key costs at most one redundant upstream
call, so no locking is done.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass
class CachedDetermination:
    value: bool
    expires_at: float


class DeterminationCache(ABC):
    """Async key -> bool cache with per-entry TTL"""

    @abstractmethod
    async def get(self, key: str) -> Optional[bool]:
        """Cached value, or None if missing or expired"""
        pass

    @abstractmethod
    async def set(self, key: str, value: bool, ttl_seconds: int) -> None:
        pass


class InMemoryDeterminationCache(DeterminationCache):
    """Process-local cache; clock is injectable for tests"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CachedDetermination] = {}

    async def get(self, key: str) -> Optional[bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: bool, ttl_seconds: int) -> None:
        self._entries[key] = CachedDetermination(value=value, expires_at=self._clock() + ttl_seconds)


class RedisDeterminationCache(DeterminationCache):
    """Redis-backed cache shared between service instances"""

    def __init__(self, client: redis.Redis, prefix: str = "roadmap_auth:determination:"):
        self._client = client
        self._prefix = prefix

    async def get(self, key: str) -> Optional[bool]:
        try:
            raw = await self._client.get(f"{self._prefix}{key}")
        except RedisError as e:
            logger.warning(f"Determination cache read failed: {e}")
            return None
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return raw == "1"

    async def set(self, key: str, value: bool, ttl_seconds: int) -> None:
        try:
            await self._client.setex(f"{self._prefix}{key}", ttl_seconds, "1" if value else "0")
        except RedisError as e:
            logger.warning(f"Determination cache write failed: {e}")
