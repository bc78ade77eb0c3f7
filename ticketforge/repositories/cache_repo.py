"""
Cache stores for generated tickets.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ticketforge.core.constants import CACHE_TTL_SECONDS
from ticketforge.core.exceptions import CacheError
from ticketforge.core.logging import get_logger
from ticketforge.repositories.base import BaseCacheStore

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCacheRepository(BaseCacheStore):
    """
    In-process cache store for development and tests.
    """

    def __init__(self, default_ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl_seconds: TTL used when set() is given none
        """
        self._cache: dict[str, dict[str, Any]] = {}
        self.default_ttl = default_ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        if entry["expires_at"] <= _now():
            del self._cache[key]
            return None

        return entry["value"]

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds or self.default_ttl
        now = _now()
        self._cache[key] = {
            "value": value,
            "expires_at": now + timedelta(seconds=ttl),
            "created_at": now,
        }
        logger.debug("Cache set", key=key, ttl=ttl)
        return True

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def clear(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        logger.info("Cache cleared", count=count)
        return count

    async def clear_expired(self) -> int:
        """Drop expired entries; returns how many."""
        now = _now()
        expired_keys = [key for key, entry in self._cache.items() if entry["expires_at"] <= now]
        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug("Cleared expired cache entries", count=len(expired_keys))
        return len(expired_keys)

    async def get_stats(self) -> dict[str, Any]:
        now = _now()
        active = sum(1 for entry in self._cache.values() if entry["expires_at"] > now)
        return {
            "backend": "memory",
            "total_entries": len(self._cache),
            "active_entries": active,
            "expired_entries": len(self._cache) - active,
        }


class RedisCacheRepository(BaseCacheStore):
    """
    Redis-backed cache store.

    Redis errors are wrapped in CacheError so callers only need to handle
    one exception type.
    """

    def __init__(
        self,
        redis_client: Any,
        default_ttl_seconds: int = CACHE_TTL_SECONDS,
        key_prefix: str = "",
    ) -> None:
        """
        Initialize with a Redis client.

        Args:
            redis_client: redis.asyncio client
            default_ttl_seconds: TTL used when set() is given none
            key_prefix: Prefix added in front of every key
        """
        self.redis = redis_client
        self.default_ttl = default_ttl_seconds
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCacheRepository":
        """Build a store with its own client from a redis:// URL."""
        return cls(aioredis.from_url(url, decode_responses=True), **kwargs)

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis.get(self._make_key(key))
        except (RedisError, OSError) as e:
            raise CacheError(f"get failed: {e}") from e

        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds or self.default_ttl
        try:
            await self.redis.setex(self._make_key(key), ttl, value)
        except (RedisError, OSError) as e:
            raise CacheError(f"set failed: {e}") from e
        logger.debug("Cache set", key=key, ttl=ttl)
        return True

    async def delete(self, key: str) -> bool:
        try:
            return await self.redis.delete(self._make_key(key)) > 0
        except (RedisError, OSError) as e:
            raise CacheError(f"delete failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return await self.redis.exists(self._make_key(key)) > 0
        except (RedisError, OSError) as e:
            raise CacheError(f"exists failed: {e}") from e

    async def clear(self, pattern: str = "*") -> int:
        """Delete keys under this store's prefix matching a pattern."""
        try:
            keys = [key async for key in self.redis.scan_iter(match=self._make_key(pattern))]
            if keys:
                await self.redis.delete(*keys)
        except (RedisError, OSError) as e:
            raise CacheError(f"clear failed: {e}") from e

        logger.info("Cache cleared", pattern=pattern, count=len(keys))
        return len(keys)

    async def get_stats(self) -> dict[str, Any]:
        try:
            info = await self.redis.info("memory")
        except (RedisError, OSError) as e:
            raise CacheError(f"info failed: {e}") from e

        return {
            "backend": "redis",
            "used_memory": info.get("used_memory_human", "unknown"),
            "used_memory_peak": info.get("used_memory_peak_human", "unknown"),
        }

    async def close(self) -> None:
        await self.redis.aclose()
