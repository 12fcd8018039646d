"""JSON values in Redis.

Every Redis error is logged as a warning and treated as a miss, so a Redis
outage degrades caching but never fails the caller.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

import redis.asyncio as aioredis

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Thin JSON layer over a redis.asyncio client."""

    def __init__(self, redis: "Redis"):
        """Initialize cache.

        Args:
            redis: Redis client instance
        """
        self.redis = redis

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.from_url(url))

    async def get_json(self, key: str) -> Any | None:
        try:
            value = await self.redis.get(key)
            if value is None:
                return None
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            return json.loads(value)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False, default=str)
            if ttl_seconds:
                await self.redis.setex(key, ttl_seconds, payload)
            else:
                await self.redis.set(key, payload)
            return True
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if a key was removed
        """
        try:
            return bool(await self.redis.delete(key))
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.redis.exists(key))
        except Exception as e:
            logger.warning(f"Cache exists check failed for {key}: {e}")
            return False

    async def check_health(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except Exception as e:
            logger.warning(f"Failed to close Redis connection: {e}")
