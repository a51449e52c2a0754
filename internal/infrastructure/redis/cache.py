"""
Redis Cache implementation.

Cache-aside storage for rendered category trees. Values are packed with
msgpack and written with a jittered TTL. Every Redis failure is logged and
reported as a miss; the cache never fails a request.
"""
import random
from typing import Any, Optional
from uuid import UUID

import msgpack
import redis.asyncio as aioredis
from redis.asyncio import Redis

from internal.infrastructure.metrics import TREE_CACHE_REQUESTS
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


# Trees change on every structural write, so keep them short-lived.
DEFAULT_TTL = 60
MAX_JITTER = 15

TREE_KEY_PREFIX = "category:tree:"


class RedisCache:
    """
    Redis cache with msgpack serialization and TTL jitter.

    Jitter spreads expirations so that keys written together do not all
    expire together.
    """

    def __init__(
        self,
        redis_url: str,
        default_ttl: int = DEFAULT_TTL,
        max_jitter: int = MAX_JITTER,
    ) -> None:
        """
        Initialize the Redis cache.

        Args:
            redis_url: Redis connection URL.
            default_ttl: Default TTL in seconds.
            max_jitter: Maximum jitter to add to TTL.
        """
        self._redis_url = redis_url
        self._default_ttl = default_ttl
        self._max_jitter = max_jitter
        self._redis: Optional[Redis] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = aioredis.from_url(self._redis_url, decode_responses=False)
        logger.info("Connected to Redis", url=self._redis_url)

    async def close(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")

    def _ttl(self, ttl: Optional[int] = None) -> int:
        return (ttl or self._default_ttl) + random.randint(0, self._max_jitter)

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value, or None on a miss or error.
        """
        if not self._redis:
            return None

        try:
            data = await self._redis.get(key)
        except Exception as e:
            logger.error("Cache get error", key=key, error=str(e))
            return None
        if data is None:
            return None
        return msgpack.unpackb(data, raw=False)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set a value with a jittered TTL.

        Returns:
            True if the value was written.
        """
        if not self._redis:
            return False

        try:
            data = msgpack.packb(value, use_bin_type=True, default=str)
            await self._redis.setex(key, self._ttl(ttl), data)
            return True
        except Exception as e:
            logger.error("Cache set error", key=key, error=str(e))
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Redis key pattern (e.g., "category:tree:*").

        Returns:
            Number of keys deleted.
        """
        if not self._redis:
            return 0

        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if not keys:
                return 0
            deleted = await self._redis.delete(*keys)
            logger.debug("Cache pattern invalidated", pattern=pattern, deleted=deleted)
            return deleted
        except Exception as e:
            logger.error("Cache pattern invalidate error", pattern=pattern, error=str(e))
            return 0


class CategoryCacheService:
    """
    Category-specific cache service.

    Caches public trees per root; any structural write drops them all.
    """

    def __init__(self, cache: RedisCache, ttl: Optional[int] = None) -> None:
        """
        Initialize the category cache service.

        Args:
            cache: RedisCache instance.
            ttl: Tree TTL in seconds; the cache default when omitted.
        """
        self._cache = cache
        self._ttl = ttl

    def _tree_key(self, root_id: Optional[UUID]) -> str:
        return f"{TREE_KEY_PREFIX}{root_id or 'all'}"

    async def get_tree(self, root_id: Optional[UUID]) -> Optional[list[dict]]:
        """Get a cached tree, or None."""
        cached = await self._cache.get(self._tree_key(root_id))
        if cached is None:
            TREE_CACHE_REQUESTS.labels(result="miss").inc()
            return None
        TREE_CACHE_REQUESTS.labels(result="hit").inc()
        return cached["tree"]

    async def set_tree(self, root_id: Optional[UUID], tree: list[dict]) -> bool:
        """Cache a rendered tree."""
        return await self._cache.set(self._tree_key(root_id), {"tree": tree}, self._ttl)

    async def invalidate_trees(self) -> int:
        """Drop every cached tree."""
        return await self._cache.invalidate_pattern(f"{TREE_KEY_PREFIX}*")
