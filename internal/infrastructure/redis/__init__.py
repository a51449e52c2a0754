"""
Redis infrastructure package.
"""
from .cache import CategoryCacheService, RedisCache

__all__ = ["RedisCache", "CategoryCacheService"]
