"""
PostgreSQL infrastructure package.
"""
from .category_repository import PostgresCategoryRepository
from .pool import create_pool
from .product_stats_repository import PostgresProductStatsRepository

__all__ = [
    "PostgresCategoryRepository",
    "PostgresProductStatsRepository",
    "create_pool",
]
