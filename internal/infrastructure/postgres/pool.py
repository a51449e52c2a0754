"""
PostgreSQL connection pool.
"""
import asyncpg
from asyncpg import Pool


async def create_pool(dsn: str, min_size: int = 5, max_size: int = 20) -> Pool:
    """
    Create an asyncpg connection pool.

    Args:
        dsn: Database connection string.
        min_size: Minimum pool size.
        max_size: Maximum pool size.

    Returns:
        asyncpg connection pool.
    """
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=min_size,
        max_size=max_size,
    )
