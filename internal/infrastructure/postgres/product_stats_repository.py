"""
PostgreSQL Product Statistics Repository.

Read-only queries against the product collaborator's ``products`` table.
"""

from decimal import Decimal
from uuid import UUID

from asyncpg import Pool

from internal.domain.metrics import ProductAggregate, ProductCounts


class PostgresProductStatsRepository:
    """
    Product statistics read from PostgreSQL.

    Expects a ``products`` table with ``category_id``, ``status``,
    ``base_price``, ``total_revenue``, ``total_orders`` and
    ``manufacturer_id`` columns.
    """

    def __init__(self, pool: Pool) -> None:
        """
        Initialize the repository.

        Args:
            pool: asyncpg connection pool.
        """
        self._pool = pool

    async def count_by_category_ids(self, category_ids: list[UUID]) -> ProductCounts:
        """
        Count total and active products in the given categories.

        Args:
            category_ids: Categories to include.

        Returns:
            Product counts.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT COUNT(*) AS total,
                       COUNT(*) FILTER (WHERE status = 'active') AS active
                FROM products
                WHERE category_id = ANY($1::uuid[])
                """,
                list(category_ids),
            )
        return ProductCounts(total=row["total"], active=row["active"])

    async def aggregate_by_category_ids(self, category_ids: list[UUID]) -> ProductAggregate:
        """
        Aggregate price, revenue, orders and manufacturers.

        Args:
            category_ids: Categories to include.

        Returns:
            Product aggregate; ``average_price`` is None without products.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT AVG(base_price) AS average_price,
                       COALESCE(SUM(total_revenue), 0) AS total_revenue,
                       COALESCE(SUM(total_orders), 0) AS total_orders,
                       COUNT(DISTINCT manufacturer_id) AS distinct_manufacturers
                FROM products
                WHERE category_id = ANY($1::uuid[])
                """,
                list(category_ids),
            )
        return ProductAggregate(
            average_price=Decimal(row["average_price"]) if row["average_price"] is not None else None,
            total_revenue=Decimal(row["total_revenue"]),
            total_orders=int(row["total_orders"]),
            distinct_manufacturers=row["distinct_manufacturers"],
        )
