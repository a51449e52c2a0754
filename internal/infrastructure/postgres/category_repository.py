"""
PostgreSQL Category Repository.

Implements the category store with asyncpg. Multi-node ancestry rewrites run
in one transaction so a move is applied to the whole subtree or not at all.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import asyncpg
from asyncpg import Pool

from internal.domain.audit import AuditEntry, changes_from_dict
from internal.domain.category import Category, CategorySettings, CategoryStatus
from internal.domain.errors import (
    CategoryIntegrityError,
    CategoryNotFoundError,
    SlugConflictError,
)
from internal.domain.metrics import CategoryMetrics
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


_COLUMNS = """
    id, name, slug, parent_id, level, path, status, description,
    is_active, is_visible, allow_products, sort_order, require_approval,
    total_products, active_products, total_manufacturers, total_revenue,
    average_product_price, total_orders, total_subcategories, popularity_score,
    metrics_updated_at, created_by, last_modified_by, deleted_at, deleted_by,
    created_at, updated_at
"""

_LIVE = "status <> 'deleted'"
_ORDER = "ORDER BY level, sort_order, name"


class PostgresCategoryRepository:
    """
    PostgreSQL implementation of the category store.

    Uses asyncpg for async database operations.
    """

    def __init__(self, pool: Pool) -> None:
        """
        Initialize the repository.

        Args:
            pool: asyncpg connection pool.
        """
        self._pool = pool

    async def get_by_id(self, category_id: UUID) -> Optional[Category]:
        """
        Get a category by ID, soft-deleted ones included.

        Args:
            category_id: The ID of the category.

        Returns:
            Category if found, None otherwise.
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM categories WHERE id = $1",
                category_id,
            )
            return self._row_to_entity(row) if row else None

    async def get_by_slug(self, slug: str) -> Optional[Category]:
        """Get a live category by slug."""
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM categories WHERE slug = $1 AND {_LIVE}",
                slug,
            )
            return self._row_to_entity(row) if row else None

    async def get_by_slugs(self, slugs: list[str]) -> list[Category]:
        """Get live categories by slug."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM categories
                WHERE slug = ANY($1::text[]) AND {_LIVE}
                {_ORDER}
                """,
                list(slugs),
            )
            return [self._row_to_entity(row) for row in rows]

    async def list_children(self, parent_id: UUID) -> list[Category]:
        """List live direct children."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM categories
                WHERE parent_id = $1 AND {_LIVE}
                {_ORDER}
                """,
                parent_id,
            )
            return [self._row_to_entity(row) for row in rows]

    async def count_children(self, parent_id: UUID) -> int:
        """Count live direct children."""
        async with self._pool.acquire() as conn:
            return await conn.fetchval(
                f"SELECT COUNT(*) FROM categories WHERE parent_id = $1 AND {_LIVE}",
                parent_id,
            )

    async def list_all(self, include_deleted: bool = False) -> list[Category]:
        """
        List every category.

        Args:
            include_deleted: Include soft-deleted categories.

        Returns:
            Categories ordered by level, sort order and name.
        """
        where = "" if include_deleted else f"WHERE {_LIVE}"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(f"SELECT {_COLUMNS} FROM categories {where} {_ORDER}")
            return [self._row_to_entity(row) for row in rows]

    async def create(self, category: Category) -> Category:
        """
        Create a new category.

        Args:
            category: The category to create.

        Returns:
            The created category.

        Raises:
            SlugConflictError: If a live category already uses the slug.
        """
        s = category.settings
        m = category.metrics
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO categories (
                        id, name, slug, parent_id, level, path, status, description,
                        is_active, is_visible, allow_products, sort_order, require_approval,
                        total_products, active_products, total_manufacturers, total_revenue,
                        average_product_price, total_orders, total_subcategories,
                        popularity_score, created_by, last_modified_by, created_at, updated_at
                    )
                    VALUES (
                        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13,
                        $14, $15, $16, $17, $18, $19, $20, $21, $22, $23, $24, $25
                    )
                    RETURNING {_COLUMNS}
                    """,
                    category.id,
                    category.name,
                    category.slug,
                    category.parent_id,
                    category.level,
                    category.path,
                    category.status.value,
                    category.description,
                    s.is_active,
                    s.is_visible,
                    s.allow_products,
                    s.sort_order,
                    s.require_approval,
                    m.total_products,
                    m.active_products,
                    m.total_manufacturers,
                    m.total_revenue,
                    m.average_product_price,
                    m.total_orders,
                    m.total_subcategories,
                    m.popularity_score,
                    category.created_by,
                    category.last_modified_by,
                    category.created_at,
                    category.updated_at,
                )
        except asyncpg.UniqueViolationError as e:
            raise SlugConflictError(category.slug) from e
        except asyncpg.ForeignKeyViolationError as e:
            raise CategoryNotFoundError(category.parent_id) from e

        return self._row_to_entity(row)

    async def update(self, category: Category) -> Category:
        """
        Persist the administrative fields of a category.

        Ancestry and metrics are left alone; they have their own writers.

        Raises:
            CategoryNotFoundError: If the category does not exist.
            SlugConflictError: If restoring revives a slug now in use.
        """
        s = category.settings
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE categories
                    SET name = $2,
                        description = $3,
                        status = $4,
                        is_active = $5,
                        is_visible = $6,
                        allow_products = $7,
                        sort_order = $8,
                        require_approval = $9,
                        last_modified_by = $10,
                        deleted_at = $11,
                        deleted_by = $12,
                        updated_at = $13
                    WHERE id = $1
                    RETURNING {_COLUMNS}
                    """,
                    category.id,
                    category.name,
                    category.description,
                    category.status.value,
                    s.is_active,
                    s.is_visible,
                    s.allow_products,
                    s.sort_order,
                    s.require_approval,
                    category.last_modified_by,
                    category.deleted_at,
                    category.deleted_by,
                    datetime.utcnow(),
                )
        except asyncpg.UniqueViolationError as e:
            raise SlugConflictError(category.slug) from e

        if row is None:
            raise CategoryNotFoundError(category.id)
        return self._row_to_entity(row)

    async def update_hierarchy(self, categories: Iterable[Category]) -> None:
        """
        Persist parent, level, path and slug of several categories.

        All rows are written in one transaction.

        Raises:
            CategoryNotFoundError: If any category vanished meanwhile.
            SlugConflictError: If a new slug collides with a live category.
        """
        batch = list(categories)
        if not batch:
            return

        now = datetime.utcnow()
        async with self._pool.acquire() as conn:
            try:
                async with conn.transaction():
                    for category in batch:
                        result = await conn.execute(
                            """
                            UPDATE categories
                            SET parent_id = $2,
                                level = $3,
                                path = $4,
                                slug = $5,
                                last_modified_by = $6,
                                updated_at = $7
                            WHERE id = $1
                            """,
                            category.id,
                            category.parent_id,
                            category.level,
                            category.path,
                            category.slug,
                            category.last_modified_by,
                            now,
                        )
                        if result == "UPDATE 0":
                            raise CategoryNotFoundError(category.id)
            except asyncpg.UniqueViolationError as e:
                raise SlugConflictError(batch[0].slug) from e

        logger.debug("Category hierarchy rewritten", rows=len(batch))

    async def update_metrics(self, category_id: UUID, metrics: CategoryMetrics) -> None:
        """
        Persist recomputed metrics.

        Raises:
            CategoryNotFoundError: If the category does not exist.
        """
        async with self._pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE categories
                SET total_products = $2,
                    active_products = $3,
                    total_manufacturers = $4,
                    total_revenue = $5,
                    average_product_price = $6,
                    total_orders = $7,
                    total_subcategories = $8,
                    popularity_score = $9,
                    metrics_updated_at = $10
                WHERE id = $1
                """,
                category_id,
                metrics.total_products,
                metrics.active_products,
                metrics.total_manufacturers,
                metrics.total_revenue,
                metrics.average_product_price,
                metrics.total_orders,
                metrics.total_subcategories,
                metrics.popularity_score,
                datetime.utcnow(),
            )
        if result == "UPDATE 0":
            raise CategoryNotFoundError(category_id)

    async def delete(self, category_id: UUID) -> None:
        """
        Physically remove a category.

        Raises:
            CategoryNotFoundError: If the category does not exist.
            CategoryIntegrityError: If rows still reference it as parent,
                including soft-deleted children.
        """
        async with self._pool.acquire() as conn:
            try:
                result = await conn.execute("DELETE FROM categories WHERE id = $1", category_id)
            except asyncpg.ForeignKeyViolationError as e:
                children = await conn.fetchval(
                    "SELECT COUNT(*) FROM categories WHERE parent_id = $1",
                    category_id,
                )
                raise CategoryIntegrityError(category_id, children=children) from e
        if result == "DELETE 0":
            raise CategoryNotFoundError(category_id)

    async def append_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry."""
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO category_audit_log (
                    category_id, action, performed_by, performed_at, changes, reason
                )
                VALUES ($1, $2, $3, $4, $5::jsonb, $6)
                """,
                entry.category_id,
                entry.action.value,
                entry.performed_by,
                entry.performed_at,
                json.dumps(entry.changes.to_dict()),
                entry.reason,
            )
        return entry

    async def get_audit_log(self, category_id: UUID) -> list[AuditEntry]:
        """Get audit entries in append order."""
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT category_id, action, performed_by, performed_at, changes, reason
                FROM category_audit_log
                WHERE category_id = $1
                ORDER BY id
                """,
                category_id,
            )
        return [self._row_to_audit_entry(row) for row in rows]

    def _row_to_entity(self, row: asyncpg.Record) -> Category:
        """
        Convert a database row to a Category entity.

        Args:
            row: Database row.

        Returns:
            Category entity.
        """
        return Category(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            parent_id=row["parent_id"],
            level=row["level"],
            path=row["path"],
            status=CategoryStatus(row["status"]),
            description=row["description"],
            settings=CategorySettings(
                is_active=row["is_active"],
                is_visible=row["is_visible"],
                allow_products=row["allow_products"],
                sort_order=row["sort_order"],
                require_approval=row["require_approval"],
            ),
            metrics=CategoryMetrics(
                total_products=row["total_products"],
                active_products=row["active_products"],
                total_manufacturers=row["total_manufacturers"],
                total_revenue=Decimal(row["total_revenue"]),
                average_product_price=Decimal(row["average_product_price"]),
                total_orders=row["total_orders"],
                total_subcategories=row["total_subcategories"],
                popularity_score=row["popularity_score"],
            ),
            metrics_updated_at=row["metrics_updated_at"],
            created_by=row["created_by"],
            last_modified_by=row["last_modified_by"],
            deleted_at=row["deleted_at"],
            deleted_by=row["deleted_by"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_audit_entry(self, row: asyncpg.Record) -> AuditEntry:
        changes = row["changes"]
        if isinstance(changes, str):
            changes = json.loads(changes)
        return AuditEntry(
            category_id=row["category_id"],
            action=row["action"],
            performed_by=row["performed_by"],
            performed_at=row["performed_at"],
            changes=changes_from_dict(changes),
            reason=row["reason"],
        )
