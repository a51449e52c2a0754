"""
Ports used by the category use cases.

The category store and the product collaborator are injected behind these
protocols so tests can substitute in-memory implementations.
"""
from typing import Iterable, Optional, Protocol
from uuid import UUID

from internal.domain.audit import AuditEntry
from internal.domain.category import Category
from internal.domain.metrics import CategoryMetrics, ProductAggregate, ProductCounts


class CategoryStoreProtocol(Protocol):
    """
    Durable storage for category nodes.

    ``update`` persists administrative fields only. Ancestry (parent, level,
    path, slug) goes through ``update_hierarchy`` and metrics through
    ``update_metrics``.
    """

    async def get_by_id(self, category_id: UUID) -> Optional[Category]:
        """Get a category by ID, deleted ones included."""
        ...

    async def get_by_slug(self, slug: str) -> Optional[Category]:
        """Get a live category by slug."""
        ...

    async def get_by_slugs(self, slugs: list[str]) -> list[Category]:
        """Get live categories by slug."""
        ...

    async def list_children(self, parent_id: UUID) -> list[Category]:
        """List live direct children."""
        ...

    async def count_children(self, parent_id: UUID) -> int:
        """Count live direct children."""
        ...

    async def list_all(self, include_deleted: bool = False) -> list[Category]:
        """List every category."""
        ...

    async def create(self, category: Category) -> Category:
        """Insert a category. Raises SlugConflictError on a taken slug."""
        ...

    async def update(self, category: Category) -> Category:
        """Persist administrative fields of a category."""
        ...

    async def update_hierarchy(self, categories: Iterable[Category]) -> None:
        """Persist parent/level/path/slug of several categories as one unit."""
        ...

    async def update_metrics(self, category_id: UUID, metrics: CategoryMetrics) -> None:
        """Persist recomputed metrics."""
        ...

    async def delete(self, category_id: UUID) -> None:
        """Physically remove a category."""
        ...

    async def append_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry."""
        ...

    async def get_audit_log(self, category_id: UUID) -> list[AuditEntry]:
        """Get audit entries in append order."""
        ...


class ProductStatsProtocol(Protocol):
    """Read-only product statistics owned by the product collaborator."""

    async def count_by_category_ids(self, category_ids: list[UUID]) -> ProductCounts:
        """Count total and active products in the given categories."""
        ...

    async def aggregate_by_category_ids(self, category_ids: list[UUID]) -> ProductAggregate:
        """Aggregate price, revenue, orders and manufacturers."""
        ...


class MetricsInvalidationSink(Protocol):
    """Receives ``category.metrics_invalidated`` triggers."""

    async def invalidate(self, category_id: UUID, reason: str = "") -> None:
        """Request a metrics recompute of a category and its ancestors."""
        ...


class TreeCacheProtocol(Protocol):
    """Cache for rendered category trees."""

    async def get_tree(self, root_id: Optional[UUID]) -> Optional[list[dict]]:
        """Get a cached tree."""
        ...

    async def set_tree(self, root_id: Optional[UUID], tree: list[dict]) -> bool:
        """Cache a tree."""
        ...

    async def invalidate_trees(self) -> int:
        """Drop every cached tree."""
        ...
