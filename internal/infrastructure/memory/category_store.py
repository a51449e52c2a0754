"""
In-memory Category Store.

Implements the category store port with plain dictionaries. Used by tests
and single-process development setups; every read returns a copy so callers
cannot mutate stored state behind the store's back.
"""
import asyncio
import copy
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from internal.domain.audit import AuditEntry
from internal.domain.category import Category, CategoryStatus
from internal.domain.errors import CategoryNotFoundError, SlugConflictError
from internal.domain.metrics import CategoryMetrics


def _sort_key(category: Category) -> tuple:
    return (category.level, category.settings.sort_order, category.name)


class InMemoryCategoryStore:
    """Dictionary-backed implementation of the category store."""

    def __init__(self) -> None:
        self._categories: dict[UUID, Category] = {}
        self._audit: dict[UUID, list[AuditEntry]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def get_by_id(self, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        return copy.deepcopy(category) if category else None

    async def get_by_slug(self, slug: str) -> Optional[Category]:
        for category in self._categories.values():
            if category.slug == slug and not category.is_deleted:
                return copy.deepcopy(category)
        return None

    async def get_by_slugs(self, slugs: list[str]) -> list[Category]:
        wanted = set(slugs)
        return [
            copy.deepcopy(c)
            for c in self._categories.values()
            if c.slug in wanted and not c.is_deleted
        ]

    async def list_children(self, parent_id: UUID) -> list[Category]:
        children = [
            c for c in self._categories.values()
            if c.parent_id == parent_id and not c.is_deleted
        ]
        return [copy.deepcopy(c) for c in sorted(children, key=_sort_key)]

    async def count_children(self, parent_id: UUID) -> int:
        return sum(
            1 for c in self._categories.values()
            if c.parent_id == parent_id and not c.is_deleted
        )

    async def list_all(self, include_deleted: bool = False) -> list[Category]:
        categories = [
            c for c in self._categories.values()
            if include_deleted or not c.is_deleted
        ]
        return [copy.deepcopy(c) for c in sorted(categories, key=_sort_key)]

    async def create(self, category: Category) -> Category:
        async with self._lock:
            self._ensure_slug_free(category.slug, category.id)
            self._categories[category.id] = copy.deepcopy(category)
        return copy.deepcopy(category)

    async def update(self, category: Category) -> Category:
        async with self._lock:
            stored = self._require(category.id)
            if category.status != CategoryStatus.DELETED:
                self._ensure_slug_free(stored.slug, category.id)
            updated = replace(
                stored,
                name=category.name,
                description=category.description,
                status=category.status,
                settings=copy.deepcopy(category.settings),
                last_modified_by=category.last_modified_by,
                deleted_at=category.deleted_at,
                deleted_by=category.deleted_by,
                updated_at=datetime.utcnow(),
            )
            self._categories[category.id] = updated
        return copy.deepcopy(updated)

    async def update_hierarchy(self, categories: Iterable[Category]) -> None:
        batch = list(categories)
        async with self._lock:
            # Validate the whole batch before writing anything.
            for category in batch:
                self._require(category.id)
            batch_ids = {c.id for c in batch}
            for category in batch:
                for other in self._categories.values():
                    if (
                        other.id not in batch_ids
                        and other.slug == category.slug
                        and not other.is_deleted
                    ):
                        raise SlugConflictError(category.slug)
            now = datetime.utcnow()
            for category in batch:
                self._categories[category.id] = replace(
                    self._categories[category.id],
                    parent_id=category.parent_id,
                    level=category.level,
                    path=category.path,
                    slug=category.slug,
                    last_modified_by=category.last_modified_by,
                    updated_at=now,
                )

    async def update_metrics(self, category_id: UUID, metrics: CategoryMetrics) -> None:
        async with self._lock:
            stored = self._require(category_id)
            self._categories[category_id] = replace(
                stored, metrics=metrics, metrics_updated_at=datetime.utcnow()
            )

    async def delete(self, category_id: UUID) -> None:
        async with self._lock:
            self._require(category_id)
            del self._categories[category_id]

    async def append_audit_entry(self, entry: AuditEntry) -> AuditEntry:
        self._audit[entry.category_id].append(entry)
        return entry

    async def get_audit_log(self, category_id: UUID) -> list[AuditEntry]:
        return list(self._audit.get(category_id, []))

    def _require(self, category_id: UUID) -> Category:
        category = self._categories.get(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    def _ensure_slug_free(self, slug: str, owner_id: UUID) -> None:
        for other in self._categories.values():
            if other.slug == slug and other.id != owner_id and not other.is_deleted:
                raise SlugConflictError(slug)
