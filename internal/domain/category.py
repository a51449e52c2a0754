"""
Domain model for Category.

This module contains the category tree entities following DDD principles.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from .errors import DomainValidationError
from .metrics import CategoryMetrics


MAX_LEVEL = 5
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000
SLUG_MAX_LENGTH = 120
PATH_SEPARATOR = "/"

SLUG_PATTERN = re.compile(r"^[a-z0-9_-]+$")


class CategoryStatus(str, Enum):
    """Lifecycle states of a category."""

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"
    DELETED = "deleted"


def validate_name(name: str) -> str:
    """
    Validate and normalize a category display name.

    Args:
        name: Raw name.

    Returns:
        Trimmed name.

    Raises:
        DomainValidationError: If the name is empty or too long.
    """
    normalized = (name or "").strip()
    if not normalized:
        raise DomainValidationError("Category name is required")
    if len(normalized) > NAME_MAX_LENGTH:
        raise DomainValidationError(
            f"Category name cannot exceed {NAME_MAX_LENGTH} characters"
        )
    return normalized


def join_path(path: str, slug: str) -> str:
    """Append a slug to an ancestry path."""
    return f"{path}{PATH_SEPARATOR}{slug}" if path else slug


@dataclass
class CategorySettings:
    """
    Administrative switches of a category.

    Attributes:
        is_active: Whether the category accepts traffic.
        is_visible: Whether the category appears in public trees.
        allow_products: Whether products may be assigned to it.
        sort_order: Position among its siblings.
        require_approval: Whether the category starts as a draft.
    """

    is_active: bool = True
    is_visible: bool = True
    allow_products: bool = True
    sort_order: int = 0
    require_approval: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "is_active": self.is_active,
            "is_visible": self.is_visible,
            "allow_products": self.allow_products,
            "sort_order": self.sort_order,
            "require_approval": self.require_approval,
        }


@dataclass
class Category:
    """
    Category entity representing a node in the category tree.

    ``level`` and ``path`` are denormalized ancestry: ``level`` is 0 for
    roots and ``parent.level + 1`` otherwise, ``path`` is the chain of
    ancestor slugs joined by ``/`` (empty for roots).

    Attributes:
        id: Unique identifier for the category.
        name: Human-readable category name.
        slug: URL-safe identifier, unique among live categories.
        parent_id: ID of the parent category (None for root categories).
        level: Depth in the hierarchy (0=root).
        path: Materialized path of ancestor slugs.
        status: Lifecycle status.
        settings: Administrative switches.
        metrics: Rollup metrics, written only by the metrics aggregator.
        description: Optional free-form description.
        created_by: Actor who created the category.
        last_modified_by: Actor of the last change.
        deleted_at: Soft-delete timestamp.
        deleted_by: Soft-delete actor.
        metrics_updated_at: Timestamp of the last successful recompute.
        created_at: Timestamp of creation.
        updated_at: Timestamp of last update.
    """

    name: str
    slug: str
    id: UUID = field(default_factory=uuid4)
    parent_id: Optional[UUID] = None
    level: int = 0
    path: str = ""
    status: CategoryStatus = CategoryStatus.ACTIVE
    settings: CategorySettings = field(default_factory=CategorySettings)
    metrics: CategoryMetrics = field(default_factory=CategoryMetrics)
    description: Optional[str] = None
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    metrics_updated_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        """Validate domain invariants after initialization."""
        self.status = CategoryStatus(self.status)
        self._validate()

    def _validate(self) -> None:
        """
        Validate field-level invariants.

        Ancestry consistency across nodes is enforced by the tree manager.

        Raises:
            DomainValidationError: If validation fails.
        """
        self.name = validate_name(self.name)
        if not self.slug or not SLUG_PATTERN.match(self.slug):
            raise DomainValidationError(
                "Slug can only contain lowercase letters, numbers, hyphens and underscores"
            )
        if not (0 <= self.level <= MAX_LEVEL):
            raise DomainValidationError(f"Category level must be between 0 and {MAX_LEVEL}")
        if self.path.startswith(PATH_SEPARATOR):
            raise DomainValidationError("Category path must not start with a separator")
        if self.description and len(self.description) > DESCRIPTION_MAX_LENGTH:
            raise DomainValidationError(
                f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
            )

    @property
    def full_path(self) -> str:
        """Path of this node including its own slug."""
        return join_path(self.path, self.slug)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_deleted(self) -> bool:
        return self.status == CategoryStatus.DELETED

    @property
    def ancestor_slugs(self) -> list[str]:
        """Ancestor slugs from the root down, derived from ``path``."""
        return self.path.split(PATH_SEPARATOR) if self.path else []

    def is_publicly_visible(self) -> bool:
        """Whether the category belongs in public trees."""
        return (
            self.status == CategoryStatus.ACTIVE
            and self.settings.is_active
            and self.settings.is_visible
        )

    def can_add_products(self) -> tuple[bool, str]:
        """
        Check whether products may be assigned to this category.

        Returns:
            Tuple of (allowed, reason).
        """
        if self.status != CategoryStatus.ACTIVE:
            return False, f"Category is {self.status.value}; only active categories accept products"
        if not self.settings.allow_products:
            return False, "Category does not allow products"
        return True, "OK"

    def touch(self, actor: Optional[str]) -> None:
        """Record a modification by an actor."""
        self.last_modified_by = actor
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Dictionary with all category data.
        """
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "level": self.level,
            "path": self.path,
            "status": self.status.value,
            "settings": self.settings.to_dict(),
            "metrics": self.metrics.to_dict(),
            "description": self.description,
            "created_by": self.created_by,
            "last_modified_by": self.last_modified_by,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "deleted_by": self.deleted_by,
            "metrics_updated_at": (
                self.metrics_updated_at.isoformat() if self.metrics_updated_at else None
            ),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CategoryTreeNode:
    """
    CategoryTreeNode for UI representation of category hierarchy.

    Attributes:
        category: The category entity.
        children: List of child category tree nodes.
    """

    category: Category
    children: list["CategoryTreeNode"] = field(default_factory=list)

    def sort(self) -> None:
        """Order children by sort order then name, recursively."""
        self.children.sort(key=lambda n: (n.category.settings.sort_order, n.category.name))
        for child in self.children:
            child.sort()

    def to_dict(self) -> dict:
        """
        Convert to dictionary representation.

        Returns:
            Nested dictionary with category and children.
        """
        return {
            **self.category.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class BreadcrumbItem:
    """One step of a root-to-node breadcrumb."""

    id: UUID
    name: str
    slug: str
    level: int

    def to_dict(self) -> dict:
        return {"id": str(self.id), "name": self.name, "slug": self.slug, "level": self.level}


@dataclass(frozen=True)
class DeletionInfo:
    """
    Deletion safety information for a category.

    Attributes:
        category_id: The category inspected.
        direct_products: Products assigned directly to it.
        direct_children: Non-deleted direct children.
    """

    category_id: UUID
    direct_products: int
    direct_children: int

    @property
    def can_delete(self) -> bool:
        return self.direct_products == 0 and self.direct_children == 0
