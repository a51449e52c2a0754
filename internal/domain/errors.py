"""
Domain-specific exceptions.

Every structural failure carries a machine-readable ``code`` so callers can
tell an invalid name from a cyclic move from a blocked delete.
"""
from typing import Optional
from uuid import UUID


class DomainError(Exception):
    """Base exception for domain errors."""

    code = "domain_error"

    def __init__(self, message: str) -> None:
        """
        Initialize domain error.

        Args:
            message: Error message describing the issue.
        """
        self.message = message
        super().__init__(self.message)


class DomainValidationError(DomainError):
    """Exception raised when domain validation fails."""

    code = "validation_error"


class MaxDepthExceededError(DomainValidationError):
    """Exception raised when a node would end up below the deepest level."""

    code = "max_depth_exceeded"

    def __init__(self, level: int, max_level: int) -> None:
        super().__init__("max depth exceeded")
        self.level = level
        self.max_level = max_level


class CyclicMoveError(DomainValidationError):
    """Exception raised when a move would make a node its own ancestor."""

    code = "cyclic_move"

    def __init__(self, category_id: UUID, new_parent_id: UUID) -> None:
        super().__init__(
            f"Cannot move category {category_id} under its own descendant {new_parent_id}"
        )
        self.category_id = category_id
        self.new_parent_id = new_parent_id


class CategoryNotFoundError(DomainError):
    """Exception raised when a category is not found."""

    code = "not_found"

    def __init__(self, category_id: UUID) -> None:
        """
        Initialize category not found error.

        Args:
            category_id: The ID of the category that was not found.
        """
        super().__init__(f"Category with ID {category_id} not found")
        self.category_id = category_id


class SlugConflictError(DomainError):
    """Exception raised when a slug is already taken by a live category."""

    code = "slug_conflict"

    def __init__(self, slug: str) -> None:
        super().__init__(f"Category with slug '{slug}' already exists")
        self.slug = slug


class CategoryIntegrityError(DomainError):
    """
    Exception raised when a delete is blocked by children or products.

    Attributes:
        category_id: The category that could not be deleted.
        children: Number of non-deleted direct children.
        products: Number of products assigned directly to the category.
    """

    def __init__(self, category_id: UUID, children: int = 0, products: int = 0) -> None:
        if products > 0:
            message = (
                f"Cannot delete category with {products} products. "
                "Move or delete the products first."
            )
            self.code = "has_products"
        else:
            message = (
                f"Cannot delete category with {children} subcategories. "
                "Move or delete the subcategories first."
            )
            self.code = "has_children"
        super().__init__(message)
        self.category_id = category_id
        self.children = children
        self.products = products


class AggregationError(DomainError):
    """Exception raised when the product statistics query fails during recompute."""

    code = "aggregation_failed"

    def __init__(self, category_id: UUID, reason: str) -> None:
        super().__init__(f"Metrics recompute failed for category {category_id}: {reason}")
        self.category_id = category_id
        self.reason = reason


class EventPublishError(DomainError):
    """Exception raised when event publishing fails."""

    code = "event_publish_failed"

    def __init__(self, event_type: str, reason: str, key: Optional[str] = None) -> None:
        """
        Initialize event publish error.

        Args:
            event_type: Type of event that failed to publish.
            reason: The reason for the failure.
            key: Message key, when known.
        """
        super().__init__(f"Failed to publish event '{event_type}': {reason}")
        self.event_type = event_type
        self.reason = reason
        self.key = key
