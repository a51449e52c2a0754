"""
Domain package for the Category Service.

Contains domain entities, value objects, and domain errors.
"""
from .audit import (
    AuditAction,
    AuditChanges,
    AuditEntry,
    CreatedChanges,
    DeletedChanges,
    FieldChange,
    FieldChanges,
    MovedChanges,
    StatusChanges,
    VisibilityChanges,
    changes_from_dict,
)
from .category import (
    MAX_LEVEL,
    BreadcrumbItem,
    Category,
    CategorySettings,
    CategoryStatus,
    CategoryTreeNode,
    DeletionInfo,
)
from .events import (
    METRICS_INVALIDATED,
    MetricsInvalidatedEvent,
    ProductChange,
)
from .errors import (
    AggregationError,
    CategoryIntegrityError,
    CategoryNotFoundError,
    CyclicMoveError,
    DomainError,
    DomainValidationError,
    EventPublishError,
    MaxDepthExceededError,
    SlugConflictError,
)
from .metrics import (
    CategoryMetrics,
    ProductAggregate,
    ProductCounts,
    compute_popularity_score,
)
from .slug import SlugAllocator

__all__ = [
    "MAX_LEVEL",
    "Category",
    "CategorySettings",
    "CategoryStatus",
    "CategoryTreeNode",
    "BreadcrumbItem",
    "DeletionInfo",
    "CategoryMetrics",
    "ProductCounts",
    "ProductAggregate",
    "compute_popularity_score",
    "SlugAllocator",
    # Audit
    "AuditAction",
    "AuditChanges",
    "AuditEntry",
    "CreatedChanges",
    "FieldChange",
    "FieldChanges",
    "MovedChanges",
    "StatusChanges",
    "VisibilityChanges",
    "DeletedChanges",
    "changes_from_dict",
    # Events
    "METRICS_INVALIDATED",
    "MetricsInvalidatedEvent",
    "ProductChange",
    # Errors
    "DomainError",
    "DomainValidationError",
    "MaxDepthExceededError",
    "CyclicMoveError",
    "CategoryNotFoundError",
    "SlugConflictError",
    "CategoryIntegrityError",
    "AggregationError",
    "EventPublishError",
]
