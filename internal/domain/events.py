"""
Event contracts.

The category service consumes product change notifications and emits
``category.metrics_invalidated`` triggers for the metrics worker.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from .errors import DomainValidationError


METRICS_INVALIDATED = "category.metrics_invalidated"

PRODUCT_CREATED = "product.created"
PRODUCT_UPDATED = "product.updated"
PRODUCT_DELETED = "product.deleted"
PRODUCT_EVENT_TYPES = (PRODUCT_CREATED, PRODUCT_UPDATED, PRODUCT_DELETED)

# Product fields that feed category metrics.
METRIC_FIELDS = frozenset({"category", "status", "price", "revenue", "order_count"})


def _parse_uuid(value: Optional[str], name: str) -> Optional[UUID]:
    if value in (None, ""):
        return None
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError as e:
        raise DomainValidationError(f"Invalid {name}: {value!r}") from e


@dataclass(frozen=True)
class ProductChange:
    """
    A product change reported by the product collaborator.

    Attributes:
        event_type: One of ``product.created``, ``product.updated``,
            ``product.deleted``.
        category_id: Category the product belongs to now.
        previous_category_id: Category it belonged to before, when it moved.
        product_id: The product.
        changed_fields: Fields touched by an update; empty means unknown.
    """

    event_type: str
    category_id: Optional[UUID]
    previous_category_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    changed_fields: tuple[str, ...] = ()

    def affects_metrics(self) -> bool:
        """Whether category metrics may have changed."""
        if self.event_type != PRODUCT_UPDATED or not self.changed_fields:
            return True
        return bool(METRIC_FIELDS.intersection(self.changed_fields))

    @classmethod
    def from_payload(cls, event_type: str, payload: dict) -> "ProductChange":
        """
        Build from an event payload.

        Raises:
            DomainValidationError: On an unknown event type or malformed IDs.
        """
        if event_type not in PRODUCT_EVENT_TYPES:
            raise DomainValidationError(f"Unknown product event type: {event_type!r}")
        return cls(
            event_type=event_type,
            category_id=_parse_uuid(payload.get("category_id"), "category_id"),
            previous_category_id=_parse_uuid(
                payload.get("previous_category_id"), "previous_category_id"
            ),
            product_id=_parse_uuid(payload.get("product_id"), "product_id"),
            changed_fields=tuple(payload.get("changed_fields") or ()),
        )


@dataclass
class MetricsInvalidatedEvent:
    """
    Request to recompute a category and its ancestors.

    Attributes:
        category_id: Category whose subtree changed.
        reason: What triggered the request.
        created_at: Timestamp of the request.
    """

    category_id: UUID
    reason: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to the wire representation."""
        return {
            "event_type": METRICS_INVALIDATED,
            "aggregate_type": "category",
            "aggregate_id": str(self.category_id),
            "payload": {"category_id": str(self.category_id), "reason": self.reason},
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, event: dict) -> "MetricsInvalidatedEvent":
        """
        Parse the wire representation.

        Raises:
            DomainValidationError: If the category ID is missing or malformed.
        """
        payload = event.get("payload") or {}
        category_id = _parse_uuid(payload.get("category_id"), "category_id")
        if category_id is None:
            raise DomainValidationError("Missing category_id in metrics invalidation event")
        return cls(category_id=category_id, reason=payload.get("reason", ""))
