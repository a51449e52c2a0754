"""
Audit trail entities.

Audit entries are immutable. Their ``changes`` payload is a tagged variant
chosen by action, so an entry can be type-checked instead of carrying an
untyped blob.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import UUID

from .errors import DomainValidationError


class AuditAction(str, Enum):
    """Closed set of audited administrative actions."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"
    MADE_VISIBLE = "made_visible"
    MADE_HIDDEN = "made_hidden"
    ARCHIVED = "archived"
    RESTORED = "restored"


def _uuid_or_none(value: Optional[str]) -> Optional[UUID]:
    return UUID(value) if value else None


def _str_or_none(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value else None


@dataclass(frozen=True)
class CreatedChanges:
    """Snapshot of a newly created category."""

    kind: ClassVar[str] = "created"

    name: str
    slug: str
    parent_id: Optional[UUID]
    status: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "name": self.name,
            "slug": self.slug,
            "parent_id": _str_or_none(self.parent_id),
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CreatedChanges":
        return cls(
            name=data["name"],
            slug=data["slug"],
            parent_id=_uuid_or_none(data.get("parent_id")),
            status=data["status"],
        )


@dataclass(frozen=True)
class FieldChange:
    """Old and new value of one field."""

    field: str
    old: Any
    new: Any


@dataclass(frozen=True)
class FieldChanges:
    """Diff of plain fields touched by an update."""

    kind: ClassVar[str] = "fields"

    changes: tuple[FieldChange, ...]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "changes": [
                {"field": c.field, "from": c.old, "to": c.new} for c in self.changes
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FieldChanges":
        return cls(
            changes=tuple(
                FieldChange(field=c["field"], old=c.get("from"), new=c.get("to"))
                for c in data.get("changes", [])
            )
        )


@dataclass(frozen=True)
class MovedChanges:
    """Re-parenting of a category and its subtree."""

    kind: ClassVar[str] = "moved"

    from_parent_id: Optional[UUID]
    to_parent_id: Optional[UUID]
    from_path: str
    to_path: str
    descendants_rewritten: int = 0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "from_parent_id": _str_or_none(self.from_parent_id),
            "to_parent_id": _str_or_none(self.to_parent_id),
            "from_path": self.from_path,
            "to_path": self.to_path,
            "descendants_rewritten": self.descendants_rewritten,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MovedChanges":
        return cls(
            from_parent_id=_uuid_or_none(data.get("from_parent_id")),
            to_parent_id=_uuid_or_none(data.get("to_parent_id")),
            from_path=data.get("from_path", ""),
            to_path=data.get("to_path", ""),
            descendants_rewritten=data.get("descendants_rewritten", 0),
        )


@dataclass(frozen=True)
class StatusChanges:
    """Lifecycle status transition."""

    kind: ClassVar[str] = "status"

    from_status: str
    to_status: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "from_status": self.from_status, "to_status": self.to_status}

    @classmethod
    def from_dict(cls, data: dict) -> "StatusChanges":
        return cls(from_status=data["from_status"], to_status=data["to_status"])


@dataclass(frozen=True)
class VisibilityChanges:
    """Visibility toggle."""

    kind: ClassVar[str] = "visibility"

    from_visible: bool
    to_visible: bool

    def to_dict(self) -> dict:
        return {"kind": self.kind, "from_visible": self.from_visible, "to_visible": self.to_visible}

    @classmethod
    def from_dict(cls, data: dict) -> "VisibilityChanges":
        return cls(from_visible=data["from_visible"], to_visible=data["to_visible"])


@dataclass(frozen=True)
class DeletedChanges:
    """Removal of a category."""

    kind: ClassVar[str] = "deleted"

    soft: bool

    def to_dict(self) -> dict:
        return {"kind": self.kind, "soft": self.soft}

    @classmethod
    def from_dict(cls, data: dict) -> "DeletedChanges":
        return cls(soft=bool(data.get("soft", False)))


AuditChanges = Union[
    CreatedChanges,
    FieldChanges,
    MovedChanges,
    StatusChanges,
    VisibilityChanges,
    DeletedChanges,
]

_VARIANTS: dict[str, type] = {
    variant.kind: variant
    for variant in (
        CreatedChanges,
        FieldChanges,
        MovedChanges,
        StatusChanges,
        VisibilityChanges,
        DeletedChanges,
    )
}

# Which change variants each action may carry.
ALLOWED_CHANGES: dict[AuditAction, tuple[type, ...]] = {
    AuditAction.CREATED: (CreatedChanges,),
    AuditAction.UPDATED: (FieldChanges, MovedChanges),
    AuditAction.DELETED: (DeletedChanges,),
    AuditAction.ACTIVATED: (StatusChanges,),
    AuditAction.DEACTIVATED: (StatusChanges,),
    AuditAction.ARCHIVED: (StatusChanges,),
    AuditAction.RESTORED: (StatusChanges,),
    AuditAction.MADE_VISIBLE: (VisibilityChanges,),
    AuditAction.MADE_HIDDEN: (VisibilityChanges,),
}


def changes_from_dict(data: dict) -> AuditChanges:
    """
    Rebuild a change variant from its serialized form.

    Args:
        data: Dictionary carrying a ``kind`` discriminator.

    Returns:
        The matching change variant.

    Raises:
        DomainValidationError: If the kind is unknown.
    """
    variant = _VARIANTS.get(data.get("kind", ""))
    if variant is None:
        raise DomainValidationError(f"Unknown audit change kind: {data.get('kind')!r}")
    return variant.from_dict(data)


@dataclass(frozen=True)
class AuditEntry:
    """
    Immutable record of one administrative change.

    Attributes:
        category_id: The category the change applies to.
        action: Audited action.
        performed_by: Actor identifier.
        changes: Typed change payload.
        reason: Free-form reason.
        performed_at: Timestamp of the change.
    """

    category_id: UUID
    action: AuditAction
    performed_by: str
    changes: AuditChanges
    reason: str = ""
    performed_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        """Validate that the change payload matches the action."""
        action = AuditAction(self.action)
        object.__setattr__(self, "action", action)
        if not self.performed_by:
            raise DomainValidationError("Audit entry requires performed_by")
        if not isinstance(self.changes, ALLOWED_CHANGES[action]):
            raise DomainValidationError(
                f"Audit action '{action.value}' cannot carry "
                f"'{getattr(self.changes, 'kind', type(self.changes).__name__)}' changes"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "category_id": str(self.category_id),
            "action": self.action.value,
            "performed_by": self.performed_by,
            "performed_at": self.performed_at.isoformat(),
            "changes": self.changes.to_dict(),
            "reason": self.reason,
        }
