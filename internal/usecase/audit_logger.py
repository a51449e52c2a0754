"""
Audit Logger Use Case.

Appends immutable entries to a category's audit trail. A failed audit write
is logged and counted, never raised, so it cannot undo or fail the
structural change it describes.
"""
from typing import Optional
from uuid import UUID

from internal.domain.audit import AuditAction, AuditChanges, AuditEntry
from internal.infrastructure.metrics import AUDIT_WRITE_FAILURES
from internal.usecase.ports import CategoryStoreProtocol
from pkg.logger import get_logger


logger = get_logger(__name__)


class AuditLogger:
    """Writes audit entries through the category store."""

    def __init__(self, store: CategoryStoreProtocol) -> None:
        self._store = store

    async def append(
        self,
        category_id: UUID,
        action: AuditAction,
        performed_by: str,
        changes: AuditChanges,
        reason: str = "",
    ) -> Optional[AuditEntry]:
        """
        Append an entry to a category's audit trail.

        Args:
            category_id: Category the change applies to.
            action: Audited action.
            performed_by: Actor identifier.
            changes: Change payload matching the action.
            reason: Optional free-form reason.

        Returns:
            The stored entry, or None if it could not be written.
        """
        try:
            entry = AuditEntry(
                category_id=category_id,
                action=action,
                performed_by=performed_by,
                changes=changes,
                reason=reason,
            )
            stored = await self._store.append_audit_entry(entry)
        except Exception as e:
            AUDIT_WRITE_FAILURES.labels(action=getattr(action, "value", str(action))).inc()
            logger.error(
                "Failed to write audit entry",
                category_id=str(category_id),
                action=getattr(action, "value", str(action)),
                performed_by=performed_by,
                error=str(e),
            )
            return None

        logger.debug(
            "Audit entry written",
            category_id=str(category_id),
            action=entry.action.value,
        )
        return stored

    async def history(self, category_id: UUID) -> list[AuditEntry]:
        """Audit entries of a category, oldest first."""
        return await self._store.get_audit_log(category_id)
