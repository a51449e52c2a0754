"""
Category Service Use Case.

Facade over the tree manager, the audit logger and the metrics dispatch.
Structural operations validate and persist synchronously, record an audit
entry, drop cached trees and then *request* a metrics recompute; they never
wait on or fail because of aggregation or auditing.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, Optional
from uuid import UUID

from internal.domain.audit import (
    AuditAction,
    AuditEntry,
    CreatedChanges,
    DeletedChanges,
    FieldChange,
    FieldChanges,
    MovedChanges,
    StatusChanges,
    VisibilityChanges,
)
from internal.domain.category import (
    DESCRIPTION_MAX_LENGTH,
    BreadcrumbItem,
    Category,
    CategorySettings,
    CategoryStatus,
    CategoryTreeNode,
    DeletionInfo,
    validate_name,
)
from internal.domain.errors import (
    CategoryNotFoundError,
    DomainError,
    DomainValidationError,
)
from internal.domain.metrics import CategoryMetrics
from internal.infrastructure.metrics import CATEGORY_OPERATIONS
from internal.usecase.audit_logger import AuditLogger
from internal.usecase.metrics_aggregator import MetricsAggregator
from internal.usecase.ports import (
    CategoryStoreProtocol,
    MetricsInvalidationSink,
    ProductStatsProtocol,
    TreeCacheProtocol,
)
from internal.usecase.recompute_scheduler import InlineMetricsDispatcher
from internal.usecase.subtree_resolver import ChildrenIndex, build_children_index
from internal.usecase.tree_manager import ReconcileReport, TreeManager
from pkg.logger import get_logger


logger = get_logger(__name__)


# Settings an administrator may patch directly. Activity and visibility go
# through the status and visibility operations so they are audited as such.
UPDATABLE_SETTINGS = ("allow_products", "sort_order", "require_approval")


class StatusAction(str, Enum):
    """Administrative status transitions."""

    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    ARCHIVE = "archive"
    RESTORE = "restore"


_TRANSITIONS: dict[StatusAction, tuple[CategoryStatus, AuditAction]] = {
    StatusAction.ACTIVATE: (CategoryStatus.ACTIVE, AuditAction.ACTIVATED),
    StatusAction.DEACTIVATE: (CategoryStatus.INACTIVE, AuditAction.DEACTIVATED),
    StatusAction.ARCHIVE: (CategoryStatus.ARCHIVED, AuditAction.ARCHIVED),
}


@dataclass
class BulkStatusResult:
    """Per-category outcome of a bulk status change."""

    succeeded: list[UUID] = field(default_factory=list)
    failed: dict[UUID, DomainError] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "succeeded": [str(i) for i in self.succeeded],
            "failed": [
                {"id": str(category_id), "code": error.code, "message": error.message}
                for category_id, error in self.failed.items()
            ],
        }


class CategoryService:
    """
    Service for category management.

    This service:
    1. Creates, edits, moves and deletes categories
    2. Drives the status and visibility lifecycle
    3. Serves trees, breadcrumbs, metrics and audit history
    4. Turns product changes into metrics recompute requests
    """

    def __init__(
        self,
        store: CategoryStoreProtocol,
        product_stats: ProductStatsProtocol,
        metrics_sink: Optional[MetricsInvalidationSink] = None,
        cache: Optional[TreeCacheProtocol] = None,
        tree_manager: Optional[TreeManager] = None,
        aggregator: Optional[MetricsAggregator] = None,
        audit: Optional[AuditLogger] = None,
        soft_delete: bool = False,
        require_approval: bool = False,
    ) -> None:
        """
        Initialize the category service.

        Args:
            store: Category store.
            product_stats: Product collaborator.
            metrics_sink: Where recompute requests go; recomputes inline when omitted.
            cache: Optional tree cache.
            tree_manager: Tree manager over the same store.
            aggregator: Metrics aggregator over the same store.
            audit: Audit logger over the same store.
            soft_delete: Mark categories deleted instead of removing them.
            require_approval: Create every category as a draft.
        """
        self._store = store
        self._tree = tree_manager or TreeManager(store, product_stats)
        self._aggregator = aggregator or MetricsAggregator(store, product_stats)
        self._metrics = metrics_sink or InlineMetricsDispatcher(self._aggregator)
        self._audit = audit or AuditLogger(store)
        self._cache = cache
        self._soft_delete = soft_delete
        self._require_approval = require_approval

    # ------------------------------------------------------------------
    # Structural operations
    # ------------------------------------------------------------------

    async def create_category(
        self,
        name: str,
        actor: str,
        parent_id: Optional[UUID] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        settings: Optional[CategorySettings] = None,
        reason: str = "",
    ) -> Category:
        """
        Create a category.

        Args:
            name: Display name.
            actor: Acting administrator.
            parent_id: Parent category, None for a root.
            slug: Explicit slug; derived from the name when omitted.
            description: Optional description.
            settings: Initial settings.
            reason: Audit reason.

        Returns:
            The created category.

        Raises:
            DomainValidationError: Invalid name or slug, or max depth exceeded.
            SlugConflictError: Slug already taken.
            CategoryNotFoundError: Parent does not exist.
        """
        _require_actor(actor)
        settings = settings or CategorySettings()
        status = (
            CategoryStatus.DRAFT
            if self._require_approval or settings.require_approval
            else CategoryStatus.ACTIVE
        )
        # The activity flag always follows the status.
        settings = replace(settings, is_active=status == CategoryStatus.ACTIVE)
        with _track("create"):
            category = await self._tree.create_node(
                name=name,
                actor=actor,
                parent_id=parent_id,
                slug=slug,
                description=description,
                settings=settings,
                status=status,
            )

        await self._audit.append(
            category.id,
            AuditAction.CREATED,
            actor,
            CreatedChanges(
                name=category.name,
                slug=category.slug,
                parent_id=category.parent_id,
                status=category.status.value,
            ),
            reason,
        )
        await self._invalidate_trees()
        await self._request_recompute(category.id, "category created")
        return category

    async def update_category(
        self,
        category_id: UUID,
        actor: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        slug: Optional[str] = None,
        settings: Optional[dict] = None,
        reason: str = "",
    ) -> Category:
        """
        Edit the plain fields of a category.

        Renaming keeps the slug; pass ``slug`` to re-slug, which rewrites the
        paths of every descendant.

        Args:
            category_id: Category to edit.
            actor: Acting administrator.
            name: New name.
            description: New description; an empty string clears it.
            slug: New slug.
            settings: Subset of ``allow_products``, ``sort_order`` and
                ``require_approval``.
            reason: Audit reason.

        Returns:
            The updated category.
        """
        _require_actor(actor)
        node = await self._tree.get_live(category_id)
        changes: list[FieldChange] = []

        if name is not None:
            name = validate_name(name)
            if name != node.name:
                changes.append(FieldChange("name", node.name, name))
                node.name = name

        if description is not None:
            description = description.strip() or None
            if description and len(description) > DESCRIPTION_MAX_LENGTH:
                raise DomainValidationError(
                    f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
                )
            if description != node.description:
                changes.append(FieldChange("description", node.description, description))
                node.description = description

        for key, value in (settings or {}).items():
            if key not in UPDATABLE_SETTINGS:
                raise DomainValidationError(f"Setting '{key}' cannot be updated here")
            old = getattr(node.settings, key)
            if value != old:
                changes.append(FieldChange(f"settings.{key}", old, value))
                setattr(node.settings, key, value)

        with _track("update"):
            if slug is not None and slug != node.slug:
                old_slug = node.slug
                renamed, _ = await self._tree.change_slug(node.id, slug, actor)
                if renamed.slug != old_slug:
                    changes.append(FieldChange("slug", old_slug, renamed.slug))
                    node.slug = renamed.slug

            if not changes:
                return node

            node.touch(actor)
            updated = await self._store.update(node)

        await self._audit.append(
            updated.id, AuditAction.UPDATED, actor, FieldChanges(tuple(changes)), reason
        )
        await self._invalidate_trees()
        return updated

    async def move_category(
        self,
        category_id: UUID,
        new_parent_id: Optional[UUID],
        actor: str,
        reason: str = "",
    ) -> Category:
        """
        Move a category, with its subtree, under a new parent.

        Returns:
            The moved category.

        Raises:
            CyclicMoveError: New parent is the node or one of its descendants.
            MaxDepthExceededError: A descendant would end up too deep.
            CategoryNotFoundError: Node or new parent does not exist.
        """
        _require_actor(actor)
        with _track("move"):
            result = await self._tree.move_node(category_id, new_parent_id, actor)
        if not result.moved:
            return result.category

        moved = result.category
        await self._audit.append(
            moved.id,
            AuditAction.UPDATED,
            actor,
            MovedChanges(
                from_parent_id=result.from_parent_id,
                to_parent_id=moved.parent_id,
                from_path=result.from_path,
                to_path=moved.path,
                descendants_rewritten=result.descendants_rewritten,
            ),
            reason,
        )
        await self._invalidate_trees()
        await self._request_recompute(moved.id, "category moved")
        if result.from_parent_id is not None:
            await self._request_recompute(result.from_parent_id, "child moved away")
        return moved

    async def delete_category(self, category_id: UUID, actor: str, reason: str = "") -> None:
        """
        Delete a category that has no products and no live children.

        Raises:
            CategoryIntegrityError: Children or products remain.
            CategoryNotFoundError: The category does not exist.
        """
        _require_actor(actor)
        with _track("delete"):
            deleted = await self._tree.delete_node(category_id, actor, soft=self._soft_delete)

        await self._audit.append(
            category_id,
            AuditAction.DELETED,
            actor,
            DeletedChanges(soft=self._soft_delete),
            reason,
        )
        await self._invalidate_trees()
        if deleted.parent_id is not None:
            await self._request_recompute(deleted.parent_id, "child deleted")

    async def restore_category(self, category_id: UUID, actor: str, reason: str = "") -> Category:
        """
        Restore an archived or soft-deleted category as inactive.

        Raises:
            DomainValidationError: Not restorable, or its parent is deleted.
            SlugConflictError: Its slug was reused meanwhile.
        """
        _require_actor(actor)
        before = await self.get_category(category_id)
        with _track("restore"):
            restored = await self._tree.restore_node(category_id, actor)

        await self._audit.append(
            category_id,
            AuditAction.RESTORED,
            actor,
            StatusChanges(from_status=before.status.value, to_status=restored.status.value),
            reason,
        )
        await self._invalidate_trees()
        await self._request_recompute(restored.id, "category restored")
        return restored

    async def change_status(
        self,
        category_id: UUID,
        action: StatusAction,
        actor: str,
        reason: str = "",
    ) -> Category:
        """
        Apply a status transition.

        A transition to the current status is a no-op and is not audited.

        Raises:
            DomainValidationError: The category is deleted.
            CategoryNotFoundError: The category does not exist.
        """
        action = StatusAction(action)
        if action == StatusAction.RESTORE:
            return await self.restore_category(category_id, actor, reason)

        _require_actor(actor)
        node = await self._get_mutable(category_id)
        target, audit_action = _TRANSITIONS[action]
        if node.status == target:
            return node

        previous = node.status
        node.status = target
        if action == StatusAction.ACTIVATE:
            node.settings.is_active = True
        else:
            node.settings.is_active = False
        if action == StatusAction.ARCHIVE:
            node.settings.is_visible = False
        node.touch(actor)

        with _track(action.value):
            updated = await self._store.update(node)

        await self._audit.append(
            category_id,
            audit_action,
            actor,
            StatusChanges(from_status=previous.value, to_status=target.value),
            reason,
        )
        await self._invalidate_trees()
        logger.info(
            "Category status changed",
            category_id=str(category_id),
            from_status=previous.value,
            to_status=target.value,
        )
        return updated

    async def set_visibility(
        self,
        category_id: UUID,
        visible: bool,
        actor: str,
        reason: str = "",
    ) -> Category:
        """Show or hide a category and its subtree in public trees."""
        _require_actor(actor)
        node = await self._get_mutable(category_id)
        if node.settings.is_visible == visible:
            return node

        node.settings.is_visible = visible
        node.touch(actor)
        with _track("visibility"):
            updated = await self._store.update(node)

        await self._audit.append(
            category_id,
            AuditAction.MADE_VISIBLE if visible else AuditAction.MADE_HIDDEN,
            actor,
            VisibilityChanges(from_visible=not visible, to_visible=visible),
            reason,
        )
        await self._invalidate_trees()
        return updated

    async def bulk_change_status(
        self,
        category_ids: list[UUID],
        action: StatusAction,
        actor: str,
        reason: str = "",
    ) -> BulkStatusResult:
        """
        Apply one status transition to many categories.

        Every ID is attempted; failures are collected, not raised.
        """
        _require_actor(actor)
        result = BulkStatusResult()
        for category_id in dict.fromkeys(category_ids):
            try:
                await self.change_status(category_id, action, actor, reason)
            except DomainError as e:
                result.failed[category_id] = e
            else:
                result.succeeded.append(category_id)

        logger.info(
            "Bulk status change finished",
            action=StatusAction(action).value,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_category(self, category_id: UUID) -> Category:
        """
        Get a category, soft-deleted ones included.

        Raises:
            CategoryNotFoundError: The category does not exist.
        """
        category = await self._store.get_by_id(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return category

    async def list_children(self, category_id: UUID) -> list[Category]:
        """Live direct children of a category, any status, in sibling order."""
        await self._tree.get_live(category_id)
        return await self._store.list_children(category_id)

    async def build_tree(self, root_id: Optional[UUID] = None) -> list[CategoryTreeNode]:
        """
        Build the public tree of active, visible categories.

        A hidden or inactive node hides its whole subtree.

        Args:
            root_id: Restrict the tree to this node's subtree.

        Returns:
            Root nodes with nested children, siblings ordered by sort order
            then name.

        Raises:
            CategoryNotFoundError: ``root_id`` does not exist.
        """
        categories = await self._store.list_all()
        index = build_children_index(categories)

        if root_id is not None:
            root = await self._tree.get_live(root_id)
            by_id = {c.id: c for c in categories}
            starts = [root] if _publicly_reachable(root, by_id) else []
        else:
            starts = [c for c in index.get(None, []) if c.is_publicly_visible()]

        nodes = [_build_node(category, index) for category in starts]
        nodes.sort(key=lambda n: (n.category.settings.sort_order, n.category.name))
        for node in nodes:
            node.sort()
        return nodes

    async def get_tree(self, root_id: Optional[UUID] = None) -> list[dict]:
        """
        Public tree as plain dictionaries, served from cache when possible.

        Args:
            root_id: Restrict the tree to this node's subtree.

        Returns:
            Nested category dictionaries.
        """
        if self._cache is not None:
            cached = await self._cache.get_tree(root_id)
            if cached is not None:
                return cached

        tree = [node.to_dict() for node in await self.build_tree(root_id)]
        if self._cache is not None:
            await self._cache.set_tree(root_id, tree)
        return tree

    async def get_breadcrumb(self, category_id: UUID) -> list[BreadcrumbItem]:
        """
        Root-to-node chain derived from the node's path.

        Returns:
            Breadcrumb items, root first, ending with the node itself.
        """
        node = await self._tree.get_live(category_id)
        slugs = node.ancestor_slugs
        by_slug = {c.slug: c for c in await self._store.get_by_slugs(slugs)} if slugs else {}

        crumbs = []
        for slug in slugs:
            ancestor = by_slug.get(slug)
            if ancestor is None:
                logger.warning(
                    "Breadcrumb ancestor missing",
                    category_id=str(category_id),
                    slug=slug,
                )
                continue
            crumbs.append(_crumb(ancestor))
        crumbs.append(_crumb(node))
        return crumbs

    async def get_metrics(self, category_id: UUID) -> CategoryMetrics:
        """Last computed metrics; possibly stale, never absent."""
        return (await self.get_category(category_id)).metrics

    async def get_audit_log(self, category_id: UUID) -> list[AuditEntry]:
        """
        Audit entries of a category, oldest first.

        The trail outlives a physically deleted category.

        Raises:
            CategoryNotFoundError: No such category and no trail.
        """
        entries = await self._audit.history(category_id)
        if not entries and await self._store.get_by_id(category_id) is None:
            raise CategoryNotFoundError(category_id)
        return entries

    async def get_deletion_info(self, category_id: UUID) -> DeletionInfo:
        """Direct products and children that would block a delete."""
        return await self._tree.deletion_info(category_id)

    async def can_assign_products(self, category_id: UUID) -> tuple[bool, str]:
        """Whether products may be assigned to a category, with a reason."""
        return (await self.get_category(category_id)).can_add_products()

    # ------------------------------------------------------------------
    # Metrics triggers and maintenance
    # ------------------------------------------------------------------

    async def request_recompute(self, category_id: UUID) -> None:
        """
        Ask for a metrics recompute of a category and its ancestors.

        Raises:
            CategoryNotFoundError: The category does not exist.
        """
        await self._tree.get_live(category_id)
        await self._request_recompute(category_id, "manual request")

    async def handle_product_change(
        self,
        category_id: Optional[UUID],
        previous_category_id: Optional[UUID] = None,
    ) -> None:
        """
        React to a product being created, changed or removed.

        Both the current and, for a re-categorised product, the previous
        category are recomputed.
        """
        for target in dict.fromkeys((category_id, previous_category_id)):
            if target is not None:
                await self._request_recompute(target, "product changed")

    async def reconcile_tree(self, actor: str = "system", recompute_metrics: bool = False) -> ReconcileReport:
        """
        Repair level/path drift and optionally rebuild every node's metrics.

        Returns:
            Reconciliation report.
        """
        report = await self._tree.reconcile(actor)
        if report.repaired:
            await self._invalidate_trees()
        if recompute_metrics:
            await self._aggregator.recompute_all()
        return report

    async def _get_mutable(self, category_id: UUID) -> Category:
        category = await self.get_category(category_id)
        if category.is_deleted:
            raise DomainValidationError(
                "Category is deleted; restore it before changing its status"
            )
        return category

    async def _request_recompute(self, category_id: UUID, reason: str) -> None:
        try:
            await self._metrics.invalidate(category_id, reason)
        except Exception as e:
            logger.error(
                "Failed to request metrics recompute",
                category_id=str(category_id),
                reason=reason,
                error=str(e),
            )

    async def _invalidate_trees(self) -> None:
        if self._cache is not None:
            await self._cache.invalidate_trees()


def _require_actor(actor: str) -> None:
    if not actor or not actor.strip():
        raise DomainValidationError("An acting user is required")


def _crumb(category: Category) -> BreadcrumbItem:
    return BreadcrumbItem(
        id=category.id,
        name=category.name,
        slug=category.slug,
        level=category.level,
    )


def _publicly_reachable(category: Category, by_id: dict[UUID, Category]) -> bool:
    """True when the category and every ancestor up to its root are publicly visible."""
    seen: set[UUID] = set()
    current: Optional[Category] = category
    while current is not None:
        if not current.is_publicly_visible() or current.id in seen:
            return False
        seen.add(current.id)
        if current.parent_id is None:
            return True
        current = by_id.get(current.parent_id)
    return False


def _build_node(
    category: Category,
    index: ChildrenIndex,
    seen: frozenset = frozenset(),
) -> CategoryTreeNode:
    seen = seen | {category.id}
    return CategoryTreeNode(
        category=category,
        children=[
            _build_node(child, index, seen)
            for child in index.get(category.id, [])
            if child.is_publicly_visible() and child.id not in seen
        ],
    )


@contextmanager
def _track(operation: str) -> Iterator[None]:
    """Count a structural operation by outcome."""
    try:
        yield
    except Exception:
        CATEGORY_OPERATIONS.labels(operation=operation, outcome="error").inc()
        raise
    CATEGORY_OPERATIONS.labels(operation=operation, outcome="success").inc()
