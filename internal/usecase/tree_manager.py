"""
Tree Manager Use Case.

Owns the structural fields of the category tree: ``parent_id``, ``level``,
``path`` and ``slug``. Every operation that changes ancestry rewrites the
affected subtree in memory first and hands the whole batch to the store in a
single ``update_hierarchy`` call.
"""
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional
from uuid import UUID

from internal.domain.category import (
    MAX_LEVEL,
    Category,
    CategorySettings,
    CategoryStatus,
    DeletionInfo,
    join_path,
    validate_name,
)
from internal.domain.errors import (
    CategoryIntegrityError,
    CategoryNotFoundError,
    CyclicMoveError,
    DomainValidationError,
    MaxDepthExceededError,
    SlugConflictError,
)
from internal.domain.slug import SlugAllocator
from internal.infrastructure.metrics import CATEGORY_NODES_REWRITTEN, RECONCILE_REPAIRS
from internal.usecase.ports import CategoryStoreProtocol, ProductStatsProtocol
from internal.usecase.subtree_resolver import (
    ChildrenIndex,
    SubtreeResolver,
    build_children_index,
    depth_below,
    walk_descendants,
)
from pkg.logger import get_logger


logger = get_logger(__name__)


@dataclass
class MoveResult:
    """
    Outcome of a move.

    Attributes:
        category: The node after the move.
        from_parent_id: Parent before the move.
        from_path: Path before the move.
        descendants_rewritten: Descendants whose level/path were rewritten.
        moved: False when the node already sat under the requested parent.
    """

    category: Category
    from_parent_id: Optional[UUID]
    from_path: str
    descendants_rewritten: int = 0
    moved: bool = True


@dataclass
class ReconcileReport:
    """
    Outcome of a reconciliation pass.

    Attributes:
        checked: Live nodes inspected.
        repaired: Nodes whose level or path was corrected.
        orphaned: Nodes unreachable from any root.
        too_deep: Nodes whose derived level exceeds the maximum.
    """

    checked: int = 0
    repaired: list[UUID] = field(default_factory=list)
    orphaned: list[UUID] = field(default_factory=list)
    too_deep: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "repaired": [str(i) for i in self.repaired],
            "orphaned": [str(i) for i in self.orphaned],
            "too_deep": [str(i) for i in self.too_deep],
        }


def _rebuild_subtree(root: Category, index: ChildrenIndex) -> list[Category]:
    """
    Re-derive level and path below an already updated root.

    Args:
        root: The node carrying its new parent, level, path or slug.
        index: Parent-to-children index of the stored tree.

    Returns:
        The root followed by every rewritten descendant, breadth-first.
    """
    rewritten = [root]
    seen = {root.id}
    queue = deque([root])
    while queue:
        parent = queue.popleft()
        for child in index.get(parent.id, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            updated = replace(child, level=parent.level + 1, path=parent.full_path)
            rewritten.append(updated)
            queue.append(updated)
    return rewritten


class TreeManager:
    """
    Validates and persists structural changes to the category tree.

    Keeps ``level``, ``path`` and slug uniqueness consistent across create,
    move, re-slug, delete and restore.
    """

    def __init__(
        self,
        store: CategoryStoreProtocol,
        product_stats: ProductStatsProtocol,
        slugs: Optional[SlugAllocator] = None,
        resolver: Optional[SubtreeResolver] = None,
    ) -> None:
        """
        Initialize the tree manager.

        Args:
            store: Category store.
            product_stats: Product collaborator, used by the delete guard.
            slugs: Slug allocator.
            resolver: Subtree resolver over the same store.
        """
        self._store = store
        self._product_stats = product_stats
        self._slugs = slugs or SlugAllocator()
        self._resolver = resolver or SubtreeResolver(store)

    async def get_live(self, category_id: UUID) -> Category:
        """
        Get a category that is not deleted.

        Raises:
            CategoryNotFoundError: If it does not exist or is soft-deleted.
        """
        category = await self._store.get_by_id(category_id)
        if category is None or category.is_deleted:
            raise CategoryNotFoundError(category_id)
        return category

    async def create_node(
        self,
        name: str,
        actor: str,
        parent_id: Optional[UUID] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        settings: Optional[CategorySettings] = None,
        status: CategoryStatus = CategoryStatus.ACTIVE,
    ) -> Category:
        """
        Create a category under an optional parent.

        Args:
            name: Display name.
            actor: Acting administrator.
            parent_id: Parent category, None for a root.
            slug: Explicit slug; derived from the name when omitted.
            description: Optional description.
            settings: Initial settings.
            status: Initial status.

        Returns:
            The persisted category.

        Raises:
            DomainValidationError: If the name or slug is invalid.
            CategoryNotFoundError: If the parent does not exist.
            MaxDepthExceededError: If the node would sit below the deepest level.
            SlugConflictError: If the slug is taken.
        """
        name = validate_name(name)
        slug = self._slugs.allocate(name, slug)

        level, path = 0, ""
        if parent_id is not None:
            parent = await self.get_live(parent_id)
            level, path = parent.level + 1, parent.full_path
            if level > MAX_LEVEL:
                raise MaxDepthExceededError(level, MAX_LEVEL)

        category = Category(
            name=name,
            slug=slug,
            parent_id=parent_id,
            level=level,
            path=path,
            status=status,
            settings=settings or CategorySettings(),
            description=description,
            created_by=actor,
            last_modified_by=actor,
        )
        created = await self._store.create(category)

        logger.info(
            "Category created",
            category_id=str(created.id),
            slug=created.slug,
            depth=created.level,
            parent_id=str(parent_id) if parent_id else None,
        )
        return created

    async def move_node(
        self,
        category_id: UUID,
        new_parent_id: Optional[UUID],
        actor: str,
    ) -> MoveResult:
        """
        Re-parent a category together with its whole subtree.

        Args:
            category_id: Category to move.
            new_parent_id: New parent, None to make it a root.
            actor: Acting administrator.

        Returns:
            Move outcome.

        Raises:
            CategoryNotFoundError: If the node or new parent does not exist.
            CyclicMoveError: If the new parent is the node or one of its descendants.
            MaxDepthExceededError: If the deepest descendant would end up too deep.
        """
        node = await self.get_live(category_id)
        if new_parent_id == node.parent_id:
            return MoveResult(category=node, from_parent_id=node.parent_id, from_path=node.path, moved=False)
        if new_parent_id == node.id:
            raise CyclicMoveError(node.id, new_parent_id)

        index = await self._resolver.children_index()
        if new_parent_id is not None:
            descendant_ids = {c.id for c in walk_descendants(node.id, index)}
            if new_parent_id in descendant_ids:
                raise CyclicMoveError(node.id, new_parent_id)

        new_level, new_path = 0, ""
        if new_parent_id is not None:
            parent = await self.get_live(new_parent_id)
            new_level, new_path = parent.level + 1, parent.full_path

        deepest = new_level + depth_below(node.id, index)
        if deepest > MAX_LEVEL:
            raise MaxDepthExceededError(deepest, MAX_LEVEL)

        moved = replace(
            node,
            parent_id=new_parent_id,
            level=new_level,
            path=new_path,
            last_modified_by=actor,
        )
        rewritten = _rebuild_subtree(moved, index)
        await self._store.update_hierarchy(rewritten)
        CATEGORY_NODES_REWRITTEN.observe(len(rewritten))

        logger.info(
            "Category moved",
            category_id=str(node.id),
            from_path=node.full_path,
            to_path=moved.full_path,
            rewritten=len(rewritten),
        )
        return MoveResult(
            category=moved,
            from_parent_id=node.parent_id,
            from_path=node.path,
            descendants_rewritten=len(rewritten) - 1,
        )

    async def change_slug(
        self,
        category_id: UUID,
        slug: str,
        actor: str,
    ) -> tuple[Category, int]:
        """
        Re-slug a category and rewrite the paths below it.

        Args:
            category_id: Category to re-slug.
            slug: New slug.
            actor: Acting administrator.

        Returns:
            Tuple of (updated category, descendants rewritten).

        Raises:
            DomainValidationError: If the slug is malformed.
            SlugConflictError: If the slug is taken.
        """
        node = await self.get_live(category_id)
        slug = self._slugs.validate(slug)
        if slug == node.slug:
            return node, 0

        holder = await self._store.get_by_slug(slug)
        if holder is not None and holder.id != node.id:
            raise SlugConflictError(slug)

        index = await self._resolver.children_index()
        renamed = replace(node, slug=slug, last_modified_by=actor)
        rewritten = _rebuild_subtree(renamed, index)
        await self._store.update_hierarchy(rewritten)
        CATEGORY_NODES_REWRITTEN.observe(len(rewritten))

        logger.info(
            "Category slug changed",
            category_id=str(node.id),
            old_slug=node.slug,
            new_slug=slug,
            rewritten=len(rewritten),
        )
        return renamed, len(rewritten) - 1

    async def deletion_info(self, category_id: UUID) -> DeletionInfo:
        """
        Count what blocks a delete.

        Raises:
            CategoryNotFoundError: If the category does not exist.
        """
        node = await self.get_live(category_id)
        counts = await self._product_stats.count_by_category_ids([node.id])
        children = await self._store.count_children(node.id)
        return DeletionInfo(
            category_id=node.id,
            direct_products=counts.total,
            direct_children=children,
        )

    async def delete_node(self, category_id: UUID, actor: str, soft: bool = False) -> Category:
        """
        Delete a category that has no products and no live children.

        Args:
            category_id: Category to delete.
            actor: Acting administrator.
            soft: Mark as deleted instead of removing the record.

        Returns:
            The category as it was deleted.

        Raises:
            CategoryNotFoundError: If the category does not exist.
            CategoryIntegrityError: If products or children remain.
        """
        info = await self.deletion_info(category_id)
        if not info.can_delete:
            raise CategoryIntegrityError(
                category_id,
                children=info.direct_children,
                products=info.direct_products,
            )

        node = await self.get_live(category_id)
        if soft:
            node.status = CategoryStatus.DELETED
            node.settings.is_active = False
            node.settings.is_visible = False
            node.deleted_at = datetime.utcnow()
            node.deleted_by = actor
            node.touch(actor)
            node = await self._store.update(node)
        else:
            await self._store.delete(node.id)

        logger.info(
            "Category deleted",
            category_id=str(category_id),
            slug=node.slug,
            soft=soft,
        )
        return node

    async def restore_node(self, category_id: UUID, actor: str) -> Category:
        """
        Bring an archived or soft-deleted category back as inactive.

        Level and path are re-derived from the parent in case an ancestor
        moved while the node was deleted.

        Raises:
            CategoryNotFoundError: If the category does not exist.
            DomainValidationError: If it is not restorable or its parent is deleted.
            SlugConflictError: If its slug was taken meanwhile.
        """
        node = await self._store.get_by_id(category_id)
        if node is None:
            raise CategoryNotFoundError(category_id)
        if node.status not in (CategoryStatus.ARCHIVED, CategoryStatus.DELETED):
            raise DomainValidationError(
                f"Only archived or deleted categories can be restored, not {node.status.value}"
            )

        level, path = 0, ""
        if node.parent_id is not None:
            parent = await self._store.get_by_id(node.parent_id)
            if parent is None or parent.is_deleted:
                raise DomainValidationError(
                    "Parent category is deleted; restore the parent first"
                )
            level, path = parent.level + 1, parent.full_path
            if level > MAX_LEVEL:
                raise MaxDepthExceededError(level, MAX_LEVEL)

        if node.status == CategoryStatus.DELETED:
            holder = await self._store.get_by_slug(node.slug)
            if holder is not None and holder.id != node.id:
                raise SlugConflictError(node.slug)

        if (level, path) != (node.level, node.path):
            node = replace(node, level=level, path=path)
            await self._store.update_hierarchy([node])

        node.status = CategoryStatus.INACTIVE
        node.settings.is_active = False
        node.deleted_at = None
        node.deleted_by = None
        node.touch(actor)
        restored = await self._store.update(node)

        logger.info("Category restored", category_id=str(category_id), slug=restored.slug)
        return restored

    async def reconcile(self, actor: str = "system") -> ReconcileReport:
        """
        Re-derive level and path for every live node from its parent chain.

        Mismatches are corrected in one batch. Nodes that cannot be reached
        from a root, or whose derived level is too deep, are reported and
        left untouched.

        Args:
            actor: Actor recorded on repaired nodes.

        Returns:
            Reconciliation report.
        """
        categories = await self._store.list_all()
        index = build_children_index(categories)
        report = ReconcileReport(checked=len(categories))

        expected: dict[UUID, tuple[int, str]] = {}
        queue: deque[tuple[Category, int, str]] = deque(
            (root, 0, "") for root in index.get(None, [])
        )
        repairs: list[Category] = []
        while queue:
            node, level, path = queue.popleft()
            if node.id in expected:
                continue
            expected[node.id] = (level, path)
            if level > MAX_LEVEL:
                report.too_deep.append(node.id)
            elif (node.level, node.path) != (level, path):
                repairs.append(replace(node, level=level, path=path, last_modified_by=actor))
            for child in index.get(node.id, []):
                queue.append((child, level + 1, join_path(path, node.slug)))

        report.orphaned = [c.id for c in categories if c.id not in expected]
        if repairs:
            await self._store.update_hierarchy(repairs)
            report.repaired = [c.id for c in repairs]
            RECONCILE_REPAIRS.inc(len(repairs))

        logger.info(
            "Category tree reconciled",
            checked=report.checked,
            repaired=len(report.repaired),
            orphaned=len(report.orphaned),
            too_deep=len(report.too_deep),
        )
        return report
