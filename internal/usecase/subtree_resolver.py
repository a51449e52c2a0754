"""
Subtree Resolver Use Case.

Finds the descendants of a category by walking a parent-to-children index
breadth-first. No path pattern matching is involved, so slugs never need
escaping.
"""
from collections import defaultdict, deque
from typing import Optional
from uuid import UUID

from internal.domain.category import Category
from internal.usecase.ports import CategoryStoreProtocol


ChildrenIndex = dict[Optional[UUID], list[Category]]


def build_children_index(categories: list[Category]) -> ChildrenIndex:
    """
    Group categories by parent ID.

    Args:
        categories: Live categories.

    Returns:
        Mapping of parent ID (None for roots) to its children.
    """
    index: ChildrenIndex = defaultdict(list)
    for category in categories:
        index[category.parent_id].append(category)
    return index


def walk_descendants(root_id: UUID, index: ChildrenIndex) -> list[Category]:
    """
    Breadth-first walk below a node.

    The root itself is never yielded, and each node is visited at most once
    even if stored data contains a cycle.

    Args:
        root_id: Node to start from.
        index: Parent-to-children index.

    Returns:
        Descendants in breadth-first order.
    """
    found: list[Category] = []
    seen = {root_id}
    queue = deque([root_id])
    while queue:
        current = queue.popleft()
        for child in index.get(current, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            found.append(child)
            queue.append(child.id)
    return found


def depth_below(root_id: UUID, index: ChildrenIndex) -> int:
    """
    Number of levels below a node, counted by walking the index.

    Returns:
        0 for a leaf, otherwise the distance to the deepest descendant.
    """
    deepest = 0
    seen = {root_id}
    queue = deque([(root_id, 0)])
    while queue:
        current, depth = queue.popleft()
        deepest = max(deepest, depth)
        for child in index.get(current, []):
            if child.id not in seen:
                seen.add(child.id)
                queue.append((child.id, depth + 1))
    return deepest


class SubtreeResolver:
    """Resolves descendant sets from the category store."""

    def __init__(self, store: CategoryStoreProtocol) -> None:
        """
        Initialize the resolver.

        Args:
            store: Category store.
        """
        self._store = store

    async def children_index(self) -> ChildrenIndex:
        """Load live categories and index them by parent."""
        return build_children_index(await self._store.list_all())

    async def descendants(self, node: Category) -> list[Category]:
        """Descendant entities of a node, breadth-first."""
        return walk_descendants(node.id, await self.children_index())

    async def descendants_of(self, node: Category) -> set[UUID]:
        """
        IDs of every descendant of a node.

        Args:
            node: Category whose subtree is wanted.

        Returns:
            Set of descendant IDs, excluding the node itself.
        """
        return {c.id for c in await self.descendants(node)}

    async def subtree_depth(self, node: Category) -> int:
        """Number of levels below a node; stored levels are not trusted."""
        return depth_below(node.id, await self.children_index())
