"""
Metrics Aggregator Use Case.

Recomputes the rollup metrics of a category from product statistics of the
category and all of its descendants, then walks up the parent chain so every
ancestor reflects the change. Each recompute is a full recalculation from
source data, so concurrent recomputes of the same node converge on the same
absolute values.
"""
import time
from typing import Optional
from uuid import UUID

from internal.domain.category import Category
from internal.domain.errors import AggregationError
from internal.domain.metrics import CategoryMetrics
from internal.infrastructure.metrics import METRICS_RECOMPUTE_DURATION, METRICS_RECOMPUTES
from internal.usecase.ports import CategoryStoreProtocol, ProductStatsProtocol
from internal.usecase.subtree_resolver import SubtreeResolver
from pkg.logger import get_logger
from pkg.resilience import CircuitBreaker


logger = get_logger(__name__)


class MetricsAggregator:
    """
    Rolls product statistics up the category tree.

    Product queries go through a circuit breaker; any failure there becomes
    an ``AggregationError`` and leaves the stored metrics untouched.
    """

    def __init__(
        self,
        store: CategoryStoreProtocol,
        product_stats: ProductStatsProtocol,
        resolver: Optional[SubtreeResolver] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        """
        Initialize the aggregator.

        Args:
            store: Category store.
            product_stats: Product collaborator.
            resolver: Subtree resolver over the same store.
            breaker: Circuit breaker around product queries.
        """
        self._store = store
        self._product_stats = product_stats
        self._resolver = resolver or SubtreeResolver(store)
        self._breaker = breaker or CircuitBreaker(name="product-stats")

    async def recompute(self, node_id: UUID) -> Optional[CategoryMetrics]:
        """
        Recompute a node and then each of its ancestors.

        Failures are logged and stop the cascade; they are never raised.

        Args:
            node_id: Category whose subtree changed.

        Returns:
            The node's new metrics, or None if it was skipped or failed.
        """
        result: Optional[CategoryMetrics] = None
        current: Optional[UUID] = node_id
        visited: set[UUID] = set()
        while current is not None and current not in visited:
            visited.add(current)
            try:
                category = await self._recompute_one(current)
            except AggregationError as e:
                logger.error(
                    "Metrics recompute failed",
                    category_id=str(e.category_id),
                    reason=e.reason,
                )
                return result
            if category is None:
                return result
            if current == node_id and not category.is_deleted:
                result = category.metrics
            current = category.parent_id
        return result

    async def recompute_node(self, node_id: UUID) -> Optional[UUID]:
        """
        Recompute a single node without cascading.

        Args:
            node_id: Category to recompute.

        Returns:
            The parent ID to recompute next, or None at a root or missing node.

        Raises:
            AggregationError: If product statistics could not be read.
        """
        category = await self._recompute_one(node_id)
        return category.parent_id if category else None

    async def recompute_all(self) -> int:
        """
        Recompute every live node, deepest level first.

        Used by the reconciliation job. Failures are logged per node.

        Returns:
            Number of nodes recomputed successfully.
        """
        categories = await self._store.list_all()
        done = 0
        for category in sorted(categories, key=lambda c: c.level, reverse=True):
            try:
                if await self._recompute_one(category.id) is not None:
                    done += 1
            except AggregationError as e:
                logger.error(
                    "Metrics recompute failed",
                    category_id=str(e.category_id),
                    reason=e.reason,
                )
        logger.info("Recomputed all category metrics", recomputed=done, total=len(categories))
        return done

    async def _recompute_one(self, node_id: UUID) -> Optional[Category]:
        """
        Recompute and persist the metrics of one node.

        Deleted nodes are not written but still report their parent so a
        cascade can continue.

        Returns:
            The category with its new metrics, or None if it does not exist.

        Raises:
            AggregationError: If product statistics could not be read.
        """
        category = await self._store.get_by_id(node_id)
        if category is None:
            METRICS_RECOMPUTES.labels(outcome="skipped").inc()
            logger.warning("Skipping metrics recompute for missing category", category_id=str(node_id))
            return None
        if category.is_deleted:
            METRICS_RECOMPUTES.labels(outcome="skipped").inc()
            logger.debug("Skipping metrics recompute for deleted category", category_id=str(node_id))
            return category

        started = time.perf_counter()
        ids = [category.id, *(await self._resolver.descendants_of(category))]
        try:
            counts = await self._breaker.call(self._product_stats.count_by_category_ids, ids)
            aggregate = await self._breaker.call(self._product_stats.aggregate_by_category_ids, ids)
        except Exception as e:
            METRICS_RECOMPUTES.labels(outcome="failed").inc()
            raise AggregationError(category.id, str(e) or type(e).__name__) from e

        children = await self._store.count_children(category.id)
        metrics = CategoryMetrics.from_product_stats(counts, aggregate, children)
        await self._store.update_metrics(category.id, metrics)
        category.metrics = metrics

        METRICS_RECOMPUTES.labels(outcome="success").inc()
        METRICS_RECOMPUTE_DURATION.observe(time.perf_counter() - started)
        logger.debug(
            "Category metrics recomputed",
            category_id=str(category.id),
            subtree_size=len(ids),
            total_products=metrics.total_products,
            popularity_score=metrics.popularity_score,
        )
        return category
