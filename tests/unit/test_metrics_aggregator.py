"""
Unit tests for metrics rollup.
"""
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio

from internal.domain.errors import AggregationError
from internal.domain.metrics import CategoryMetrics
from internal.usecase.metrics_aggregator import MetricsAggregator
from internal.usecase.tree_manager import TreeManager
from pkg.resilience import CircuitBreaker


@pytest.fixture
def tree(store, product_stats):
    return TreeManager(store, product_stats)


@pytest.fixture
def aggregator(store, product_stats):
    return MetricsAggregator(store, product_stats)


@pytest_asyncio.fixture
async def phones_tree(tree, actor):
    electronics = await tree.create_node("Electronics", actor)
    phones = await tree.create_node("Phones", actor, parent_id=electronics.id)
    return electronics, phones


def _attach_phones_products(add_products, phones_id):
    """3 active products, $3,000 revenue, 2 manufacturers, 5 orders."""
    add_products(phones_id, 1, manufacturers=("m-1",), revenue=Decimal("1000"), orders=2)
    add_products(phones_id, 1, manufacturers=("m-2",), revenue=Decimal("1000"), orders=2)
    add_products(phones_id, 1, manufacturers=("m-2",), revenue=Decimal("1000"), orders=1)


class TestRecompute:
    """Tests for MetricsAggregator.recompute."""

    @pytest.mark.asyncio
    async def test_recompute_and_cascade(self, aggregator, store, tree, actor, add_products):
        electronics = await tree.create_node("Electronics", actor)
        phones = await tree.create_node("Phones", actor, parent_id=electronics.id)
        _attach_phones_products(add_products, phones.id)

        metrics = await aggregator.recompute(phones.id)

        assert metrics.total_products == 3
        assert metrics.active_products == 3
        assert metrics.total_manufacturers == 2
        assert metrics.total_revenue == Decimal("3000")
        assert metrics.total_orders == 5
        assert metrics.popularity_score == 34
        assert metrics.total_subcategories == 0

        parent = await store.get_by_id(electronics.id)
        assert parent.metrics.total_products == 3
        assert parent.metrics.total_revenue == Decimal("3000")
        assert parent.metrics.popularity_score == 34
        assert parent.metrics.total_subcategories == 1
        assert parent.metrics_updated_at is not None

    @pytest.mark.asyncio
    async def test_idempotent(self, aggregator, tree, actor, add_products):
        phones = await tree.create_node("Phones", actor)
        add_products(phones.id, 4, revenue=Decimal("250"), orders=1)

        first = await aggregator.recompute(phones.id)
        second = await aggregator.recompute(phones.id)

        assert first == second

    @pytest.mark.asyncio
    async def test_counts_inactive_products(self, aggregator, tree, actor, add_products):
        phones = await tree.create_node("Phones", actor)
        add_products(phones.id, 2)
        add_products(phones.id, 1, status="discontinued")

        metrics = await aggregator.recompute(phones.id)

        assert metrics.total_products == 3
        assert metrics.active_products == 2

    @pytest.mark.asyncio
    async def test_failure_leaves_metrics_unchanged(self, store, tree, actor, add_products, product_stats):
        phones = await tree.create_node("Phones", actor)
        add_products(phones.id, 2)
        aggregator = MetricsAggregator(store, product_stats)
        before = await aggregator.recompute(phones.id)

        broken = AsyncMock()
        broken.count_by_category_ids.side_effect = ConnectionError("product db down")
        failing = MetricsAggregator(store, broken)

        assert await failing.recompute(phones.id) is None
        assert (await store.get_by_id(phones.id)).metrics == before

    @pytest.mark.asyncio
    async def test_recompute_missing_category(self, aggregator):
        assert await aggregator.recompute(uuid4()) is None

    @pytest.mark.asyncio
    async def test_empty_category(self, aggregator, tree, actor):
        phones = await tree.create_node("Phones", actor)
        assert await aggregator.recompute(phones.id) == CategoryMetrics()


class TestRecomputeNode:
    """Tests for single-node recompute used by the scheduler."""

    @pytest.mark.asyncio
    async def test_returns_parent(self, aggregator, phones_tree):
        electronics, phones = phones_tree

        assert await aggregator.recompute_node(phones.id) == electronics.id
        assert await aggregator.recompute_node(electronics.id) is None

    @pytest.mark.asyncio
    async def test_raises_aggregation_error(self, store, phones_tree):
        _, phones = phones_tree
        broken = AsyncMock()
        broken.count_by_category_ids.side_effect = TimeoutError()
        aggregator = MetricsAggregator(store, broken)

        with pytest.raises(AggregationError) as exc_info:
            await aggregator.recompute_node(phones.id)

        assert exc_info.value.category_id == phones.id
        assert exc_info.value.reason == "TimeoutError"

    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self, store, phones_tree):
        _, phones = phones_tree
        broken = AsyncMock()
        broken.count_by_category_ids.side_effect = ConnectionError("down")
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=60)
        aggregator = MetricsAggregator(store, broken, breaker=breaker)

        with pytest.raises(AggregationError):
            await aggregator.recompute_node(phones.id)
        with pytest.raises(AggregationError) as exc_info:
            await aggregator.recompute_node(phones.id)

        assert "open" in exc_info.value.reason
        assert broken.count_by_category_ids.await_count == 1


class TestRecomputeAll:
    """Tests for the full rebuild."""

    @pytest.mark.asyncio
    async def test_rebuilds_every_node(self, aggregator, store, phones_tree, add_products):
        electronics, phones = phones_tree
        add_products(phones.id, 2)
        add_products(electronics.id, 1)

        done = await aggregator.recompute_all()

        assert done == 2
        assert (await store.get_by_id(phones.id)).metrics.total_products == 2
        assert (await store.get_by_id(electronics.id)).metrics.total_products == 3
