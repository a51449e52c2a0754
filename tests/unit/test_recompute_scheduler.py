"""
Unit tests for metrics recompute dispatch.
"""
import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from internal.domain.errors import AggregationError
from internal.usecase.recompute_scheduler import (
    InlineMetricsDispatcher,
    MetricsRecomputeScheduler,
)


def _scheduler(aggregator, **kwargs) -> MetricsRecomputeScheduler:
    kwargs.setdefault("retry_backoff_seconds", 0)
    return MetricsRecomputeScheduler(aggregator, **kwargs)


class TestInlineDispatcher:
    """Tests for InlineMetricsDispatcher."""

    @pytest.mark.asyncio
    async def test_recomputes_immediately(self):
        aggregator = AsyncMock()
        category_id = uuid4()

        await InlineMetricsDispatcher(aggregator).invalidate(category_id, "test")

        aggregator.recompute.assert_awaited_once_with(category_id)


class TestMetricsRecomputeScheduler:
    """Tests for MetricsRecomputeScheduler."""

    @pytest.mark.asyncio
    async def test_pending_requests_coalesce(self):
        aggregator = AsyncMock()
        aggregator.recompute_node.return_value = None
        scheduler = _scheduler(aggregator)
        category_id = uuid4()

        assert scheduler.schedule(category_id) is True
        assert scheduler.schedule(category_id) is False
        assert scheduler.pending == 1

        await scheduler.start()
        await scheduler.drain()
        await scheduler.stop()

        aggregator.recompute_node.assert_awaited_once_with(category_id)
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cascades_to_parent(self):
        child_id, parent_id = uuid4(), uuid4()
        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = lambda node_id: parent_id if node_id == child_id else None
        scheduler = _scheduler(aggregator)

        await scheduler.start()
        await scheduler.invalidate(child_id, "product changed")
        await scheduler.drain()
        await scheduler.stop()

        called = [c.args[0] for c in aggregator.recompute_node.await_args_list]
        assert called == [child_id, parent_id]

    @pytest.mark.asyncio
    async def test_request_during_recompute_is_replayed(self):
        category_id = uuid4()
        calls = []
        scheduler = None

        async def recompute_node(node_id):
            calls.append(node_id)
            if len(calls) == 1:
                # A new change arrives while the first recompute runs.
                assert scheduler.schedule(node_id) is False
            return None

        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = recompute_node
        scheduler = _scheduler(aggregator, workers=3)

        await scheduler.start()
        scheduler.schedule(category_id)
        await scheduler.drain()
        await scheduler.stop()

        assert calls == [category_id, category_id]

    @pytest.mark.asyncio
    async def test_same_node_never_runs_concurrently(self):
        category_id = uuid4()
        running = 0
        peak = 0

        async def recompute_node(node_id):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return None

        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = recompute_node
        scheduler = _scheduler(aggregator, workers=4)

        await scheduler.start()
        for _ in range(5):
            scheduler.schedule(category_id)
            await asyncio.sleep(0.005)
        await scheduler.drain()
        await scheduler.stop()

        assert peak == 1

    @pytest.mark.asyncio
    async def test_retries_aggregation_failures(self):
        category_id = uuid4()
        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = [
            AggregationError(category_id, "timeout"),
            None,
        ]
        scheduler = _scheduler(aggregator, max_retries=3)

        await scheduler.start()
        scheduler.schedule(category_id)
        await scheduler.drain()
        await scheduler.stop()

        assert aggregator.recompute_node.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        category_id = uuid4()
        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = AggregationError(category_id, "down")
        scheduler = _scheduler(aggregator, max_retries=2)

        await scheduler.start()
        scheduler.schedule(category_id)
        await scheduler.drain()
        await scheduler.stop()

        assert aggregator.recompute_node.await_count == 3
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_kill_worker(self):
        first, second = uuid4(), uuid4()
        aggregator = AsyncMock()
        aggregator.recompute_node.side_effect = [RuntimeError("bug"), None]
        scheduler = _scheduler(aggregator, workers=1)

        await scheduler.start()
        scheduler.schedule(first)
        scheduler.schedule(second)
        await scheduler.drain()

        assert scheduler.is_running
        await scheduler.stop()
        assert not scheduler.is_running
        assert aggregator.recompute_node.await_count == 2
