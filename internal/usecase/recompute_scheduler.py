"""
Metrics recompute dispatch.

Structural writes and product changes only *request* a recompute. Two
dispatchers satisfy the request:

* ``InlineMetricsDispatcher`` recomputes immediately, cascading to the root.
* ``MetricsRecomputeScheduler`` queues the request for a pool of asyncio
  workers. A node is never recomputed by two workers at once; requests for a
  node that is already queued are merged into the queued one, and a request
  arriving while the node is being recomputed is replayed once afterwards.
"""
import asyncio
from typing import Optional
from uuid import UUID

from internal.domain.errors import AggregationError
from internal.infrastructure.metrics import METRICS_QUEUE_DEPTH, METRICS_TRIGGERS_COALESCED
from internal.usecase.metrics_aggregator import MetricsAggregator
from pkg.logger import get_logger


logger = get_logger(__name__)


class InlineMetricsDispatcher:
    """Recomputes synchronously inside the caller's task."""

    def __init__(self, aggregator: MetricsAggregator) -> None:
        self._aggregator = aggregator

    async def invalidate(self, category_id: UUID, reason: str = "") -> None:
        logger.debug("Recomputing metrics inline", category_id=str(category_id), reason=reason)
        await self._aggregator.recompute(category_id)


class MetricsRecomputeScheduler:
    """
    Coalescing in-process recompute queue.

    Each queued node is recomputed once; on success its parent is queued in
    turn, so a change ripples up to the root one level at a time.
    """

    def __init__(
        self,
        aggregator: MetricsAggregator,
        workers: int = 2,
        debounce_seconds: float = 0.0,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            aggregator: Metrics aggregator.
            workers: Number of concurrent worker tasks.
            debounce_seconds: Delay before a dequeued node is recomputed,
                during which further requests for it are merged.
            max_retries: Retries of a failed recompute before giving up.
            retry_backoff_seconds: Base delay of the exponential backoff.
        """
        self._aggregator = aggregator
        self._workers = max(1, workers)
        self._debounce = debounce_seconds
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds

        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: set[UUID] = set()
        self._in_flight: set[UUID] = set()
        self._dirty: set[UUID] = set()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        """Requests waiting to be picked up."""
        return len(self._pending)

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"metrics-recompute-{n}")
            for n in range(self._workers)
        ]
        logger.info("Metrics recompute scheduler started", workers=self._workers)

    async def stop(self) -> None:
        """Cancel the workers. Queued requests are dropped."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(
            "Metrics recompute scheduler stopped",
            dropped=self._queue.qsize(),
        )

    async def drain(self) -> None:
        """Wait until every queued request, cascades included, is processed."""
        await self._queue.join()

    async def invalidate(self, category_id: UUID, reason: str = "") -> None:
        """Request a recompute of a category and, transitively, its ancestors."""
        self.schedule(category_id, reason)

    def schedule(self, category_id: UUID, reason: str = "") -> bool:
        """
        Queue a recompute unless one is already pending.

        Args:
            category_id: Category to recompute.
            reason: Trigger description, for logs.

        Returns:
            True if a new queue entry was created.
        """
        if category_id in self._pending:
            METRICS_TRIGGERS_COALESCED.inc()
            return False
        if category_id in self._in_flight:
            self._dirty.add(category_id)
            METRICS_TRIGGERS_COALESCED.inc()
            return False

        self._pending.add(category_id)
        self._queue.put_nowait(category_id)
        METRICS_QUEUE_DEPTH.set(self._queue.qsize())
        logger.debug("Metrics recompute scheduled", category_id=str(category_id), reason=reason)
        return True

    async def _worker(self, number: int) -> None:
        while True:
            node_id = await self._queue.get()
            METRICS_QUEUE_DEPTH.set(self._queue.qsize())
            try:
                if self._debounce > 0:
                    await asyncio.sleep(self._debounce)
                self._pending.discard(node_id)
                self._in_flight.add(node_id)

                parent_id = await self._run(node_id)
                if parent_id is not None:
                    self.schedule(parent_id, reason="child recomputed")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    "Unexpected error in metrics recompute worker",
                    worker=number,
                    category_id=str(node_id),
                    error=str(e),
                )
            finally:
                self._pending.discard(node_id)
                self._in_flight.discard(node_id)
                if node_id in self._dirty:
                    self._dirty.discard(node_id)
                    self.schedule(node_id, reason="changed during recompute")
                self._queue.task_done()

    async def _run(self, node_id: UUID) -> Optional[UUID]:
        """Recompute one node, retrying aggregation failures with backoff."""
        attempt = 0
        while True:
            try:
                return await self._aggregator.recompute_node(node_id)
            except AggregationError as e:
                attempt += 1
                if attempt > self._max_retries:
                    logger.error(
                        "Giving up on metrics recompute",
                        category_id=str(node_id),
                        attempts=attempt,
                        reason=e.reason,
                    )
                    return None
                delay = self._backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Metrics recompute failed, retrying",
                    category_id=str(node_id),
                    attempt=attempt,
                    delay=delay,
                    reason=e.reason,
                )
                await asyncio.sleep(delay)
