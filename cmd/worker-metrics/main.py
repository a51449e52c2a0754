"""
Category Metrics Worker Entry Point.

Consumes product change notifications and metrics invalidation events and
recomputes category metrics in a local worker pool.
"""

import asyncio
import signal
from typing import Optional

from dotenv import load_dotenv

from config.settings import get_settings
from internal.domain.events import METRICS_INVALIDATED, PRODUCT_EVENT_TYPES
from internal.infrastructure.kafka.consumer import (
    KafkaConsumer,
    MetricsInvalidatedEventHandler,
    ProductChangeEventHandler,
)
from internal.infrastructure.postgres import (
    PostgresCategoryRepository,
    PostgresProductStatsRepository,
    create_pool,
)
from internal.usecase.category_service import CategoryService
from internal.usecase.metrics_aggregator import MetricsAggregator
from internal.usecase.recompute_scheduler import MetricsRecomputeScheduler
from pkg.logger.logger import get_logger, setup_logging
from pkg.resilience import CircuitBreaker

# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(level=settings.log_level, json_format=settings.json_logs)

logger = get_logger(__name__)


class MetricsWorker:
    """
    Worker keeping category metrics up to date.

    Product events become recompute requests for the product's current and
    previous category; invalidation events published by the API are queued
    directly. Every recompute runs in the local scheduler.
    """

    def __init__(self) -> None:
        """Initialize the worker."""
        self._running = False
        self._db_pool = None
        self._consumer: Optional[KafkaConsumer] = None
        self._scheduler: Optional[MetricsRecomputeScheduler] = None

    async def start(self) -> None:
        """Start the worker."""
        logger.info("Starting Category Metrics Worker...")

        self._running = True

        # Initialize database pool
        try:
            self._db_pool = await create_pool(
                settings.database_url,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
            )
            logger.info("Database pool created")
        except Exception as e:
            logger.error("Failed to create database pool", error=str(e))
            raise

        store = PostgresCategoryRepository(self._db_pool)
        product_stats = PostgresProductStatsRepository(self._db_pool)
        aggregator = MetricsAggregator(
            store,
            product_stats,
            breaker=CircuitBreaker(
                name="product-stats",
                failure_threshold=settings.product_stats_failure_threshold,
                recovery_timeout=settings.product_stats_recovery_timeout_seconds,
            ),
        )

        self._scheduler = MetricsRecomputeScheduler(
            aggregator,
            workers=settings.recompute_workers,
            debounce_seconds=settings.recompute_debounce_seconds,
            max_retries=settings.recompute_max_retries,
            retry_backoff_seconds=settings.recompute_retry_backoff_seconds,
        )
        await self._scheduler.start()

        category_service = CategoryService(
            store=store,
            product_stats=product_stats,
            metrics_sink=self._scheduler,
            aggregator=aggregator,
        )

        # Initialize Kafka consumer
        topics = [settings.kafka_product_events_topic, settings.kafka_category_events_topic]
        self._consumer = KafkaConsumer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            group_id=settings.kafka_group_id,
            topics=topics,
            client_id=f"{settings.kafka_client_id}-metrics-worker",
        )

        product_handler = ProductChangeEventHandler(category_service)
        for event_type in PRODUCT_EVENT_TYPES:
            self._consumer.register_handler(event_type, product_handler.handle)
        self._consumer.register_handler(
            METRICS_INVALIDATED,
            MetricsInvalidatedEventHandler(self._scheduler).handle,
        )

        await self._consumer.start()

        logger.info(
            "Category Metrics Worker started successfully",
            topics=topics,
            group_id=settings.kafka_group_id,
        )

        # Start consuming
        try:
            await self._consumer.consume()
        except asyncio.CancelledError:
            logger.info("Worker consumption cancelled")

    async def stop(self) -> None:
        """Stop the worker, letting queued recomputes finish first."""
        logger.info("Stopping Category Metrics Worker...")

        self._running = False

        if self._consumer:
            await self._consumer.stop()

        if self._scheduler:
            try:
                await asyncio.wait_for(self._scheduler.drain(), timeout=10)
            except asyncio.TimeoutError:
                logger.warning("Recompute queue not drained before shutdown", pending=self._scheduler.pending)
            await self._scheduler.stop()

        if self._db_pool:
            await self._db_pool.close()

        logger.info("Category Metrics Worker stopped")


async def main() -> None:
    """Main entry point."""
    worker = MetricsWorker()
    shutdown_event = asyncio.Event()

    # Handle shutdown signals
    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        worker_task = asyncio.create_task(worker.start())

        # Wait for shutdown signal
        await shutdown_event.wait()

        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            pass

        await worker.stop()
    except Exception as e:
        logger.error("Worker failed", error=str(e))
        await worker.stop()
        raise


if __name__ == "__main__":
    asyncio.run(main())
