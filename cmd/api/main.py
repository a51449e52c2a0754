"""
FastAPI Application Entry Point.

REST API server for Category Service.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings
from internal.infrastructure.kafka.producer import CategoryEventPublisher, KafkaProducer
from internal.infrastructure.postgres import (
    PostgresCategoryRepository,
    PostgresProductStatsRepository,
    create_pool,
)
from internal.infrastructure.redis.cache import CategoryCacheService, RedisCache
from internal.transport.http.metrics import MetricsMiddleware
from internal.transport.http.v1.handlers import router, set_dependencies
from internal.usecase.category_service import CategoryService
from internal.usecase.metrics_aggregator import MetricsAggregator
from internal.usecase.recompute_scheduler import (
    InlineMetricsDispatcher,
    MetricsRecomputeScheduler,
)
from pkg.logger.logger import get_logger, set_request_id, setup_logging
from pkg.resilience import CircuitBreaker


# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(level=settings.log_level, json_format=settings.json_logs)

logger = get_logger(__name__)


# Global resources
db_pool = None
redis_cache: Optional[RedisCache] = None
scheduler: Optional[MetricsRecomputeScheduler] = None
kafka_producer: Optional[KafkaProducer] = None


def build_aggregator(store, product_stats, config: Settings) -> MetricsAggregator:
    """Metrics aggregator guarded by the product statistics circuit breaker."""
    breaker = CircuitBreaker(
        name="product-stats",
        failure_threshold=config.product_stats_failure_threshold,
        recovery_timeout=config.product_stats_recovery_timeout_seconds,
    )
    return MetricsAggregator(store, product_stats, breaker=breaker)


def build_scheduler(aggregator: MetricsAggregator, config: Settings) -> MetricsRecomputeScheduler:
    """Local recompute worker pool configured from settings."""
    return MetricsRecomputeScheduler(
        aggregator,
        workers=config.recompute_workers,
        debounce_seconds=config.recompute_debounce_seconds,
        max_retries=config.recompute_max_retries,
        retry_backoff_seconds=config.recompute_retry_backoff_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of resources.
    """
    global db_pool, redis_cache, scheduler, kafka_producer

    logger.info("Starting Category Service API...", metrics_dispatch=settings.metrics_dispatch)

    # Initialize database pool
    try:
        db_pool = await create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        logger.info("Database pool created")
    except Exception as e:
        logger.error("Failed to create database pool", error=str(e))
        raise

    # Initialize Redis cache
    try:
        redis_cache = RedisCache(
            redis_url=settings.redis_url,
            default_ttl=settings.tree_cache_ttl_seconds,
        )
        await redis_cache.connect()
    except Exception as e:
        logger.warning("Failed to connect to Redis, tree caching disabled", error=str(e))
        redis_cache = None

    store = PostgresCategoryRepository(db_pool)
    product_stats = PostgresProductStatsRepository(db_pool)
    aggregator = build_aggregator(store, product_stats, settings)
    cache_service = CategoryCacheService(redis_cache) if redis_cache else None

    # Metrics dispatch
    if settings.metrics_dispatch == "kafka":
        kafka_producer = KafkaProducer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            client_id=settings.kafka_client_id,
        )
        await kafka_producer.start()
        metrics_sink = CategoryEventPublisher(
            kafka_producer,
            topic=settings.kafka_category_events_topic,
        )
    elif settings.metrics_dispatch == "local":
        scheduler = build_scheduler(aggregator, settings)
        await scheduler.start()
        metrics_sink = scheduler
    else:
        metrics_sink = InlineMetricsDispatcher(aggregator)

    category_service = CategoryService(
        store=store,
        product_stats=product_stats,
        metrics_sink=metrics_sink,
        cache=cache_service,
        aggregator=aggregator,
        soft_delete=settings.soft_delete,
        require_approval=settings.require_approval,
    )

    set_dependencies(
        category_service=category_service,
        scheduler=scheduler,
        dispatch_mode=settings.metrics_dispatch,
    )

    logger.info("Category Service API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Category Service API...")

    if scheduler:
        await scheduler.stop()

    if kafka_producer:
        await kafka_producer.stop()

    if redis_cache:
        await redis_cache.close()

    if db_pool:
        await db_pool.close()

    logger.info("Category Service API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Category hierarchy, metrics rollup and audit trail for the marketplace catalog",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware
app.add_middleware(MetricsMiddleware)


# Request ID middleware
@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    """
    Add request ID to context for logging and tracing.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_id(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id

    return response


# Include routers
app.include_router(router)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with service information."""
    return {
        "service": "category-service",
        "version": settings.app_version,
        "status": "running",
    }


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
    )
