"""
Tree Reconciliation Entry Point.

Repairs drifted levels and paths and, unless ``--skip-metrics`` is given,
rebuilds the metrics of every category bottom-up.
"""
import asyncio
import json
import sys

from dotenv import load_dotenv

from config.settings import get_settings
from internal.infrastructure.postgres import (
    PostgresCategoryRepository,
    PostgresProductStatsRepository,
    create_pool,
)
from internal.usecase.category_service import CategoryService
from internal.usecase.metrics_aggregator import MetricsAggregator
from pkg.logger.logger import get_logger, setup_logging


# Load environment variables
load_dotenv()

settings = get_settings()

setup_logging(level=settings.log_level, json_format=settings.json_logs)

logger = get_logger(__name__)


async def run(recompute_metrics: bool) -> int:
    """
    Reconcile the tree once.

    Returns:
        Process exit code: 1 if orphaned or too-deep nodes remain.
    """
    pool = await create_pool(settings.database_url, min_size=1, max_size=4)
    try:
        store = PostgresCategoryRepository(pool)
        product_stats = PostgresProductStatsRepository(pool)
        service = CategoryService(
            store=store,
            product_stats=product_stats,
            aggregator=MetricsAggregator(store, product_stats),
        )
        report = await service.reconcile_tree(actor="reconciler", recompute_metrics=recompute_metrics)
    finally:
        await pool.close()

    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.orphaned or report.too_deep else 0


def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]
    unknown = [a for a in args if a != "--skip-metrics"]
    if unknown:
        print(f"Unknown arguments: {' '.join(unknown)}")
        print("Usage:")
        print("  python main.py                 # Repair tree and rebuild metrics")
        print("  python main.py --skip-metrics  # Repair tree only")
        sys.exit(2)

    sys.exit(asyncio.run(run(recompute_metrics="--skip-metrics" not in args)))


if __name__ == "__main__":
    main()
