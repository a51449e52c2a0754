"""
Use case package for Category Service.

Contains business logic and use cases.
"""
from .audit_logger import AuditLogger
from .category_service import BulkStatusResult, CategoryService, StatusAction
from .metrics_aggregator import MetricsAggregator
from .recompute_scheduler import InlineMetricsDispatcher, MetricsRecomputeScheduler
from .subtree_resolver import SubtreeResolver
from .tree_manager import MoveResult, ReconcileReport, TreeManager

__all__ = [
    "AuditLogger",
    "BulkStatusResult",
    "CategoryService",
    "StatusAction",
    "MetricsAggregator",
    "InlineMetricsDispatcher",
    "MetricsRecomputeScheduler",
    "SubtreeResolver",
    "MoveResult",
    "ReconcileReport",
    "TreeManager",
]
