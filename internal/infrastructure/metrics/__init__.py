"""
Metrics infrastructure for Category Service.

Provides Prometheus metrics for monitoring.
"""

from .prometheus import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION,
    CATEGORY_OPERATIONS,
    CATEGORY_NODES_REWRITTEN,
    RECONCILE_REPAIRS,
    METRICS_RECOMPUTES,
    METRICS_RECOMPUTE_DURATION,
    METRICS_TRIGGERS_COALESCED,
    METRICS_QUEUE_DEPTH,
    AUDIT_WRITE_FAILURES,
    KAFKA_MESSAGES_CONSUMED,
    KAFKA_MESSAGES_PRODUCED,
    TREE_CACHE_REQUESTS,
)

__all__ = [
    "HTTP_REQUESTS_TOTAL",
    "HTTP_REQUEST_DURATION",
    "CATEGORY_OPERATIONS",
    "CATEGORY_NODES_REWRITTEN",
    "RECONCILE_REPAIRS",
    "METRICS_RECOMPUTES",
    "METRICS_RECOMPUTE_DURATION",
    "METRICS_TRIGGERS_COALESCED",
    "METRICS_QUEUE_DEPTH",
    "AUDIT_WRITE_FAILURES",
    "KAFKA_MESSAGES_CONSUMED",
    "KAFKA_MESSAGES_PRODUCED",
    "TREE_CACHE_REQUESTS",
]
