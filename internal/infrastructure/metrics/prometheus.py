"""
Prometheus Metrics for Category Service.

Defines all metrics for monitoring the category tree, the rollup engine and
the audit trail.
"""

from prometheus_client import Counter, Histogram, Gauge

# API metrics
HTTP_REQUESTS_TOTAL = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

HTTP_REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Tree metrics
CATEGORY_OPERATIONS = Counter(
    'category_operations_total',
    'Structural category operations',
    ['operation', 'outcome']  # outcome: success, error
)

CATEGORY_NODES_REWRITTEN = Histogram(
    'category_nodes_rewritten',
    'Nodes rewritten by a single move or slug change',
    buckets=[1, 2, 5, 10, 25, 50, 100, 250, 1000]
)

RECONCILE_REPAIRS = Counter(
    'category_reconcile_repairs_total',
    'Nodes whose level or path was repaired by reconciliation'
)

# Rollup metrics
METRICS_RECOMPUTES = Counter(
    'category_metrics_recomputes_total',
    'Category metrics recomputations',
    ['outcome']  # success, failed, skipped
)

METRICS_RECOMPUTE_DURATION = Histogram(
    'category_metrics_recompute_duration_seconds',
    'Duration of a single node recompute',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

METRICS_TRIGGERS_COALESCED = Counter(
    'category_metrics_triggers_coalesced_total',
    'Recompute triggers merged into an already pending recompute'
)

METRICS_QUEUE_DEPTH = Gauge(
    'category_metrics_queue_depth',
    'Recompute requests waiting in the scheduler queue'
)

# Audit metrics
AUDIT_WRITE_FAILURES = Counter(
    'category_audit_write_failures_total',
    'Audit entries that could not be written',
    ['action']
)

# Kafka metrics
KAFKA_MESSAGES_CONSUMED = Counter(
    'kafka_messages_consumed_total',
    'Total Kafka messages consumed',
    ['topic', 'status']  # status: success, error, ignored
)

KAFKA_MESSAGES_PRODUCED = Counter(
    'kafka_messages_produced_total',
    'Total Kafka messages produced',
    ['topic', 'status']
)

# Cache metrics
TREE_CACHE_REQUESTS = Counter(
    'category_tree_cache_requests_total',
    'Tree cache lookups',
    ['result']  # hit, miss, error
)
