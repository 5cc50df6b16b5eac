"""Prometheus metrics for the pod identity operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

from models import TriggerType

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "pod_identity_operator_reconcile_total",
    "Total number of reconciliation passes",
    ["status"],
)

RECONCILE_DURATION = Histogram(
    "pod_identity_operator_reconcile_duration_seconds",
    "Time spent in a reconciliation pass",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "pod_identity_operator_reconcile_in_progress",
    "Whether a reconciliation pass is running",
)

TRIGGERS_TOTAL = Counter(
    "pod_identity_operator_triggers_total",
    "Total number of reconciliation triggers received",
    ["trigger"],
)

TRIGGERS_COALESCED = Counter(
    "pod_identity_operator_triggers_coalesced_total",
    "Triggers folded into an already pending pass",
)

# Cloud API metrics
CLOUD_OPERATIONS = Counter(
    "pod_identity_operator_cloud_operations_total",
    "Total number of identity attach/detach operations",
    ["operation", "status"],
)

CLOUD_OPERATION_DURATION = Histogram(
    "pod_identity_operator_cloud_operation_duration_seconds",
    "Time spent in identity attach/detach operations",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

RATE_LIMIT_WAIT_SECONDS = Histogram(
    "pod_identity_operator_rate_limit_wait_seconds",
    "Time spent waiting for rate limit slot",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Resource state metrics
ASSIGNED_IDENTITIES = Gauge(
    "pod_identity_operator_assigned_identities",
    "Number of assigned identity records",
)

DUPLICATE_IDENTITY_NAMES = Counter(
    "pod_identity_operator_duplicate_identity_names_total",
    "Identity names listed more than once, counted per pass",
)

STORE_ERRORS = Counter(
    "pod_identity_operator_store_errors_total",
    "Failed assigned identity record writes",
    ["operation"],
)

# Event metrics
EVENTS_TOTAL = Counter(
    "pod_identity_operator_events_total",
    "Total number of status events emitted",
    ["type", "reason"],
)

EVENTS_DROPPED = Counter(
    "pod_identity_operator_events_dropped_total",
    "Status events dropped because the buffer was full",
)

# Operator info
OPERATOR_INFO = Info(
    "pod_identity_operator",
    "Information about the pod identity operator",
)


def set_operator_info(version: str, subscription: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info({"version": version, "subscription": subscription})


def init_metrics() -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    statuses = ["success", "error"]

    for status in statuses + ["aborted"]:
        RECONCILE_TOTAL.labels(status=status)
    RECONCILE_IN_PROGRESS.set(0)

    for trigger in TriggerType:
        TRIGGERS_TOTAL.labels(trigger=trigger.value)

    for operation in ["attach", "detach"]:
        CLOUD_OPERATION_DURATION.labels(operation=operation)
        for status in statuses:
            CLOUD_OPERATIONS.labels(operation=operation, status=status)

    for operation in ["create", "delete"]:
        STORE_ERRORS.labels(operation=operation)
