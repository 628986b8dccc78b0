"""Prometheus metrics definitions."""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================

# MEDIUM: API requests, reconcile passes (5ms ~ 60s)
_BUCKETS_MEDIUM = (
    0.005, 0.01, 0.02, 0.04, 0.09,
    0.18, 0.36, 0.73, 1.5, 3,
    6.2, 12.7, 26, 53,
)  # 14 buckets

# SLOW: provisioning (SSH + sshfs + image pull + health polls) (100ms ~ 180s)
_BUCKETS_SLOW = (
    0.1, 0.2, 0.39, 0.77, 1.5,
    3, 6, 12, 23, 46,
    91, 180,
)  # 12 buckets

# =============================================================================
# Lifecycle Metrics
# =============================================================================

LIFECYCLE_TRANSITIONS = Counter(
    "mediahost_lifecycle_transitions_total",
    "Persisted lifecycle status transitions",
    ["from_status", "to_status"],
)

LIFECYCLE_OPERATION_DURATION = Histogram(
    "mediahost_lifecycle_operation_duration_seconds",
    "Duration of lifecycle operations",
    ["operation"],  # create, start, stop, suspend, resume, delete
    buckets=_BUCKETS_SLOW,
)

LIFECYCLE_OPERATION_FAILURES = Counter(
    "mediahost_lifecycle_operation_failures_total",
    "Lifecycle operations that ended in ERROR or raised",
    ["operation", "error_code"],
)

TEARDOWN_STEP_FAILURES = Counter(
    "mediahost_teardown_step_failures_total",
    "Delete steps that failed and left resources behind",
    ["step"],  # stop, remove, unmount, delete_storage
)

# =============================================================================
# Reconciler Metrics
# =============================================================================

RECONCILE_DURATION = Histogram(
    "mediahost_reconcile_duration_seconds",
    "Duration of a reconcile pass over all instances",
    buckets=_BUCKETS_MEDIUM,
)

DRIFT_CORRECTIONS = Counter(
    "mediahost_drift_corrections_total",
    "Instances whose persisted status was corrected from runtime state",
    ["from_status", "to_status"],
)

INSTANCES = Gauge(
    "mediahost_instances",
    "Instances per lifecycle status (as of the last reconcile pass)",
    ["status"],
)

# =============================================================================
# Billing Metrics
# =============================================================================

BILLING_EVENTS = Counter(
    "mediahost_billing_events_total",
    "Billing events received",
    ["event", "action"],
)

# =============================================================================
# HTTP Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "mediahost_http_requests_total",
    "HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION = Histogram(
    "mediahost_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=_BUCKETS_MEDIUM,
)
