"""Logging field schema - v1.0

Standard fields (added to all logs):
- schema_version: Log schema version
- service: Service name (mediahost-orchestrator)
- component: Component name (LC, RC, BILLING, API)
- event: Event type (state_changed, operation_failed, etc.)
- trace_id: Request trace ID
- duration_ms: Duration in milliseconds

High cardinality fields (OK in logs, NOT in metric labels):
- customer_id: Customer ID
- instance_name: Container name
- request_id: Request ID
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Standard log event types.

    Use these event types in the 'event' extra field for consistent
    log filtering and analysis.
    """

    # Lifecycle events
    STATE_CHANGED = "state_changed"
    OPERATION_STARTED = "operation_started"
    OPERATION_FAILED = "operation_failed"
    TEARDOWN_STEP_FAILED = "teardown_step_failed"
    ORPHANED_RESOURCES = "orphaned_resources"

    # Reconciler events
    RECONCILE_COMPLETE = "reconcile_complete"
    DRIFT_DETECTED = "drift_detected"

    # Adapter events
    STORAGE_COMMAND = "storage_command"
    MOUNT_CHANGED = "mount_changed"
    IMAGE_PULLED = "image_pulled"

    # Billing events
    BILLING_EVENT_RECEIVED = "billing_event_received"

    # App events
    APP_STARTED = "app_started"
    APP_STOPPED = "app_stopped"

    # API events
    REQUEST_COMPLETE = "request_complete"
    REQUEST_FAILED = "request_failed"
    REQUEST_SLOW = "request_slow"


class ErrorClass(StrEnum):
    """Error classification for structured error logging.

    Use these in the 'error_class' extra field to enable
    filtering by error type and setting up alerts.
    """

    TRANSIENT = "transient"  # Retryable (network timeout, temp failure)
    PERMANENT = "permanent"  # Not retryable (invalid input, not found)


class Component(StrEnum):
    """Component identifiers for log filtering."""

    LC = "lc"  # LifecycleService
    RC = "rc"  # HealthReconciler
    BILLING = "billing"  # BillingEventHandler
    API = "api"  # REST API
