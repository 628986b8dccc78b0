"""Customer instance domain enums."""

from enum import StrEnum


class LifecycleStatus(StrEnum):
    """Persisted lifecycle status of a customer instance.

    DELETED is terminal and never stored: deleting an instance removes its
    row, the activity log keeps the history.
    """

    CREATING = "CREATING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    SUSPENDED = "SUSPENDED"
    ERROR = "ERROR"
    DELETED = "DELETED"


class BillingEventKind(StrEnum):
    """Subscription events accepted from the billing source."""

    ACTIVATED = "activated"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    RESUMED = "resumed"


class ActivityAction(StrEnum):
    """activity_logs.action values."""

    CONTAINER_CREATED = "CONTAINER_CREATED"
    CONTAINER_STARTED = "CONTAINER_STARTED"
    CONTAINER_STOPPED = "CONTAINER_STOPPED"
    CONTAINER_RESTARTED = "CONTAINER_RESTARTED"
    CONTAINER_SUSPENDED = "CONTAINER_SUSPENDED"
    CONTAINER_RESUMED = "CONTAINER_RESUMED"
    CONTAINER_DELETED = "CONTAINER_DELETED"
    CONTAINER_ERROR = "CONTAINER_ERROR"
    ORPHANED_RESOURCES = "ORPHANED_RESOURCES"
    BACKUP_CREATED = "BACKUP_CREATED"
    DRIFT_CORRECTED = "DRIFT_CORRECTED"
    BILLING_EVENT = "BILLING_EVENT"


STARTABLE_STATUSES = frozenset({LifecycleStatus.STOPPED, LifecycleStatus.ERROR})
STOPPABLE_STATUSES = frozenset({LifecycleStatus.RUNNING, LifecycleStatus.ERROR})
SUSPENDABLE_STATUSES = frozenset({
    LifecycleStatus.RUNNING,
    LifecycleStatus.STOPPED,
    LifecycleStatus.CREATING,
})

# Statuses the health reconciler compares against the runtime
RECONCILED_STATUSES = frozenset({
    LifecycleStatus.CREATING,
    LifecycleStatus.RUNNING,
    LifecycleStatus.STOPPED,
    LifecycleStatus.SUSPENDED,
})
