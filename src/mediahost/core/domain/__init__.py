"""Domain models and enums."""

from mediahost.core.domain.instance import (
    RECONCILED_STATUSES,
    STARTABLE_STATUSES,
    STOPPABLE_STATUSES,
    SUSPENDABLE_STATUSES,
    ActivityAction,
    BillingEventKind,
    LifecycleStatus,
)
from mediahost.core.domain.naming import (
    ResourceNaming,
    normalize_slug,
    validate_customer_id,
)
from mediahost.core.domain.workload import (
    WorkloadProfile,
    WorkloadType,
    parse_workload_type,
    workload_profile,
)

__all__ = [
    "ActivityAction",
    "BillingEventKind",
    "LifecycleStatus",
    "WorkloadProfile",
    "WorkloadType",
    "ResourceNaming",
    "normalize_slug",
    "parse_workload_type",
    "validate_customer_id",
    "workload_profile",
    "RECONCILED_STATUSES",
    "STARTABLE_STATUSES",
    "STOPPABLE_STATUSES",
    "SUSPENDABLE_STATUSES",
]
