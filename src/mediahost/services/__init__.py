"""Orchestration services (lifecycle, billing, reconciliation)."""

from mediahost.services.billing import BillingEventHandler, BillingOutcome
from mediahost.services.lifecycle import DeleteReport, InstanceStatusView, LifecycleService
from mediahost.services.reconciler import HealthReconciler, ReconcileReport

__all__ = [
    "LifecycleService",
    "DeleteReport",
    "InstanceStatusView",
    "BillingEventHandler",
    "BillingOutcome",
    "HealthReconciler",
    "ReconcileReport",
]
