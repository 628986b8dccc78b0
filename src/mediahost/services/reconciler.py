"""Health reconciler.

Compares persisted instance status against the container runtime and
corrects drift. Runs once at startup for crash recovery, then periodically.

Algorithm:
    1. List instances in CREATING, RUNNING, STOPPED, SUSPENDED
    2. For each, take the customer lock (busy customers are skipped)
    3. Inspect the container and apply the correction table
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from mediahost.app.config import LifecycleConfig
from mediahost.app.metrics.collector import (
    DRIFT_CORRECTIONS,
    INSTANCES,
    LIFECYCLE_TRANSITIONS,
    RECONCILE_DURATION,
)
from mediahost.core.domain import RECONCILED_STATUSES, ActivityAction, LifecycleStatus
from mediahost.core.errors import ConflictError, ErrorCode, MediaHostError
from mediahost.core.interfaces import ContainerRuntime, InstanceStore, RuntimeSnapshot
from mediahost.core.locks import CustomerLocks
from mediahost.core.logging_schema import Component, LogEvent
from mediahost.core.models import CustomerInstance, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    checked: int = 0
    corrected: int = 0
    skipped: list[str] = field(default_factory=list)


class HealthReconciler:
    """Brings persisted status in line with what the runtime reports."""

    def __init__(
        self,
        store: InstanceStore,
        runtime: ContainerRuntime,
        locks: CustomerLocks,
        config: LifecycleConfig,
    ) -> None:
        self._store = store
        self._runtime = runtime
        self._locks = locks
        self._config = config

    async def run_forever(self, interval: float | None = None) -> None:
        """Reconcile every ``interval`` seconds until cancelled."""
        interval = interval if interval is not None else self._config.reconcile_interval
        logger.info("Reconciler started (interval=%.1fs)", interval)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Reconcile pass failed")

    async def run_once(self, *, recover_creating: bool = False) -> ReconcileReport:
        """One pass over all reconciled instances.

        Args:
            recover_creating: Treat every CREATING instance as interrupted,
                regardless of age. Used for the startup pass.
        """
        start = time.monotonic()
        report = ReconcileReport()

        instances = await self._store.list_instances(sorted(RECONCILED_STATUSES))
        for instance in instances:
            customer_id = instance.customer_id
            try:
                async with self._locks.exclusive(customer_id):
                    current = await self._store.get(customer_id)
                    if current is None or current.status not in RECONCILED_STATUSES:
                        continue
                    report.checked += 1
                    if await self._reconcile(current, recover_creating):
                        report.corrected += 1
            except ConflictError:
                report.skipped.append(customer_id)
            except MediaHostError as exc:
                report.skipped.append(customer_id)
                logger.warning(
                    "Reconcile skipped customer %s: %s",
                    customer_id,
                    exc.message,
                    extra={"customer_id": customer_id, "error_code": exc.code.value},
                )

        await self._update_gauge()

        duration = time.monotonic() - start
        RECONCILE_DURATION.observe(duration)
        logger.info(
            "Reconcile complete: checked=%d corrected=%d skipped=%d",
            report.checked,
            report.corrected,
            len(report.skipped),
            extra={
                "event": LogEvent.RECONCILE_COMPLETE,
                "component": Component.RC,
                "duration_ms": round(duration * 1000, 1),
            },
        )
        return report

    async def _reconcile(self, instance: CustomerInstance, recover_creating: bool) -> bool:
        """Apply the correction table. Returns True when status changed."""
        snapshot = await self._runtime.inspect(instance.instance_name)
        status = instance.status
        running = snapshot is not None and snapshot.running

        match status:
            case LifecycleStatus.RUNNING if snapshot is None:
                logger.error(
                    "Container %s missing for RUNNING instance",
                    instance.instance_name,
                    extra={
                        "event": LogEvent.DRIFT_DETECTED,
                        "component": Component.RC,
                        "customer_id": instance.customer_id,
                        "alert": True,
                    },
                )
                await self._correct(
                    instance,
                    LifecycleStatus.ERROR,
                    last_error_code=ErrorCode.RUNTIME_INSTANCE_MISSING.value,
                    last_error=(
                        f"Container {instance.instance_name} no longer exists in the runtime"
                    ),
                )
                return True
            case LifecycleStatus.RUNNING if not running:
                await self._correct(instance, LifecycleStatus.STOPPED)
                return True
            case LifecycleStatus.RUNNING:
                await self._refresh(instance, snapshot)
                return False
            case LifecycleStatus.STOPPED if running:
                await self._correct(instance, LifecycleStatus.RUNNING, snapshot=snapshot)
                return True
            case LifecycleStatus.SUSPENDED if running:
                # Billing says this customer must not be served
                logger.warning(
                    "Stopping running container %s of SUSPENDED instance",
                    instance.instance_name,
                    extra={
                        "event": LogEvent.DRIFT_DETECTED,
                        "component": Component.RC,
                        "customer_id": instance.customer_id,
                    },
                )
                await self._runtime.stop(instance.instance_name)
                await self._store.log_activity(
                    instance.customer_id,
                    ActivityAction.DRIFT_CORRECTED,
                    {"status": str(status), "action": "stopped_container"},
                )
                return False
            case LifecycleStatus.CREATING if recover_creating or self._is_stale(instance):
                if running:
                    await self._correct(instance, LifecycleStatus.RUNNING, snapshot=snapshot)
                else:
                    await self._correct(
                        instance,
                        LifecycleStatus.ERROR,
                        last_error_code=ErrorCode.INTERRUPTED.value,
                        last_error="Provisioning was interrupted before completion",
                    )
                return True
        return False

    def _is_stale(self, instance: CustomerInstance) -> bool:
        updated_at = instance.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        age = datetime.now(UTC) - updated_at
        return age > timedelta(seconds=self._config.stale_creating_after)

    async def _refresh(self, instance: CustomerInstance, snapshot: RuntimeSnapshot) -> None:
        await self._store.update(
            instance.customer_id,
            runtime_instance_id=snapshot.runtime_instance_id,
            external_port=snapshot.external_port,
            last_health_check_at=utc_now(),
        )

    async def _correct(
        self,
        instance: CustomerInstance,
        to_status: LifecycleStatus,
        *,
        snapshot: RuntimeSnapshot | None = None,
        **values: object,
    ) -> None:
        from_status = instance.status
        if snapshot is not None and to_status == LifecycleStatus.RUNNING:
            values["runtime_instance_id"] = snapshot.runtime_instance_id
            values["external_port"] = snapshot.external_port
        else:
            values["runtime_instance_id"] = None
            values["external_port"] = None

        await self._store.update(
            instance.customer_id,
            status=to_status,
            last_health_check_at=utc_now(),
            **values,
        )
        LIFECYCLE_TRANSITIONS.labels(from_status, to_status).inc()
        DRIFT_CORRECTIONS.labels(from_status, to_status).inc()
        logger.warning(
            "Drift corrected for %s: %s -> %s",
            instance.instance_name,
            from_status,
            to_status,
            extra={
                "event": LogEvent.STATE_CHANGED,
                "component": Component.RC,
                "customer_id": instance.customer_id,
                "from_status": str(from_status),
                "to_status": str(to_status),
                "reason": "reconcile",
            },
        )
        await self._store.log_activity(
            instance.customer_id,
            ActivityAction.DRIFT_CORRECTED,
            {"from_status": str(from_status), "to_status": str(to_status)},
        )

    async def _update_gauge(self) -> None:
        counts = {status: 0 for status in LifecycleStatus if status != LifecycleStatus.DELETED}
        for instance in await self._store.list_instances():
            counts[LifecycleStatus(instance.status)] += 1
        for status, count in counts.items():
            INSTANCES.labels(status).set(count)
