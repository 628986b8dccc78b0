"""Lifecycle state machine for customer instances.

States:
    CREATING -> RUNNING <-> STOPPED
    RUNNING/STOPPED/CREATING -> SUSPENDED -> RUNNING
    any -> ERROR
    any -> DELETED (row removed)

Every operation runs under the customer's lock (CustomerLocks.exclusive) and
persists the record after each step, so a crash leaves a status the health
reconciler can act on.

Creation is fail-closed: the first failing step leaves the instance in
ERROR with last_error_code set, and nothing already allocated is rolled
back. Deletion is fail-open: every teardown step is attempted, failures are
reported and the record is removed anyway.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from mediahost.app.config import LifecycleConfig
from mediahost.app.metrics.collector import (
    LIFECYCLE_OPERATION_DURATION,
    LIFECYCLE_OPERATION_FAILURES,
    LIFECYCLE_TRANSITIONS,
    TEARDOWN_STEP_FAILURES,
)
from mediahost.core.domain import (
    STARTABLE_STATUSES,
    STOPPABLE_STATUSES,
    SUSPENDABLE_STATUSES,
    ActivityAction,
    LifecycleStatus,
    ResourceNaming,
    WorkloadType,
    normalize_slug,
    parse_workload_type,
    validate_customer_id,
)
from mediahost.core.errors import (
    ConflictError,
    InternalError,
    InvalidRequestError,
    MediaHostError,
    NotFoundError,
    RuntimeCreateFailedError,
    StorageOperationFailedError,
)
from mediahost.core.interfaces import (
    BackupInfo,
    ContainerRuntime,
    InstanceSpec,
    InstanceStore,
    MountManager,
    RemoteStorage,
    RuntimeSnapshot,
    StorageUsage,
)
from mediahost.core.locks import CustomerLocks
from mediahost.core.logging_schema import Component, LogEvent
from mediahost.core.models import ActivityLog, CustomerInstance, utc_now

logger = logging.getLogger(__name__)

RESTARTABLE_STATUSES = frozenset({
    LifecycleStatus.RUNNING,
    LifecycleStatus.STOPPED,
    LifecycleStatus.ERROR,
})


@dataclass
class DeleteReport:
    """Outcome of a delete. failed_steps maps step name to error detail."""

    customer_id: str
    instance_name: str
    failed_steps: dict[str, str] = field(default_factory=dict)

    @property
    def clean(self) -> bool:
        return not self.failed_steps


@dataclass
class InstanceStatusView:
    """Persisted record plus live runtime state and storage usage."""

    instance: CustomerInstance
    runtime: RuntimeSnapshot | None
    usage: StorageUsage | None
    runtime_error_code: str | None = None


class LifecycleService:
    """Drives storage, mount and runtime adapters through instance transitions."""

    def __init__(
        self,
        store: InstanceStore,
        storage: RemoteStorage,
        mounts: MountManager,
        runtime: ContainerRuntime,
        locks: CustomerLocks,
        config: LifecycleConfig,
        naming: ResourceNaming,
    ) -> None:
        self._store = store
        self._storage = storage
        self._mounts = mounts
        self._runtime = runtime
        self._locks = locks
        self._config = config
        self._naming = naming

    # =========================================================================
    # Queries
    # =========================================================================

    async def find(self, customer_id: str) -> CustomerInstance | None:
        return await self._store.get(customer_id)

    async def get_instance(self, customer_id: str) -> CustomerInstance:
        instance = await self._store.get(customer_id)
        if instance is None:
            raise NotFoundError()
        return instance

    async def list_instances(
        self, status: LifecycleStatus | None = None
    ) -> list[CustomerInstance]:
        return await self._store.list_instances([status] if status else None)

    async def list_activity(self, customer_id: str, limit: int = 50) -> list[ActivityLog]:
        return await self._store.list_activity(customer_id, limit)

    async def find_orphaned_storage(self) -> list[str]:
        """Customer directories on the storage host with no instance record."""
        on_host = await self._storage.list_storage()
        known = {i.customer_id for i in await self._store.list_instances()}
        return [customer_id for customer_id in on_host if customer_id not in known]

    async def get_status(self, customer_id: str) -> InstanceStatusView:
        """Record, live runtime snapshot and freshly measured storage usage."""
        instance = await self.get_instance(customer_id)

        snapshot = None
        runtime_error_code = None
        try:
            snapshot = await self._runtime.inspect(instance.instance_name)
        except MediaHostError as exc:
            runtime_error_code = exc.code.value
            logger.warning(
                "Runtime inspect failed for customer %s: %s",
                customer_id,
                exc.message,
                extra={"customer_id": customer_id, "error_code": exc.code.value},
            )

        usage = None
        if instance.remote_storage_path:
            usage = await self._storage.get_usage(customer_id)
            instance = await self._store.update(customer_id, storage_used_gb=usage.used_gb)

        return InstanceStatusView(
            instance=instance,
            runtime=snapshot,
            usage=usage,
            runtime_error_code=runtime_error_code,
        )

    async def get_logs(self, customer_id: str, tail_lines: int | None = None) -> str:
        tail = tail_lines if tail_lines is not None else self._config.default_log_tail
        if not 1 <= tail <= self._config.max_log_tail:
            raise InvalidRequestError(
                f"tail_lines must be between 1 and {self._config.max_log_tail}"
            )
        instance = await self.get_instance(customer_id)
        return await self._runtime.logs(instance.instance_name, tail)

    # =========================================================================
    # Create
    # =========================================================================

    async def request_create(
        self, customer_id: str, workload_type: str, subdomain_slug: str
    ) -> CustomerInstance:
        """Provision storage, mount and container for a customer.

        Returns the instance in RUNNING, or in ERROR with last_error_code set
        when a provisioning step failed.

        Raises:
            ConflictError: Customer already has an instance, slug taken, or an
                operation for this customer is in progress
            InvalidWorkloadTypeError: Unknown workload type
            InvalidRequestError: Malformed customer id or slug
        """
        validate_customer_id(customer_id)
        workload = parse_workload_type(workload_type)
        slug = normalize_slug(subdomain_slug)

        async with self._locks.exclusive(customer_id):
            with LIFECYCLE_OPERATION_DURATION.labels("create").time():
                instance = await self._begin_create(customer_id, workload, slug)
                return await self._provision(instance)

    async def _begin_create(
        self, customer_id: str, workload: WorkloadType, slug: str
    ) -> CustomerInstance:
        existing = await self._store.get(customer_id)
        if existing is not None:
            if existing.status != LifecycleStatus.ERROR:
                raise ConflictError(
                    f"Customer already has an instance ({existing.status})"
                )
            if existing.subdomain_slug != slug or existing.workload_type != workload:
                raise ConflictError(
                    "Delete the failed instance before creating one with a "
                    "different subdomain or workload"
                )
            return await self._transition(
                existing,
                LifecycleStatus.CREATING,
                reason="retry_create",
                last_error_code=None,
                last_error=None,
            )

        if await self._store.find_by_slug(slug) is not None:
            raise ConflictError(f"Subdomain {slug!r} is already taken")

        instance = await self._store.add(
            CustomerInstance(
                customer_id=customer_id,
                instance_name=self._naming.instance_name(customer_id, slug),
                subdomain_slug=slug,
                workload_type=workload,
                status=LifecycleStatus.CREATING,
                cpu_limit=self._config.default_cpu_limit,
                memory_limit_mb=self._config.default_memory_limit_mb,
                storage_quota_gb=self._config.default_storage_quota_gb,
            )
        )
        LIFECYCLE_TRANSITIONS.labels("NEW", LifecycleStatus.CREATING).inc()
        logger.info(
            "Instance %s registered for customer %s",
            instance.instance_name,
            customer_id,
            extra={
                "event": LogEvent.OPERATION_STARTED,
                "component": Component.LC,
                "customer_id": customer_id,
                "instance_name": instance.instance_name,
                "workload_type": workload.value,
            },
        )
        return instance

    async def _provision(self, instance: CustomerInstance) -> CustomerInstance:
        customer_id = instance.customer_id
        try:
            allocation = await self._storage.create_storage(
                customer_id, instance.storage_quota_gb
            )
            if not allocation.remote_path:
                raise StorageOperationFailedError("Storage allocation returned an empty path")
            instance = await self._store.update(
                customer_id, remote_storage_path=allocation.remote_path
            )

            mount = await self._mounts.mount(customer_id, allocation.remote_path)
            instance = await self._store.update(customer_id, local_mount_path=mount.local_path)

            await self._runtime.create(self._spec(instance))
            snapshot = await self._wait_until_running(instance.instance_name)
        except MediaHostError as exc:
            return await self._fail(instance, "create", exc)
        except Exception as exc:
            logger.exception("Unexpected error while provisioning customer %s", customer_id)
            await self._fail(instance, "create", InternalError(f"{type(exc).__name__}: {exc}"))
            raise

        instance = await self._mark_running(instance, snapshot, reason="create")
        await self._store.log_activity(
            customer_id,
            ActivityAction.CONTAINER_CREATED,
            {
                "instance_name": instance.instance_name,
                "workload_type": str(instance.workload_type),
                "subdomain_slug": instance.subdomain_slug,
                "external_port": instance.external_port,
            },
        )
        return instance

    # =========================================================================
    # Start / Stop / Restart
    # =========================================================================

    async def request_start(self, customer_id: str) -> CustomerInstance:
        """Start a STOPPED or ERROR instance. RUNNING is a no-op."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            if instance.status == LifecycleStatus.RUNNING:
                return instance
            if instance.status not in STARTABLE_STATUSES:
                raise ConflictError(f"Cannot start an instance in {instance.status} state")
            self._require_provisioned(instance)

            with LIFECYCLE_OPERATION_DURATION.labels("start").time():
                try:
                    instance = await self._bring_up(instance, "start")
                except MediaHostError as exc:
                    await self._fail(instance, "start", exc)
                    raise

            await self._store.log_activity(
                customer_id, ActivityAction.CONTAINER_STARTED, {"external_port": instance.external_port}
            )
            return instance

    async def request_stop(self, customer_id: str) -> CustomerInstance:
        """Stop a RUNNING or ERROR instance. STOPPED is a no-op."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            if instance.status == LifecycleStatus.STOPPED:
                return instance
            if instance.status not in STOPPABLE_STATUSES:
                raise ConflictError(f"Cannot stop an instance in {instance.status} state")
            # A failed create stays in ERROR so it can still be retried
            self._require_provisioned(instance)

            with LIFECYCLE_OPERATION_DURATION.labels("stop").time():
                try:
                    await self._runtime.stop(instance.instance_name)
                except MediaHostError as exc:
                    await self._fail(instance, "stop", exc)
                    raise

                instance = await self._transition(
                    instance,
                    LifecycleStatus.STOPPED,
                    reason="stop",
                    last_health_check_at=utc_now(),
                    last_error_code=None,
                    last_error=None,
                )

            await self._store.log_activity(customer_id, ActivityAction.CONTAINER_STOPPED)
            return instance

    async def request_restart(self, customer_id: str) -> CustomerInstance:
        """Stop then start (admin)."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            if instance.status not in RESTARTABLE_STATUSES:
                raise ConflictError(f"Cannot restart an instance in {instance.status} state")
            self._require_provisioned(instance)

            with LIFECYCLE_OPERATION_DURATION.labels("restart").time():
                try:
                    await self._runtime.stop(instance.instance_name)
                    instance = await self._bring_up(instance, "restart")
                except MediaHostError as exc:
                    await self._fail(instance, "restart", exc)
                    raise

            await self._store.log_activity(customer_id, ActivityAction.CONTAINER_RESTARTED)
            return instance

    # =========================================================================
    # Suspend / Resume
    # =========================================================================

    async def suspend(self, customer_id: str, reason: str = "admin") -> CustomerInstance:
        """Stop the container and mark SUSPENDED. Storage stays in place."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            return await self._suspend_locked(instance, reason)

    async def _suspend_locked(self, instance: CustomerInstance, reason: str) -> CustomerInstance:
        if instance.status == LifecycleStatus.SUSPENDED:
            return instance
        if instance.status not in SUSPENDABLE_STATUSES:
            raise ConflictError(f"Cannot suspend an instance in {instance.status} state")

        try:
            await self._runtime.stop(instance.instance_name)
        except MediaHostError as exc:
            # The reconciler stops SUSPENDED instances it finds running
            LIFECYCLE_OPERATION_FAILURES.labels("suspend", exc.code.value).inc()
            logger.warning(
                "Stop during suspend failed for customer %s, suspending anyway: %s",
                instance.customer_id,
                exc.message,
                extra={"customer_id": instance.customer_id, "error_code": exc.code.value},
            )

        instance = await self._transition(instance, LifecycleStatus.SUSPENDED, reason=reason)
        await self._store.log_activity(
            instance.customer_id, ActivityAction.CONTAINER_SUSPENDED, {"reason": reason}
        )
        return instance

    async def resume(self, customer_id: str) -> CustomerInstance:
        """Bring a SUSPENDED instance back to RUNNING. RUNNING is a no-op."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            if instance.status == LifecycleStatus.RUNNING:
                return instance
            if instance.status != LifecycleStatus.SUSPENDED:
                raise ConflictError(f"Cannot resume an instance in {instance.status} state")
            self._require_provisioned(instance)

            with LIFECYCLE_OPERATION_DURATION.labels("resume").time():
                try:
                    instance = await self._bring_up(instance, "resume")
                except MediaHostError as exc:
                    await self._fail(instance, "resume", exc)
                    raise

            await self._store.log_activity(customer_id, ActivityAction.CONTAINER_RESUMED)
            return instance

    # =========================================================================
    # Delete
    # =========================================================================

    async def request_delete(self, customer_id: str, reason: str = "customer") -> DeleteReport:
        """Tear down container, mount and storage, then remove the record."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            return await self._delete_locked(instance, reason)

    async def terminate(
        self, customer_id: str, reason: str = "subscription_cancelled"
    ) -> DeleteReport | None:
        """Suspend then delete in one critical section. Missing is a no-op."""
        async with self._locks.exclusive(customer_id):
            instance = await self._store.get(customer_id)
            if instance is None:
                return None
            if instance.status in SUSPENDABLE_STATUSES:
                instance = await self._suspend_locked(instance, reason)
            return await self._delete_locked(instance, reason)

    async def _delete_locked(self, instance: CustomerInstance, reason: str) -> DeleteReport:
        customer_id = instance.customer_id
        name = instance.instance_name
        remote_path = instance.remote_storage_path
        local_path = instance.local_mount_path
        report = DeleteReport(customer_id=customer_id, instance_name=name)

        steps = (
            ("stop", lambda: self._runtime.stop(name)),
            ("remove", lambda: self._runtime.remove(name)),
            ("unmount", lambda: self._mounts.unmount(customer_id)),
            ("delete_storage", lambda: self._storage.delete_storage(customer_id)),
        )

        with LIFECYCLE_OPERATION_DURATION.labels("delete").time():
            for step, action in steps:
                try:
                    await action()
                except Exception as exc:
                    detail = exc.message if isinstance(exc, MediaHostError) else repr(exc)
                    report.failed_steps[step] = detail
                    TEARDOWN_STEP_FAILURES.labels(step).inc()
                    logger.warning(
                        "Delete step %s failed for customer %s: %s",
                        step,
                        customer_id,
                        detail,
                        exc_info=not isinstance(exc, MediaHostError),
                        extra={
                            "event": LogEvent.TEARDOWN_STEP_FAILED,
                            "customer_id": customer_id,
                            "step": step,
                        },
                    )
                    continue
                instance = await self._after_teardown_step(instance, step)

            await self._store.remove(customer_id)

        LIFECYCLE_TRANSITIONS.labels(instance.status, LifecycleStatus.DELETED).inc()
        logger.info(
            "Instance %s deleted (%s)",
            name,
            reason,
            extra={
                "event": LogEvent.STATE_CHANGED,
                "component": Component.LC,
                "customer_id": customer_id,
                "from_status": str(instance.status),
                "to_status": LifecycleStatus.DELETED.value,
                "reason": reason,
            },
        )
        await self._store.log_activity(
            customer_id,
            ActivityAction.CONTAINER_DELETED,
            {"instance_name": name, "reason": reason, "failed_steps": sorted(report.failed_steps)},
        )

        if report.failed_steps:
            logger.warning(
                "Instance %s deleted with orphaned resources: %s",
                name,
                ", ".join(sorted(report.failed_steps)),
                extra={
                    "event": LogEvent.ORPHANED_RESOURCES,
                    "customer_id": customer_id,
                    "remote_path": remote_path,
                    "local_path": local_path,
                },
            )
            await self._store.log_activity(
                customer_id,
                ActivityAction.ORPHANED_RESOURCES,
                {
                    "instance_name": name,
                    "remote_path": remote_path,
                    "local_path": local_path,
                    "failed_steps": report.failed_steps,
                },
            )
        return report

    async def _after_teardown_step(
        self, instance: CustomerInstance, step: str
    ) -> CustomerInstance:
        """Persist what a successful teardown step released."""
        match step:
            case "stop" | "remove":
                if instance.status == LifecycleStatus.RUNNING:
                    return await self._transition(
                        instance, LifecycleStatus.STOPPED, reason="delete"
                    )
                return instance
            case "unmount":
                return await self._store.update(instance.customer_id, local_mount_path=None)
            case "delete_storage":
                return await self._store.update(
                    instance.customer_id, remote_storage_path=None, storage_used_gb=0.0
                )
        return instance

    # =========================================================================
    # Backup
    # =========================================================================

    async def create_backup(self, customer_id: str, label: str | None = None) -> BackupInfo:
        """Archive the customer's storage on the storage host (admin)."""
        async with self._locks.exclusive(customer_id):
            instance = await self.get_instance(customer_id)
            self._require_provisioned(instance)
            backup = await self._storage.create_backup(customer_id, label)
            await self._store.log_activity(
                customer_id,
                ActivityAction.BACKUP_CREATED,
                {"backup_name": backup.backup_name, "backup_path": backup.backup_path},
            )
            return backup

    # =========================================================================
    # Helpers
    # =========================================================================

    def _spec(self, instance: CustomerInstance) -> InstanceSpec:
        if not instance.local_mount_path:
            raise ConflictError("Storage is not mounted for this instance")
        return InstanceSpec(
            instance_name=instance.instance_name,
            customer_id=instance.customer_id,
            workload_type=WorkloadType(instance.workload_type),
            subdomain_slug=instance.subdomain_slug,
            cpu_limit=instance.cpu_limit,
            memory_limit_mb=instance.memory_limit_mb,
            mount_path=instance.local_mount_path,
        )

    @staticmethod
    def _require_provisioned(instance: CustomerInstance) -> None:
        if not instance.remote_storage_path:
            raise ConflictError(
                "Instance storage was never provisioned; retry create instead"
            )

    async def _bring_up(self, instance: CustomerInstance, operation: str) -> CustomerInstance:
        """Ensure the mount, then start or recreate the container."""
        customer_id = instance.customer_id
        name = instance.instance_name

        # No container may start without its media mount
        mount = await self._mounts.mount(customer_id, instance.remote_storage_path)
        if mount.local_path != instance.local_mount_path:
            instance = await self._store.update(customer_id, local_mount_path=mount.local_path)

        snapshot = await self._runtime.inspect(name)
        if snapshot is None:
            logger.info(
                "Container %s missing, recreating from existing mount",
                name,
                extra={"customer_id": customer_id, "operation": operation},
            )
            await self._runtime.create(self._spec(instance))
        elif not snapshot.running:
            await self._runtime.start(name)

        running = await self._wait_until_running(name)
        return await self._mark_running(instance, running, reason=operation)

    async def _wait_until_running(self, instance_name: str) -> RuntimeSnapshot:
        """Poll inspect until running with a published port."""
        attempts = max(1, self._config.health_check_attempts)
        last_status = "missing"
        for attempt in range(attempts):
            snapshot = await self._runtime.inspect(instance_name)
            if snapshot is None:
                raise RuntimeCreateFailedError(f"Container {instance_name} disappeared")
            if snapshot.running and snapshot.external_port is not None:
                return snapshot
            last_status = snapshot.status
            if attempt + 1 < attempts:
                await asyncio.sleep(self._config.health_check_interval)
        raise RuntimeCreateFailedError(
            f"Container {instance_name} not running after {attempts} checks "
            f"(last status: {last_status})"
        )

    async def _mark_running(
        self, instance: CustomerInstance, snapshot: RuntimeSnapshot, reason: str
    ) -> CustomerInstance:
        return await self._transition(
            instance,
            LifecycleStatus.RUNNING,
            reason=reason,
            runtime_instance_id=snapshot.runtime_instance_id,
            external_port=snapshot.external_port,
            last_health_check_at=utc_now(),
            last_error_code=None,
            last_error=None,
        )

    async def _transition(
        self,
        instance: CustomerInstance,
        to_status: LifecycleStatus,
        *,
        reason: str,
        **values: object,
    ) -> CustomerInstance:
        """Persist a status change. Leaving RUNNING clears the runtime binding."""
        from_status = instance.status
        if to_status != LifecycleStatus.RUNNING:
            values["runtime_instance_id"] = None
            values["external_port"] = None

        updated = await self._store.update(instance.customer_id, status=to_status, **values)

        if from_status != to_status:
            LIFECYCLE_TRANSITIONS.labels(from_status, to_status).inc()
        logger.info(
            "Instance %s: %s -> %s (%s)",
            instance.instance_name,
            from_status,
            to_status,
            reason,
            extra={
                "event": LogEvent.STATE_CHANGED,
                "component": Component.LC,
                "customer_id": instance.customer_id,
                "from_status": str(from_status),
                "to_status": str(to_status),
                "reason": reason,
            },
        )
        return updated

    async def _fail(
        self, instance: CustomerInstance, operation: str, exc: MediaHostError
    ) -> CustomerInstance:
        LIFECYCLE_OPERATION_FAILURES.labels(operation, exc.code.value).inc()
        logger.error(
            "%s failed for customer %s: %s",
            operation,
            instance.customer_id,
            exc.message,
            extra={
                "event": LogEvent.OPERATION_FAILED,
                "component": Component.LC,
                "customer_id": instance.customer_id,
                "operation": operation,
                "error_code": exc.code.value,
            },
        )
        updated = await self._transition(
            instance,
            LifecycleStatus.ERROR,
            reason=operation,
            last_error_code=exc.code.value,
            last_error=exc.message,
        )
        await self._store.log_activity(
            instance.customer_id,
            ActivityAction.CONTAINER_ERROR,
            {"operation": operation, "error_code": exc.code.value},
        )
        return updated
