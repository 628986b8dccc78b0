"""Tests for HealthReconciler drift correction."""

from datetime import timedelta

import pytest

from mediahost.core.domain import LifecycleStatus, WorkloadType
from mediahost.core.errors import ErrorCode, RuntimeUnavailableError
from mediahost.core.interfaces import RuntimeSnapshot
from mediahost.core.locks import CustomerLocks
from mediahost.core.models import CustomerInstance, utc_now
from mediahost.infra.store import SqlInstanceStore
from mediahost.services import HealthReconciler, LifecycleService
from tests.unit.fakes import FakeRuntime

CUSTOMER = "cust1"
NAME = "media-cust1_tv"


@pytest.fixture
async def running(lifecycle: LifecycleService):
    return await lifecycle.request_create(CUSTOMER, "plex", "tv")


async def _add_creating(store: SqlInstanceStore, age: timedelta) -> CustomerInstance:
    """A CREATING row as left behind by an interrupted process."""
    return await store.add(
        CustomerInstance(
            customer_id=CUSTOMER,
            instance_name=NAME,
            subdomain_slug="tv",
            workload_type=WorkloadType.PLEX,
            status=LifecycleStatus.CREATING,
            cpu_limit=0.25,
            memory_limit_mb=800,
            storage_quota_gb=2048,
            updated_at=utc_now() - age,
        )
    )


def _running_snapshot(name: str = NAME) -> RuntimeSnapshot:
    return RuntimeSnapshot(
        instance_name=name,
        runtime_instance_id="abc123",
        running=True,
        status="running",
        ports={"32400/tcp": 50000},
    )


class TestReconcile:
    """Correction table."""

    async def test_running_without_container_becomes_error(
        self,
        reconciler: HealthReconciler,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        del runtime.containers[NAME]

        report = await reconciler.run_once()

        assert report.checked == 1
        assert report.corrected == 1
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.ERROR
        assert instance.last_error_code == ErrorCode.RUNTIME_INSTANCE_MISSING.value
        assert instance.external_port is None

    async def test_running_with_exited_container_becomes_stopped(
        self,
        reconciler: HealthReconciler,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        await runtime.stop(NAME)

        await reconciler.run_once()

        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.STOPPED
        assert instance.runtime_instance_id is None

    async def test_running_refreshes_port(
        self,
        reconciler: HealthReconciler,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        """Port changes after a daemon restart are picked up."""
        runtime.containers[NAME] = _running_snapshot()

        report = await reconciler.run_once()

        assert report.corrected == 0
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.RUNNING
        assert instance.external_port == 50000
        assert instance.runtime_instance_id == "abc123"

    async def test_stopped_but_running_becomes_running(
        self,
        reconciler: HealthReconciler,
        lifecycle: LifecycleService,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        await lifecycle.request_stop(CUSTOMER)
        runtime.containers[NAME] = _running_snapshot()

        await reconciler.run_once()

        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.RUNNING
        assert instance.external_port == 50000

    async def test_suspended_container_is_stopped(
        self,
        reconciler: HealthReconciler,
        lifecycle: LifecycleService,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        """A suspended customer is never served."""
        await lifecycle.suspend(CUSTOMER)
        runtime.containers[NAME] = _running_snapshot()

        await reconciler.run_once()

        assert runtime.containers[NAME].running is False
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.SUSPENDED

    async def test_stale_creating_becomes_error(
        self, reconciler: HealthReconciler, store: SqlInstanceStore
    ) -> None:
        await _add_creating(store, timedelta(hours=1))

        report = await reconciler.run_once()

        assert report.corrected == 1
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.ERROR
        assert instance.last_error_code == ErrorCode.INTERRUPTED.value

    async def test_stale_creating_with_container_becomes_running(
        self, reconciler: HealthReconciler, runtime: FakeRuntime, store: SqlInstanceStore
    ) -> None:
        await _add_creating(store, timedelta(hours=1))
        runtime.containers[NAME] = _running_snapshot()

        await reconciler.run_once()

        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.RUNNING
        assert instance.external_port == 50000

    async def test_recent_creating_left_alone(
        self, reconciler: HealthReconciler, store: SqlInstanceStore
    ) -> None:
        await _add_creating(store, timedelta(seconds=5))

        report = await reconciler.run_once()

        assert report.corrected == 0
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.CREATING

    async def test_startup_pass_recovers_recent_creating(
        self, reconciler: HealthReconciler, store: SqlInstanceStore
    ) -> None:
        """After a restart nothing is in flight, so age does not matter."""
        await _add_creating(store, timedelta(seconds=5))

        await reconciler.run_once(recover_creating=True)

        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.ERROR

    async def test_busy_customer_skipped(
        self,
        reconciler: HealthReconciler,
        locks: CustomerLocks,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        del runtime.containers[NAME]

        async with locks.exclusive(CUSTOMER):
            report = await reconciler.run_once()

        assert report.skipped == [CUSTOMER]
        assert report.checked == 0
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.RUNNING

    async def test_runtime_outage_skips(
        self,
        reconciler: HealthReconciler,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
        running,
    ) -> None:
        """An unreachable runtime is not evidence of drift."""
        runtime.fail_inspect = RuntimeUnavailableError("socket closed")

        report = await reconciler.run_once()

        assert report.skipped == [CUSTOMER]
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.RUNNING

    async def test_error_instances_not_touched(
        self,
        reconciler: HealthReconciler,
        lifecycle: LifecycleService,
        runtime: FakeRuntime,
        store: SqlInstanceStore,
    ) -> None:
        runtime.crash_on_start = True
        await lifecycle.request_create(CUSTOMER, "plex", "tv")
        runtime.containers[NAME] = _running_snapshot()

        report = await reconciler.run_once()

        assert report.checked == 0
        instance = await store.get(CUSTOMER)
        assert instance.status == LifecycleStatus.ERROR
