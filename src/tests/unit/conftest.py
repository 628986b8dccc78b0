"""Shared fixtures for mediahost unit tests.

Lifecycle, billing and reconciler tests run against the fakes in fakes.py
(no SSH, sshfs or Docker) and the real SqlInstanceStore on in-memory SQLite.
"""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import mediahost.core.models  # noqa: F401  (registers tables)
from mediahost.app.config import LifecycleConfig
from mediahost.core.domain import ResourceNaming
from mediahost.core.locks import CustomerLocks
from mediahost.infra.store import SqlInstanceStore
from mediahost.services import BillingEventHandler, HealthReconciler, LifecycleService
from tests.unit.fakes import FakeMounts, FakeRuntime, FakeStorage


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory SQLite shared across sessions via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SqlInstanceStore:
    return SqlInstanceStore(session_factory)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def mounts() -> FakeMounts:
    return FakeMounts()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def locks() -> CustomerLocks:
    return CustomerLocks()


@pytest.fixture
def lifecycle_config() -> LifecycleConfig:
    """Fast health polling for tests."""
    return LifecycleConfig(
        health_check_interval=0.0,
        health_check_attempts=3,
        stale_creating_after=600.0,
    )


@pytest.fixture
def naming() -> ResourceNaming:
    return ResourceNaming("media-", "media.example.com")


@pytest.fixture
def lifecycle(
    store: SqlInstanceStore,
    storage: FakeStorage,
    mounts: FakeMounts,
    runtime: FakeRuntime,
    locks: CustomerLocks,
    lifecycle_config: LifecycleConfig,
    naming: ResourceNaming,
) -> LifecycleService:
    return LifecycleService(
        store, storage, mounts, runtime, locks, lifecycle_config, naming
    )


@pytest.fixture
def billing(lifecycle: LifecycleService, store: SqlInstanceStore) -> BillingEventHandler:
    return BillingEventHandler(lifecycle, store)


@pytest.fixture
def reconciler(
    store: SqlInstanceStore,
    runtime: FakeRuntime,
    locks: CustomerLocks,
    lifecycle_config: LifecycleConfig,
) -> HealthReconciler:
    return HealthReconciler(store, runtime, locks, lifecycle_config)
