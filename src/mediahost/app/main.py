"""FastAPI application entry point.

The lifespan is the composition root: every client, adapter and service is
constructed here and injected, then exposed to routes through app.state.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediahost import __version__
from mediahost.adapters import DockerContainerRuntime, SshfsMountManager, StorageBoxStorage
from mediahost.app.api.v1 import admin_router, instances_router, webhooks_router
from mediahost.app.api.v1.dependencies import is_admin_request
from mediahost.app.config import Settings, get_settings
from mediahost.app.logging import setup_logging
from mediahost.app.metrics import get_metrics_response
from mediahost.app.middleware import LoggingMiddleware
from mediahost.core.domain import ResourceNaming
from mediahost.core.errors import MediaHostError
from mediahost.core.interfaces import InstanceStore
from mediahost.core.locks import CustomerLocks
from mediahost.core.logging_schema import LogEvent
from mediahost.infra import (
    CommandRunner,
    ContainerAPI,
    DockerClient,
    ImageAPI,
    RemoteShell,
    SqlInstanceStore,
    VolumeAPI,
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)
from mediahost.services import BillingEventHandler, HealthReconciler, LifecycleService

setup_logging()
logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Service handles shared by all requests."""

    store: InstanceStore
    lifecycle: LifecycleService
    billing: BillingEventHandler
    reconciler: HealthReconciler
    docker: DockerClient | None = None


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    docker: DockerClient,
) -> Services:
    """Wire adapters and services from settings.

    All lifecycle transitions and reconcile passes share one CustomerLocks.
    """
    store = SqlInstanceStore(session_factory)
    locks = CustomerLocks()

    storage = StorageBoxStorage(
        RemoteShell(settings.storage_box), settings.storage_box, settings.retry
    )
    mounts = SshfsMountManager(settings.mount, settings.storage_box, CommandRunner())
    runtime = DockerContainerRuntime(
        ContainerAPI(docker),
        ImageAPI(docker),
        VolumeAPI(docker),
        settings.runtime,
        settings.docker,
        settings.retry,
    )
    naming = ResourceNaming(settings.runtime.resource_prefix, settings.runtime.domain)

    lifecycle = LifecycleService(
        store, storage, mounts, runtime, locks, settings.lifecycle, naming
    )
    return Services(
        store=store,
        lifecycle=lifecycle,
        billing=BillingEventHandler(lifecycle, store),
        reconciler=HealthReconciler(store, runtime, locks, settings.lifecycle),
        docker=docker,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()

    await init_db(settings.database)
    docker = DockerClient(settings.docker)
    services = build_services(settings, get_session_factory(), docker)
    app.state.services = services

    if settings.lifecycle.reconcile_on_startup:
        # Crash recovery: CREATING rows left by a previous process
        await services.reconciler.run_once(recover_creating=True)

    reconcile_task = asyncio.create_task(
        services.reconciler.run_forever(settings.lifecycle.reconcile_interval)
    )

    logger.info("Starting application", extra={"event": LogEvent.APP_STARTED})

    yield

    logger.info("Shutting down application", extra={"event": LogEvent.APP_STOPPED})
    reconcile_task.cancel()
    try:
        await reconcile_task
    except asyncio.CancelledError:
        pass

    await docker.close()
    await close_db()


app = FastAPI(title="mediahost", version=__version__, lifespan=lifespan)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(MediaHostError)
async def mediahost_error_handler(request: Request, exc: MediaHostError) -> JSONResponse:
    """Handle MediaHostError exceptions.

    Raw detail (remote stderr, daemon messages) is only shown to admins.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(include_detail=is_admin_request(request)).model_dump(),
    )


app.include_router(instances_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


async def _check_service(check_fn: Callable[[], Awaitable[None]]) -> str:
    """Check service health and return status string."""
    try:
        await check_fn()
        return "connected"
    except RuntimeError:
        return "not initialized"
    except Exception as e:
        return f"error: {e}"


async def _check_postgres() -> None:
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


def _docker_check(request: Request) -> Callable[[], Awaitable[None]]:
    async def check() -> None:
        services: Services | None = getattr(request.app.state, "services", None)
        if services is None or services.docker is None:
            raise RuntimeError("Docker client not initialized")
        if not await services.docker.ping():
            raise ConnectionError("ping failed")

    return check


@app.get("/health")
async def health(request: Request):
    results = await asyncio.gather(
        _check_service(_check_postgres),
        _check_service(_docker_check(request)),
    )

    services = {
        "postgres": results[0],
        "docker": results[1],
    }

    is_degraded = any(s != "connected" for s in services.values())

    return {
        "status": "degraded" if is_degraded else "ok",
        "version": __version__,
        "services": services,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    if not get_settings().metrics.enabled:
        return JSONResponse(status_code=404, content={"detail": "Not Found"})
    return get_metrics_response()
