"""Customer instance endpoints.

Endpoints (caller identified by X-Customer-Id):
- POST   /api/v1/instances            - Create the caller's instance
- GET    /api/v1/instances/me         - Status, live runtime state, usage
- POST   /api/v1/instances/me/start   - Start
- POST   /api/v1/instances/me/stop    - Stop
- DELETE /api/v1/instances/me         - Delete instance and storage
- GET    /api/v1/instances/me/logs    - Container log tail
"""

from datetime import datetime

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from mediahost.app.api.v1.dependencies import CustomerId, Lifecycle
from mediahost.core.errors import error_summary
from mediahost.core.models import CustomerInstance
from mediahost.services import DeleteReport, InstanceStatusView

router = APIRouter(prefix="/instances", tags=["instances"])


# =============================================================================
# Request/Response Models
# =============================================================================


class CreateInstanceRequest(BaseModel):
    """Create instance request."""

    workload_type: str = Field(min_length=1, max_length=32)
    subdomain_slug: str = Field(min_length=1, max_length=63)


class InstanceResponse(BaseModel):
    """Customer view of an instance.

    Raw error detail stays admin-only; customers get error_summary.
    """

    customer_id: str
    instance_name: str
    subdomain_slug: str
    workload_type: str
    status: str
    external_port: int | None
    cpu_limit: float
    memory_limit_mb: int
    storage_quota_gb: int
    storage_used_gb: float
    last_health_check_at: datetime | None
    error_summary: str | None
    created_at: datetime
    updated_at: datetime


class RuntimeResponse(BaseModel):
    running: bool
    status: str
    started_at: datetime | None


class InstanceStatusResponse(BaseModel):
    """Instance plus live runtime state and storage usage."""

    instance: InstanceResponse
    runtime: RuntimeResponse | None
    storage_used_bytes: int | None


class DeleteResponse(BaseModel):
    customer_id: str
    instance_name: str
    deleted: bool = True
    incomplete_steps: list[str]


# =============================================================================
# Helper
# =============================================================================


def to_instance_response(instance: CustomerInstance) -> InstanceResponse:
    return InstanceResponse(
        customer_id=instance.customer_id,
        instance_name=instance.instance_name,
        subdomain_slug=instance.subdomain_slug,
        workload_type=str(instance.workload_type),
        status=str(instance.status),
        external_port=instance.external_port,
        cpu_limit=instance.cpu_limit,
        memory_limit_mb=instance.memory_limit_mb,
        storage_quota_gb=instance.storage_quota_gb,
        storage_used_gb=instance.storage_used_gb,
        last_health_check_at=instance.last_health_check_at,
        error_summary=error_summary(instance.last_error_code),
        created_at=instance.created_at,
        updated_at=instance.updated_at,
    )


def to_runtime_response(view: InstanceStatusView) -> RuntimeResponse | None:
    if view.runtime is None:
        return None
    return RuntimeResponse(
        running=view.runtime.running,
        status=view.runtime.status,
        started_at=view.runtime.started_at,
    )


def to_delete_response(report: DeleteReport) -> DeleteResponse:
    return DeleteResponse(
        customer_id=report.customer_id,
        instance_name=report.instance_name,
        incomplete_steps=sorted(report.failed_steps),
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=InstanceResponse, status_code=201)
async def create_instance(
    request: CreateInstanceRequest,
    customer_id: CustomerId,
    lifecycle: Lifecycle,
) -> InstanceResponse:
    """Create the caller's media server.

    Provisioning failures are not HTTP errors: the instance comes back in
    ERROR with error_summary set, and create may be retried.
    """
    instance = await lifecycle.request_create(
        customer_id, request.workload_type, request.subdomain_slug
    )
    return to_instance_response(instance)


@router.get("/me", response_model=InstanceStatusResponse)
async def get_my_instance(
    customer_id: CustomerId,
    lifecycle: Lifecycle,
) -> InstanceStatusResponse:
    view = await lifecycle.get_status(customer_id)
    return InstanceStatusResponse(
        instance=to_instance_response(view.instance),
        runtime=to_runtime_response(view),
        storage_used_bytes=view.usage.used_bytes if view.usage else None,
    )


@router.post("/me/start", response_model=InstanceResponse)
async def start_my_instance(
    customer_id: CustomerId,
    lifecycle: Lifecycle,
) -> InstanceResponse:
    instance = await lifecycle.request_start(customer_id)
    return to_instance_response(instance)


@router.post("/me/stop", response_model=InstanceResponse)
async def stop_my_instance(
    customer_id: CustomerId,
    lifecycle: Lifecycle,
) -> InstanceResponse:
    instance = await lifecycle.request_stop(customer_id)
    return to_instance_response(instance)


@router.delete("/me", response_model=DeleteResponse)
async def delete_my_instance(
    customer_id: CustomerId,
    lifecycle: Lifecycle,
) -> DeleteResponse:
    """Delete the instance and its storage. Always removes the record."""
    report = await lifecycle.request_delete(customer_id, reason="customer")
    return to_delete_response(report)


@router.get("/me/logs", response_class=PlainTextResponse)
async def get_my_logs(
    customer_id: CustomerId,
    lifecycle: Lifecycle,
    tail: int | None = Query(default=None, ge=1),
) -> PlainTextResponse:
    logs = await lifecycle.get_logs(customer_id, tail)
    return PlainTextResponse(logs)
