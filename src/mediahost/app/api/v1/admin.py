"""Admin endpoints (X-Customer-Role: admin).

Endpoints:
- GET    /api/v1/admin/instances                          - List (optional status filter)
- GET    /api/v1/admin/instances/{customer_id}            - Status with raw error detail
- POST   /api/v1/admin/instances/{customer_id}/suspend    - Suspend
- POST   /api/v1/admin/instances/{customer_id}/resume     - Resume
- POST   /api/v1/admin/instances/{customer_id}/restart    - Stop + start
- DELETE /api/v1/admin/instances/{customer_id}            - Delete
- POST   /api/v1/admin/instances/{customer_id}/backups    - Archive storage
- GET    /api/v1/admin/instances/{customer_id}/activity   - Activity history
- POST   /api/v1/admin/reconcile                          - Run a reconcile pass now
- GET    /api/v1/admin/storage/orphans                    - Storage without an instance
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from mediahost.app.api.v1.dependencies import AdminCaller, Lifecycle, Reconciler
from mediahost.app.api.v1.instances import (
    DeleteResponse,
    InstanceResponse,
    RuntimeResponse,
    to_delete_response,
    to_instance_response,
    to_runtime_response,
)
from mediahost.core.domain import LifecycleStatus
from mediahost.core.models import CustomerInstance

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Request/Response Models
# =============================================================================


class AdminInstanceResponse(InstanceResponse):
    """Instance with internal fields and raw error detail."""

    id: str
    runtime_instance_id: str | None
    local_mount_path: str | None
    remote_storage_path: str | None
    last_error_code: str | None
    last_error: str | None


class AdminInstanceListResponse(BaseModel):
    items: list[AdminInstanceResponse]
    total: int


class AdminStatusResponse(BaseModel):
    instance: AdminInstanceResponse
    runtime: RuntimeResponse | None
    runtime_ports: dict[str, int]
    runtime_error_code: str | None
    storage_used_bytes: int | None


class SuspendRequest(BaseModel):
    reason: str = Field(default="admin", min_length=1, max_length=64)


class BackupRequest(BaseModel):
    label: str | None = Field(default=None, max_length=100)


class BackupResponse(BaseModel):
    customer_id: str
    backup_name: str
    backup_path: str
    created_at: datetime


class ActivityResponse(BaseModel):
    id: str
    action: str
    detail: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    checked: int
    corrected: int
    skipped: list[str]


class OrphanedStorageResponse(BaseModel):
    customer_ids: list[str]


# =============================================================================
# Helper
# =============================================================================


def to_admin_response(instance: CustomerInstance) -> AdminInstanceResponse:
    return AdminInstanceResponse(
        **to_instance_response(instance).model_dump(),
        id=instance.id,
        runtime_instance_id=instance.runtime_instance_id,
        local_mount_path=instance.local_mount_path,
        remote_storage_path=instance.remote_storage_path,
        last_error_code=instance.last_error_code,
        last_error=instance.last_error,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/instances", response_model=AdminInstanceListResponse)
async def list_instances(
    _admin: AdminCaller,
    lifecycle: Lifecycle,
    status: LifecycleStatus | None = Query(default=None),
) -> AdminInstanceListResponse:
    instances = await lifecycle.list_instances(status)
    return AdminInstanceListResponse(
        items=[to_admin_response(i) for i in instances],
        total=len(instances),
    )


@router.get("/instances/{customer_id}", response_model=AdminStatusResponse)
async def get_instance(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
) -> AdminStatusResponse:
    view = await lifecycle.get_status(customer_id)
    return AdminStatusResponse(
        instance=to_admin_response(view.instance),
        runtime=to_runtime_response(view),
        runtime_ports=view.runtime.ports if view.runtime else {},
        runtime_error_code=view.runtime_error_code,
        storage_used_bytes=view.usage.used_bytes if view.usage else None,
    )


@router.post("/instances/{customer_id}/suspend", response_model=AdminInstanceResponse)
async def suspend_instance(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
    request: SuspendRequest | None = None,
) -> AdminInstanceResponse:
    reason = request.reason if request else "admin"
    instance = await lifecycle.suspend(customer_id, reason=reason)
    return to_admin_response(instance)


@router.post("/instances/{customer_id}/resume", response_model=AdminInstanceResponse)
async def resume_instance(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
) -> AdminInstanceResponse:
    instance = await lifecycle.resume(customer_id)
    return to_admin_response(instance)


@router.post("/instances/{customer_id}/restart", response_model=AdminInstanceResponse)
async def restart_instance(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
) -> AdminInstanceResponse:
    instance = await lifecycle.request_restart(customer_id)
    return to_admin_response(instance)


@router.delete("/instances/{customer_id}", response_model=DeleteResponse)
async def delete_instance(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
) -> DeleteResponse:
    report = await lifecycle.request_delete(customer_id, reason="admin")
    return to_delete_response(report)


@router.post(
    "/instances/{customer_id}/backups", response_model=BackupResponse, status_code=201
)
async def create_backup(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
    request: BackupRequest | None = None,
) -> BackupResponse:
    backup = await lifecycle.create_backup(customer_id, request.label if request else None)
    return BackupResponse(
        customer_id=backup.customer_id,
        backup_name=backup.backup_name,
        backup_path=backup.backup_path,
        created_at=backup.created_at,
    )


@router.get("/instances/{customer_id}/activity", response_model=list[ActivityResponse])
async def list_activity(
    customer_id: str,
    _admin: AdminCaller,
    lifecycle: Lifecycle,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[ActivityResponse]:
    """Activity history. Survives deletion of the instance."""
    entries = await lifecycle.list_activity(customer_id, limit)
    return [ActivityResponse.model_validate(e) for e in entries]


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    _admin: AdminCaller,
    reconciler: Reconciler,
) -> ReconcileResponse:
    report = await reconciler.run_once()
    return ReconcileResponse(
        checked=report.checked,
        corrected=report.corrected,
        skipped=report.skipped,
    )


@router.get("/storage/orphans", response_model=OrphanedStorageResponse)
async def orphaned_storage(
    _admin: AdminCaller,
    lifecycle: Lifecycle,
) -> OrphanedStorageResponse:
    """Customer directories on the storage host with no instance record."""
    return OrphanedStorageResponse(customer_ids=await lifecycle.find_orphaned_storage())
