"""Customer instance and activity log models.

Note: Enum values are stored as strings. Use core.domain enums for
type-safe operations in the service layer.
"""

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel
from ulid import ULID

from mediahost.core.domain.instance import LifecycleStatus
from mediahost.core.domain.workload import WorkloadType


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class CustomerInstance(SQLModel, table=True):
    """One media server instance per customer.

    runtime_instance_id and external_port are only set while RUNNING.
    """

    __tablename__ = "customer_instances"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    customer_id: str = Field(unique=True, index=True, max_length=64)
    instance_name: str = Field(unique=True, max_length=160)  # media-{customer}-{slug}
    subdomain_slug: str = Field(unique=True, max_length=63)
    workload_type: WorkloadType = Field(sa_type=String)
    status: LifecycleStatus = Field(default=LifecycleStatus.CREATING, sa_type=String)

    cpu_limit: float
    memory_limit_mb: int
    storage_quota_gb: int
    storage_used_gb: float = Field(default=0.0)

    runtime_instance_id: str | None = Field(default=None, max_length=128)
    external_port: int | None = None
    local_mount_path: str | None = Field(default=None, max_length=512)
    remote_storage_path: str | None = Field(default=None, max_length=512)
    last_health_check_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    last_error_code: str | None = None  # ErrorCode value
    last_error: str | None = Field(default=None, sa_column=Column(Text))  # admin only

    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ActivityLog(SQLModel, table=True):
    """Append-only audit trail, outlives the instance row."""

    __tablename__ = "activity_logs"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    customer_id: str = Field(index=True, max_length=64)
    action: str = Field(max_length=64)  # ActivityAction value
    detail: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON().with_variant(JSONB, "postgresql"), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
