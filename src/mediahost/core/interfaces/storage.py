"""Remote storage interface for per-customer media directories."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

BYTES_PER_GB = 1024**3


@dataclass
class StorageAllocation:
    """Result of create_storage."""

    customer_id: str
    remote_path: str
    quota_gb: int


@dataclass
class StorageUsage:
    """Advisory usage of a customer directory."""

    customer_id: str
    used_bytes: int

    @property
    def used_gb(self) -> float:
        return round(self.used_bytes / BYTES_PER_GB, 3)


@dataclass
class BackupInfo:
    """Archive created on the storage host."""

    customer_id: str
    backup_name: str
    backup_path: str
    created_at: datetime


class RemoteStorage(ABC):
    """Interface for remote per-customer storage.

    Every operation is addressed by customer_id; paths are derived from it.
    Implementations: StorageBoxStorage
    """

    @abstractmethod
    def remote_path(self, customer_id: str) -> str:
        """Remote directory for a customer."""
        ...

    @abstractmethod
    async def create_storage(self, customer_id: str, quota_gb: int) -> StorageAllocation:
        """Create the customer directory (idempotent).

        Raises:
            StorageUnreachableError: Host not reachable within the timeout
            StorageOperationFailedError: Remote command failed
        """
        ...

    @abstractmethod
    async def get_usage(self, customer_id: str) -> StorageUsage:
        """Measure used bytes. Never raises; failures report zero usage."""
        ...

    @abstractmethod
    async def delete_storage(self, customer_id: str) -> None:
        """Recursively delete the customer directory (idempotent)."""
        ...

    @abstractmethod
    async def create_backup(
        self, customer_id: str, label: str | None = None
    ) -> BackupInfo:
        """Archive the customer directory on the storage host."""
        ...

    @abstractmethod
    async def list_storage(self) -> list[str]:
        """List customer ids that have a directory on the storage host."""
        ...
