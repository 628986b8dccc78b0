"""Core interfaces for the orchestrator."""

from mediahost.core.interfaces.mount import MountInfo, MountManager
from mediahost.core.interfaces.runtime import (
    ContainerRuntime,
    InstanceSpec,
    RuntimeHandle,
    RuntimeSnapshot,
)
from mediahost.core.interfaces.storage import (
    BackupInfo,
    RemoteStorage,
    StorageAllocation,
    StorageUsage,
)
from mediahost.core.interfaces.store import InstanceStore

__all__ = [
    # Remote storage
    "RemoteStorage",
    "StorageAllocation",
    "StorageUsage",
    "BackupInfo",
    # Local mount
    "MountManager",
    "MountInfo",
    # Container runtime
    "ContainerRuntime",
    "InstanceSpec",
    "RuntimeHandle",
    "RuntimeSnapshot",
    # Persistence
    "InstanceStore",
]
