"""Adapters module - infrastructure implementations of core interfaces."""

from mediahost.adapters.mount.sshfs import SshfsMountManager
from mediahost.adapters.runtime.docker import DockerContainerRuntime
from mediahost.adapters.storage.storage_box import StorageBoxStorage

__all__ = [
    "DockerContainerRuntime",
    "SshfsMountManager",
    "StorageBoxStorage",
]
