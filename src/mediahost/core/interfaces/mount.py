"""Local mount interface for binding remote storage on the host."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class MountInfo:
    """Bound mount for a customer."""

    customer_id: str
    local_path: str
    remote_path: str


class MountManager(ABC):
    """Interface for binding remote storage to a local path.

    No persisted state: is_mounted always checks the host.
    Implementations: SshfsMountManager
    """

    @abstractmethod
    def local_path(self, customer_id: str) -> str:
        """Local mount point for a customer."""
        ...

    @abstractmethod
    async def mount(self, customer_id: str, remote_path: str) -> MountInfo:
        """Bind remote_path at the customer's local path.

        Already mounted is a no-op success.

        Raises:
            MountFailedError: Mount command failed or timed out
        """
        ...

    @abstractmethod
    async def unmount(self, customer_id: str) -> None:
        """Unbind the customer's mount. Not mounted is success."""
        ...

    @abstractmethod
    async def is_mounted(self, customer_id: str) -> bool:
        ...
