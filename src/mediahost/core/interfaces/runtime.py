"""Container runtime interface for media server instances."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from mediahost.core.domain.workload import WorkloadType


@dataclass(frozen=True)
class InstanceSpec:
    """Everything the runtime needs to create an instance."""

    instance_name: str
    customer_id: str
    workload_type: WorkloadType
    subdomain_slug: str
    cpu_limit: float
    memory_limit_mb: int
    mount_path: str


@dataclass
class RuntimeHandle:
    """Result of create."""

    runtime_instance_id: str
    external_port: int | None


@dataclass
class RuntimeSnapshot:
    """Live runtime state of one instance."""

    instance_name: str
    runtime_instance_id: str
    running: bool
    status: str
    # internal port key ("8096/tcp") -> host port
    ports: dict[str, int] = field(default_factory=dict)
    started_at: datetime | None = None

    @property
    def external_port(self) -> int | None:
        """First published host port."""
        for port in self.ports.values():
            return port
        return None


class ContainerRuntime(ABC):
    """Interface for the container runtime.

    All operations are addressed by instance_name and are idempotent.
    Implementations: DockerContainerRuntime
    """

    @abstractmethod
    async def create(self, spec: InstanceSpec) -> RuntimeHandle:
        """Ensure image, create and start the container.

        An existing container with the same name is reused.

        Raises:
            ImagePullFailedError: Image could not be pulled
            RuntimeCreateFailedError: Create or start failed
            RuntimeUnavailableError: Runtime not reachable
        """
        ...

    @abstractmethod
    async def start(self, instance_name: str) -> None:
        """Start an existing container. Already running is success."""
        ...

    @abstractmethod
    async def stop(self, instance_name: str) -> None:
        """Stop the container. Already stopped or missing is success."""
        ...

    @abstractmethod
    async def remove(self, instance_name: str) -> None:
        """Remove the container and its config volume. Missing is success."""
        ...

    @abstractmethod
    async def inspect(self, instance_name: str) -> RuntimeSnapshot | None:
        """Live state, or None when the runtime has no such instance."""
        ...

    @abstractmethod
    async def logs(self, instance_name: str, tail_lines: int) -> str:
        """Last tail_lines lines of combined stdout/stderr."""
        ...
