"""Docker container runtime for media server instances."""

import logging
import re
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import httpx

from mediahost.app.config import DockerConfig, RetryConfig, RuntimeConfig
from mediahost.core.domain.naming import ResourceNaming
from mediahost.core.domain.workload import WorkloadProfile, workload_profile
from mediahost.core.errors import (
    ImagePullFailedError,
    MediaHostError,
    RuntimeCreateFailedError,
    RuntimeOperationFailedError,
    RuntimeUnavailableError,
)
from mediahost.core.interfaces import (
    ContainerRuntime,
    InstanceSpec,
    RuntimeHandle,
    RuntimeSnapshot,
)
from mediahost.core.retryable import with_retry
from mediahost.infra.docker import (
    ContainerAPI,
    ContainerConfig,
    HostConfig,
    ImageAPI,
    ImagePullError,
    VolumeAPI,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MB = 1024 * 1024
NANO_CPUS = 1_000_000_000

_FRACTION = re.compile(r"\.(\d+)")


def _docker_message(exc: httpx.HTTPStatusError) -> str:
    """Extract the daemon's error message from a failed response."""
    try:
        message = exc.response.json().get("message")
    except ValueError:
        message = None
    return f"HTTP {exc.response.status_code}: {message or exc.response.text[:200]}"


def _parse_docker_time(value: str | None) -> datetime | None:
    """Parse Docker's RFC 3339 nanosecond timestamps.

    "0001-01-01T00:00:00Z" (never started) maps to None.
    """
    if not value or value.startswith("0001-"):
        return None
    # Python parses at most 6 fractional digits
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6], value, count=1)
    value = value.replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def snapshot_from_inspect(instance_name: str, data: dict) -> RuntimeSnapshot:
    """Build a RuntimeSnapshot from a /containers/{id}/json response."""
    state = data.get("State") or {}
    ports: dict[str, int] = {}
    network = data.get("NetworkSettings") or {}
    for port_key, bindings in (network.get("Ports") or {}).items():
        for binding in bindings or []:
            host_port = binding.get("HostPort")
            if host_port:
                ports[port_key] = int(host_port)
                break
    return RuntimeSnapshot(
        instance_name=instance_name,
        runtime_instance_id=data.get("Id", ""),
        running=bool(state.get("Running", False)),
        status=state.get("Status", "unknown"),
        ports=ports,
        started_at=_parse_docker_time(state.get("StartedAt")),
    )


class DockerContainerRuntime(ContainerRuntime):
    """Docker-based runtime using ContainerAPI, ImageAPI and VolumeAPI.

    httpx transport errors become RuntimeUnavailableError and are retried;
    daemon error responses become the operation's failure error.
    """

    def __init__(
        self,
        containers: ContainerAPI,
        images: ImageAPI,
        volumes: VolumeAPI,
        runtime_config: RuntimeConfig,
        docker_config: DockerConfig,
        retry_config: RetryConfig,
    ) -> None:
        self._containers = containers
        self._images = images
        self._volumes = volumes
        self._runtime = runtime_config
        self._docker = docker_config
        self._retry = retry_config
        self._naming = ResourceNaming(runtime_config.resource_prefix, runtime_config.domain)

    async def _call(
        self,
        factory: Callable[[], Awaitable[T]],
        *,
        failure: type[MediaHostError],
        what: str,
    ) -> T:
        async def attempt() -> T:
            try:
                return await factory()
            except httpx.TransportError as exc:
                raise RuntimeUnavailableError(
                    f"Container runtime unreachable during {what}: {exc!r}"
                ) from exc
            except httpx.HTTPStatusError as exc:
                raise failure(f"{what} failed: {_docker_message(exc)}") from exc
            except ImagePullError as exc:
                raise ImagePullFailedError(f"{what} failed: {exc}") from exc

        return await with_retry(
            attempt,
            max_retries=self._retry.max_retries,
            base_delay=self._retry.base_delay,
            max_delay=self._retry.max_delay,
        )

    def _container_config(
        self,
        spec: InstanceSpec,
        profile: WorkloadProfile,
    ) -> ContainerConfig:
        port_key = profile.port_key
        labels_prefix = self._runtime.label_prefix
        return ContainerConfig(
            image=profile.image,
            name=spec.instance_name,
            env=list(profile.env),
            exposed_ports={port_key: {}},
            labels={
                f"{labels_prefix}.customer": spec.customer_id,
                f"{labels_prefix}.workload": spec.workload_type.value,
                f"{labels_prefix}.subdomain": spec.subdomain_slug,
            },
            host_config=HostConfig(
                network_mode=self._docker.network_name or "bridge",
                binds=[
                    f"{spec.mount_path}:{self._runtime.media_mount_target}",
                    f"{self._naming.config_volume_name(spec.instance_name)}"
                    f":{self._runtime.config_mount_target}",
                ],
                # Empty host port: the daemon assigns a free one
                port_bindings={port_key: ""},
                nano_cpus=int(spec.cpu_limit * NANO_CPUS),
                memory_bytes=spec.memory_limit_mb * MB,
                restart_policy=self._runtime.restart_policy,
            ),
        )

    async def create(self, spec: InstanceSpec) -> RuntimeHandle:
        """Ensure image, create and start the container."""
        name = spec.instance_name
        profile = workload_profile(
            spec.workload_type,
            public_url=self._naming.public_url(spec.subdomain_slug),
            timezone=self._runtime.timezone,
            puid=self._runtime.puid,
            pgid=self._runtime.pgid,
        )

        await self._call(
            lambda: self._images.ensure(profile.image),
            failure=ImagePullFailedError,
            what=f"pull {profile.image}",
        )

        config = self._container_config(spec, profile)
        container_id = await self._call(
            lambda: self._containers.create(config),
            failure=RuntimeCreateFailedError,
            what=f"create {name}",
        )
        if container_id is None:
            logger.info("Reusing existing container: %s", name, extra={"container": name})

        await self._call(
            lambda: self._containers.start(name),
            failure=RuntimeCreateFailedError,
            what=f"start {name}",
        )

        snapshot = await self.inspect(name)
        if snapshot is None:
            raise RuntimeCreateFailedError(f"Container {name} disappeared after start")
        return RuntimeHandle(
            runtime_instance_id=snapshot.runtime_instance_id,
            external_port=snapshot.external_port,
        )

    async def start(self, instance_name: str) -> None:
        await self._call(
            lambda: self._containers.start(instance_name),
            failure=RuntimeOperationFailedError,
            what=f"start {instance_name}",
        )

    async def stop(self, instance_name: str) -> None:
        await self._call(
            lambda: self._containers.stop(instance_name),
            failure=RuntimeOperationFailedError,
            what=f"stop {instance_name}",
        )

    async def remove(self, instance_name: str) -> None:
        await self._call(
            lambda: self._containers.remove(instance_name),
            failure=RuntimeOperationFailedError,
            what=f"remove {instance_name}",
        )
        volume = self._naming.config_volume_name(instance_name)
        await self._call(
            lambda: self._volumes.remove(volume),
            failure=RuntimeOperationFailedError,
            what=f"remove volume {volume}",
        )

    async def inspect(self, instance_name: str) -> RuntimeSnapshot | None:
        data = await self._call(
            lambda: self._containers.inspect(instance_name),
            failure=RuntimeOperationFailedError,
            what=f"inspect {instance_name}",
        )
        if data is None:
            return None
        return snapshot_from_inspect(instance_name, data)

    async def logs(self, instance_name: str, tail_lines: int) -> str:
        async def fetch() -> str:
            try:
                return await self._containers.logs(instance_name, tail=tail_lines)
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 404:
                    return ""
                raise

        return await self._call(
            fetch,
            failure=RuntimeOperationFailedError,
            what=f"logs {instance_name}",
        )
