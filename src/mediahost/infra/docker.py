"""Docker Engine API client with Pydantic models.

Provides async Docker API access for containers, volumes and images.
Supports both Unix socket and TCP (docker-proxy) connections.

Configuration via DockerConfig (DOCKER_ env prefix).
"""

import json
import logging
import struct

import httpx
from pydantic import BaseModel

from mediahost.app.config import DockerConfig
from mediahost.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)


class ImagePullError(Exception):
    """Registry rejected the pull (reported inside a 200 progress stream)."""


# =============================================================================
# Pydantic Models
# =============================================================================


class HostConfig(BaseModel):
    """Docker HostConfig for container creation."""

    network_mode: str = "bridge"
    binds: list[str] = []
    # "8096/tcp" -> host port ("" lets the daemon pick a free one)
    port_bindings: dict[str, str] = {}
    nano_cpus: int | None = None
    memory_bytes: int | None = None
    restart_policy: str | None = None

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        """Convert to Docker API format."""
        result: dict = {
            "NetworkMode": self.network_mode,
            "Binds": self.binds,
        }
        if self.port_bindings:
            result["PortBindings"] = {
                port: [{"HostPort": host_port}]
                for port, host_port in self.port_bindings.items()
            }
        if self.nano_cpus is not None:
            result["NanoCpus"] = self.nano_cpus
        if self.memory_bytes is not None:
            result["Memory"] = self.memory_bytes
        if self.restart_policy:
            result["RestartPolicy"] = {"Name": self.restart_policy}
        return result


class ContainerConfig(BaseModel):
    """Docker container configuration for creation."""

    image: str
    name: str
    env: list[str] = []
    exposed_ports: dict[str, dict] = {}
    labels: dict[str, str] = {}
    host_config: HostConfig = HostConfig()

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        """Convert to Docker API JSON format."""
        result: dict = {
            "Image": self.image,
            "ExposedPorts": self.exposed_ports,
            "HostConfig": self.host_config.to_api(),
        }
        if self.env:
            result["Env"] = self.env
        if self.labels:
            result["Labels"] = self.labels
        return result


# =============================================================================
# Docker Client
# =============================================================================


class DockerClient:
    """Async Docker API client.

    Supports Unix socket and TCP connections. One instance is created by the
    application and shared by the API wrappers below.
    """

    def __init__(
        self,
        config: DockerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._host = config.host
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> DockerConfig:
        return self._config

    def _create_client(self) -> httpx.AsyncClient:
        """Create a new HTTP client."""
        if self._transport is not None:
            return httpx.AsyncClient(
                transport=self._transport,
                base_url="http://docker",
                timeout=self._config.api_timeout,
            )
        if self._host.startswith("unix://"):
            socket_path = self._host.replace("unix://", "")
            transport = httpx.AsyncHTTPTransport(uds=socket_path)
            return httpx.AsyncClient(
                transport=transport,
                base_url="http://localhost",
                timeout=self._config.api_timeout,
            )
        base_url = self._host
        if base_url.startswith("tcp://"):
            base_url = base_url.replace("tcp://", "http://")
        return httpx.AsyncClient(base_url=base_url, timeout=self._config.api_timeout)

    async def get(self) -> httpx.AsyncClient:
        """Get or create the HTTP client.

        Recreates the client if the previous one was closed.
        """
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
        return self._client

    async def ping(self) -> bool:
        client = await self.get()
        resp = await client.get("/_ping")
        return resp.status_code == 200

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Container API
# =============================================================================


def demux_log_stream(raw: bytes) -> str:
    """Strip Docker's 8-byte stream headers from a non-TTY log stream.

    Frame: [stream_type, 0, 0, 0, size(uint32 BE)] + payload. TTY containers
    return plain bytes without frames, which are decoded as is.
    """
    chunks: list[bytes] = []
    offset = 0
    while offset + 8 <= len(raw):
        header = raw[offset : offset + 8]
        if header[0] not in (0, 1, 2) or header[1:4] != b"\x00\x00\x00":
            return raw.decode("utf-8", errors="replace")
        (size,) = struct.unpack(">I", header[4:8])
        chunks.append(raw[offset + 8 : offset + 8 + size])
        offset += 8 + size
    if not chunks:
        return raw.decode("utf-8", errors="replace")
    return b"".join(chunks).decode("utf-8", errors="replace")


class ContainerAPI:
    """Docker Container API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def inspect(self, name: str) -> dict | None:
        """Inspect a container.

        Args:
            name: Container name or ID

        Returns:
            Container info dict or None if not found
        """
        client = await self._docker.get()
        resp = await client.get(f"/containers/{name}/json")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def create(self, config: ContainerConfig) -> str | None:
        """Create a container.

        Args:
            config: Container configuration

        Returns:
            New container ID, or None if the name already exists.
        """
        client = await self._docker.get()
        resp = await client.post(
            "/containers/create",
            params={"name": config.name},
            json=config.to_api(),
            timeout=self._docker.config.create_timeout,
        )
        if resp.status_code == 409:
            logger.debug("Container already exists: %s", config.name)
            return None
        resp.raise_for_status()
        container_id = resp.json().get("Id")
        logger.info("Created container: %s", config.name, extra={"container": config.name})
        return container_id

    async def start(self, name: str) -> None:
        """Start a container. Already started (304) is success."""
        client = await self._docker.get()
        resp = await client.post(
            f"/containers/{name}/start", timeout=self._docker.config.create_timeout
        )
        if resp.status_code not in (204, 304):
            resp.raise_for_status()
        logger.info("Started container: %s", name, extra={"container": name})

    async def stop(self, name: str) -> None:
        """Stop a container. Already stopped (304) or missing (404) is success."""
        grace = self._docker.config.stop_grace_period
        client = await self._docker.get()
        resp = await client.post(
            f"/containers/{name}/stop",
            params={"t": str(grace)},
            # Daemon waits up to the grace period before answering
            timeout=self._docker.config.api_timeout + grace,
        )
        if resp.status_code not in (204, 304, 404):
            resp.raise_for_status()
        logger.info("Stopped container: %s", name, extra={"container": name})

    async def remove(self, name: str, force: bool = True) -> None:
        """Remove a container. Missing is success."""
        client = await self._docker.get()
        resp = await client.delete(
            f"/containers/{name}", params={"force": "true" if force else "false"}
        )
        if resp.status_code == 404:
            logger.debug("Container not found: %s", name)
            return
        resp.raise_for_status()
        logger.info("Removed container: %s", name, extra={"container": name})

    async def logs(self, name: str, tail: int = 100, timestamps: bool = True) -> str:
        """Get the last ``tail`` lines of stdout and stderr.

        Returns:
            Log text with stream headers removed
        """
        client = await self._docker.get()
        params = {
            "stdout": "true",
            "stderr": "true",
            "tail": str(tail),
            "timestamps": "true" if timestamps else "false",
        }
        resp = await client.get(f"/containers/{name}/logs", params=params)
        resp.raise_for_status()
        return demux_log_stream(resp.content)


# =============================================================================
# Volume API
# =============================================================================


class VolumeAPI:
    """Docker Volume API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def remove(self, name: str) -> None:
        """Remove a volume. Missing is success."""
        client = await self._docker.get()
        resp = await client.delete(f"/volumes/{name}")
        if resp.status_code == 404:
            logger.debug("Volume not found: %s", name)
            return
        resp.raise_for_status()
        logger.info("Removed volume: %s", name)


# =============================================================================
# Image API
# =============================================================================


class ImageAPI:
    """Docker Image API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def exists(self, image_ref: str) -> bool:
        """Check if image exists locally."""
        client = await self._docker.get()
        resp = await client.get(f"/images/{image_ref}/json")
        return resp.status_code == 200

    async def pull(self, image_ref: str) -> None:
        """Pull image from registry.

        Raises:
            ImagePullError: Registry reported an error in the progress stream
            httpx.HTTPStatusError: Daemon rejected the request
        """
        client = await self._docker.get()

        if ":" in image_ref:
            image, tag = image_ref.rsplit(":", 1)
        else:
            image, tag = image_ref, "latest"

        logger.info("Pulling image: %s:%s", image, tag)

        # Streaming endpoint; errors arrive as {"error": ...} progress lines
        resp = await client.post(
            "/images/create",
            params={"fromImage": image, "tag": tag},
            timeout=self._docker.config.image_pull_timeout,
        )
        resp.raise_for_status()
        for line in resp.text.splitlines():
            if not line.strip():
                continue
            try:
                progress = json.loads(line)
            except ValueError:
                continue
            if "error" in progress:
                raise ImagePullError(f"{image}:{tag}: {progress['error']}")

        logger.info(
            "Pulled image: %s:%s",
            image,
            tag,
            extra={"event": LogEvent.IMAGE_PULLED, "image": image_ref},
        )

    async def ensure(self, image_ref: str) -> None:
        """Ensure image exists locally, pull if not."""
        if not await self.exists(image_ref):
            await self.pull(image_ref)
