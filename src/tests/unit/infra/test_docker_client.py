"""Unit tests for the Docker Engine API wrappers.

Requests are served by httpx.MockTransport, no daemon involved.
"""

import json
import struct

import httpx
import pytest

from mediahost.app.config import DockerConfig
from mediahost.infra.docker import (
    ContainerAPI,
    ContainerConfig,
    DockerClient,
    HostConfig,
    ImageAPI,
    ImagePullError,
    VolumeAPI,
    demux_log_stream,
)


def _client(handler) -> DockerClient:
    return DockerClient(DockerConfig(), transport=httpx.MockTransport(handler))


def _frame(stream: int, payload: bytes) -> bytes:
    return bytes([stream, 0, 0, 0]) + struct.pack(">I", len(payload)) + payload


class TestHostConfig:
    def test_to_api(self) -> None:
        config = HostConfig(
            binds=["/mnt/hetzner-storage/c1:/media"],
            port_bindings={"8096/tcp": ""},
            nano_cpus=250_000_000,
            memory_bytes=800 * 1024 * 1024,
            restart_policy="unless-stopped",
        )

        api = config.to_api()

        assert api["Binds"] == ["/mnt/hetzner-storage/c1:/media"]
        assert api["PortBindings"] == {"8096/tcp": [{"HostPort": ""}]}
        assert api["NanoCpus"] == 250_000_000
        assert api["Memory"] == 838_860_800
        assert api["RestartPolicy"] == {"Name": "unless-stopped"}

    def test_minimal(self) -> None:
        api = HostConfig().to_api()
        assert api == {"NetworkMode": "bridge", "Binds": []}


class TestContainerConfig:
    def test_to_api(self) -> None:
        config = ContainerConfig(
            image="jellyfin/jellyfin:latest",
            name="media-c1_tv",
            env=["TZ=UTC"],
            exposed_ports={"8096/tcp": {}},
            labels={"mediahost.customer_id": "c1"},
        )

        api = config.to_api()

        assert api["Image"] == "jellyfin/jellyfin:latest"
        assert api["Env"] == ["TZ=UTC"]
        assert api["ExposedPorts"] == {"8096/tcp": {}}
        assert api["Labels"] == {"mediahost.customer_id": "c1"}
        assert "name" not in api


class TestDemuxLogStream:
    def test_strips_frames(self) -> None:
        raw = _frame(1, b"hello\n") + _frame(2, b"oops\n")
        assert demux_log_stream(raw) == "hello\noops\n"

    def test_tty_stream_passthrough(self) -> None:
        assert demux_log_stream(b"plain output\n") == "plain output\n"

    def test_empty(self) -> None:
        assert demux_log_stream(b"") == ""


class TestContainerAPI:
    """Status code handling of ContainerAPI."""

    async def test_inspect_missing_returns_none(self) -> None:
        api = ContainerAPI(_client(lambda request: httpx.Response(404)))
        assert await api.inspect("media-c1_tv") is None

    async def test_inspect(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/containers/media-c1_tv/json"
            return httpx.Response(200, json={"Id": "abc"})

        api = ContainerAPI(_client(handler))
        assert await api.inspect("media-c1_tv") == {"Id": "abc"}

    async def test_inspect_server_error_raises(self) -> None:
        api = ContainerAPI(_client(lambda request: httpx.Response(500)))
        with pytest.raises(httpx.HTTPStatusError):
            await api.inspect("media-c1_tv")

    async def test_create_sends_name_and_body(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["name"] = request.url.params["name"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"Id": "new-id"})

        api = ContainerAPI(_client(handler))
        container_id = await api.create(
            ContainerConfig(image="emby/embyserver:latest", name="media-c1_tv")
        )

        assert container_id == "new-id"
        assert seen["name"] == "media-c1_tv"
        assert seen["body"]["Image"] == "emby/embyserver:latest"

    async def test_create_existing_returns_none(self) -> None:
        api = ContainerAPI(_client(lambda request: httpx.Response(409)))
        result = await api.create(ContainerConfig(image="x", name="media-c1_tv"))
        assert result is None

    @pytest.mark.parametrize("status", [204, 304])
    async def test_start_success(self, status: int) -> None:
        api = ContainerAPI(_client(lambda request: httpx.Response(status)))
        await api.start("media-c1_tv")

    @pytest.mark.parametrize("status", [204, 304, 404])
    async def test_stop_idempotent(self, status: int) -> None:
        """Already stopped or missing is success."""
        api = ContainerAPI(_client(lambda request: httpx.Response(status)))
        await api.stop("media-c1_tv")

    async def test_stop_passes_grace_period(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["t"] = request.url.params["t"]
            return httpx.Response(204)

        api = ContainerAPI(_client(handler))
        await api.stop("media-c1_tv")

        assert seen["t"] == "10"

    async def test_remove_missing_is_success(self) -> None:
        api = ContainerAPI(_client(lambda request: httpx.Response(404)))
        await api.remove("media-c1_tv")

    async def test_remove_forces(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["force"] = request.url.params["force"]
            return httpx.Response(204)

        api = ContainerAPI(_client(handler))
        await api.remove("media-c1_tv")

        assert seen == {"method": "DELETE", "force": "true"}

    async def test_logs_demuxed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["tail"] == "50"
            return httpx.Response(200, content=_frame(1, b"started\n"))

        api = ContainerAPI(_client(handler))
        assert await api.logs("media-c1_tv", tail=50) == "started\n"


class TestImageAPI:
    async def test_ensure_skips_pull_when_present(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(200, json={})

        await ImageAPI(_client(handler)).ensure("jellyfin/jellyfin:latest")

        assert calls == ["/images/jellyfin/jellyfin:latest/json"]

    async def test_ensure_pulls_when_missing(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/json"):
                return httpx.Response(404)
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, text='{"status":"Pulling"}\n{"status":"Done"}\n')

        await ImageAPI(_client(handler)).ensure("jellyfin/jellyfin:10.9")

        assert seen["params"] == {"fromImage": "jellyfin/jellyfin", "tag": "10.9"}

    async def test_pull_error_in_stream(self) -> None:
        """The daemon answers 200 and reports the failure in the stream."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, text='{"status":"Pulling"}\n{"error":"manifest unknown"}\n'
            )

        with pytest.raises(ImagePullError, match="manifest unknown"):
            await ImageAPI(_client(handler)).pull("plexinc/pms-docker:nope")


class TestVolumeAPI:
    async def test_remove_missing_is_success(self) -> None:
        await VolumeAPI(_client(lambda request: httpx.Response(404))).remove("v")


class TestDockerClient:
    async def test_ping(self) -> None:
        docker = _client(lambda request: httpx.Response(200, text="OK"))
        assert await docker.ping() is True
        await docker.close()

    async def test_client_recreated_after_close(self) -> None:
        docker = _client(lambda request: httpx.Response(200))
        first = await docker.get()
        await docker.close()

        second = await docker.get()

        assert second is not first
        assert not second.is_closed
        await docker.close()
