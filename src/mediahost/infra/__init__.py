"""Infrastructure clients (DB, Docker Engine API, SSH, local processes)."""

from mediahost.infra.docker import (
    ContainerAPI,
    DockerClient,
    ImageAPI,
    ImagePullError,
    VolumeAPI,
)
from mediahost.infra.postgresql import (
    close_db,
    get_engine,
    get_session_factory,
    init_db,
)
from mediahost.infra.process import CommandResult, CommandRunner
from mediahost.infra.ssh import RemoteShell
from mediahost.infra.store import SqlInstanceStore

__all__ = [
    # DB
    "init_db",
    "close_db",
    "get_engine",
    "get_session_factory",
    "SqlInstanceStore",
    # Docker
    "DockerClient",
    "ContainerAPI",
    "ImageAPI",
    "VolumeAPI",
    "ImagePullError",
    # Commands
    "CommandResult",
    "CommandRunner",
    "RemoteShell",
]
