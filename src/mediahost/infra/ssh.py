"""SSH command channel to the remote storage host.

One connection per command: connect, run, close. paramiko is blocking, so
each call runs in a worker thread.

Configuration via StorageBoxConfig (STORAGE_BOX_ env prefix).
"""

import asyncio
import logging
import socket

import paramiko

from mediahost.app.config import StorageBoxConfig
from mediahost.core.errors import StorageOperationFailedError, StorageUnreachableError
from mediahost.core.logging_schema import LogEvent
from mediahost.infra.process import CommandResult

logger = logging.getLogger(__name__)


class RemoteShell:
    """Runs shell commands on the storage host over SSH."""

    def __init__(self, config: StorageBoxConfig) -> None:
        self._config = config

    @property
    def target(self) -> str:
        return f"{self._config.user}@{self._config.host}:{self._config.port}"

    def _connect(self) -> paramiko.SSHClient:
        config = self._config
        client = paramiko.SSHClient()
        if config.known_hosts_path:
            client.load_host_keys(config.known_hosts_path)
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(
                hostname=config.host,
                port=config.port,
                username=config.user,
                password=config.password,
                key_filename=config.key_path,
                timeout=config.connect_timeout,
                banner_timeout=config.connect_timeout,
                auth_timeout=config.connect_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except paramiko.AuthenticationException as exc:
            client.close()
            # Wrong credentials do not heal on retry
            raise StorageOperationFailedError(
                f"SSH authentication to {self.target} failed: {exc}"
            ) from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise StorageUnreachableError(
                f"Cannot reach storage host {self.target}: {exc}"
            ) from exc
        return client

    def _run_sync(self, command: str, timeout: float) -> CommandResult:
        client = self._connect()
        try:
            _, stdout, stderr = client.exec_command(command, timeout=timeout)
            out = stdout.read().decode(errors="replace")
            err = stderr.read().decode(errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except (socket.timeout, paramiko.SSHException, EOFError) as exc:
            raise StorageUnreachableError(
                f"Command on {self.target} did not complete within {timeout}s: {exc}"
            ) from exc
        finally:
            client.close()
        return CommandResult(exit_code=exit_code, stdout=out, stderr=err)

    async def run(self, command: str, timeout: float | None = None) -> CommandResult:
        """Run one command and return its result.

        Non-zero exit codes are returned, not raised.

        Raises:
            StorageUnreachableError: Connection or command timed out
            StorageOperationFailedError: Authentication rejected
        """
        timeout = timeout if timeout is not None else self._config.command_timeout
        # connect + command, plus slack for the thread handoff
        overall = self._config.connect_timeout + timeout + 5.0
        logger.debug(
            "Remote command: %s",
            command,
            extra={"event": LogEvent.STORAGE_COMMAND, "target": self.target},
        )
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._run_sync, command, timeout),
                timeout=overall,
            )
        except TimeoutError as exc:
            raise StorageUnreachableError(
                f"Storage host {self.target} did not answer within {overall:.0f}s"
            ) from exc
