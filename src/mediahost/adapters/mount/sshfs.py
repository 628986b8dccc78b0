"""sshfs implementation of MountManager."""

import asyncio
import logging
import os

from mediahost.app.config import MountConfig, StorageBoxConfig
from mediahost.core.domain.naming import validate_customer_id
from mediahost.core.errors import MountFailedError
from mediahost.core.interfaces import MountInfo, MountManager
from mediahost.core.logging_schema import LogEvent
from mediahost.infra.process import CommandRunner

logger = logging.getLogger(__name__)


class SshfsMountManager(MountManager):
    """Mounts ``user@host:{remote_path}`` at ``{base_dir}/{customer_id}``."""

    def __init__(
        self,
        config: MountConfig,
        storage_box: StorageBoxConfig,
        runner: CommandRunner,
    ) -> None:
        self._config = config
        self._storage_box = storage_box
        self._runner = runner

    def local_path(self, customer_id: str) -> str:
        validate_customer_id(customer_id)
        return os.path.join(self._config.base_dir, customer_id)

    def _mount_args(self, remote_path: str, local_path: str) -> list[str]:
        box = self._storage_box
        options = list(self._config.options)
        if box.key_path:
            options.append(f"IdentityFile={box.key_path}")
        elif box.password:
            options.append("password_stdin")
        options.append(f"ConnectTimeout={int(box.connect_timeout)}")
        if box.known_hosts_path:
            options.append(f"UserKnownHostsFile={box.known_hosts_path}")
        else:
            options.append("StrictHostKeyChecking=accept-new")
        return [
            self._config.sshfs_binary,
            f"{box.user}@{box.host}:{remote_path}",
            local_path,
            "-p",
            str(box.port),
            "-o",
            ",".join(options),
        ]

    async def is_mounted(self, customer_id: str) -> bool:
        return await asyncio.to_thread(os.path.ismount, self.local_path(customer_id))

    async def mount(self, customer_id: str, remote_path: str) -> MountInfo:
        local_path = self.local_path(customer_id)
        info = MountInfo(
            customer_id=customer_id, local_path=local_path, remote_path=remote_path
        )

        if await self.is_mounted(customer_id):
            logger.debug("Already mounted: %s", local_path)
            return info

        try:
            await asyncio.to_thread(os.makedirs, local_path, exist_ok=True)
        except OSError as exc:
            raise MountFailedError(f"Cannot create mount point {local_path}: {exc}") from exc

        box = self._storage_box
        stdin_data = None
        if not box.key_path and box.password:
            stdin_data = f"{box.password}\n".encode()

        result = await self._runner.run(
            self._mount_args(remote_path, local_path),
            timeout=self._config.timeout,
            stdin_data=stdin_data,
        )
        if not result.ok:
            raise MountFailedError(
                f"sshfs mount of {remote_path} at {local_path} failed "
                f"(exit {result.exit_code}): {result.stderr.strip()[:500]}"
            )

        logger.info(
            "Mounted %s at %s",
            remote_path,
            local_path,
            extra={"event": LogEvent.MOUNT_CHANGED, "customer_id": customer_id},
        )
        return info

    async def unmount(self, customer_id: str) -> None:
        local_path = self.local_path(customer_id)
        if not await self.is_mounted(customer_id):
            logger.debug("Not mounted: %s", local_path)
            return

        result = await self._runner.run(
            [self._config.unmount_binary, "-u", local_path],
            timeout=self._config.timeout,
        )
        if not result.ok:
            # Raced with another unmount or the FUSE daemon exited
            if not await self.is_mounted(customer_id):
                logger.info("Mount %s already gone", local_path)
                return
            raise MountFailedError(
                f"Unmount of {local_path} failed "
                f"(exit {result.exit_code}): {result.stderr.strip()[:500]}"
            )

        logger.info(
            "Unmounted %s",
            local_path,
            extra={"event": LogEvent.MOUNT_CHANGED, "customer_id": customer_id},
        )
