"""Storage box implementation of RemoteStorage.

Customer directories live under ``{base_path}/{customer_id}`` on the storage
host and are managed with plain shell commands over SSH.
"""

import logging
import posixpath
import re
import shlex

from mediahost.app.config import RetryConfig, StorageBoxConfig
from mediahost.core.domain.naming import CUSTOMER_ID_PATTERN, validate_customer_id
from mediahost.core.errors import MediaHostError, StorageOperationFailedError
from mediahost.core.interfaces import (
    BackupInfo,
    RemoteStorage,
    StorageAllocation,
    StorageUsage,
)
from mediahost.core.logging_schema import LogEvent
from mediahost.core.models import utc_now
from mediahost.core.retryable import with_retry
from mediahost.infra.process import CommandResult
from mediahost.infra.ssh import RemoteShell

logger = logging.getLogger(__name__)

_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_backup_label(label: str) -> str:
    """Reduce a caller label to a safe file name stem."""
    return _LABEL_UNSAFE.sub("-", label).strip(".-")[:100]


class StorageBoxStorage(RemoteStorage):
    """RemoteStorage over a RemoteShell with retry on unreachable host."""

    def __init__(
        self,
        shell: RemoteShell,
        config: StorageBoxConfig,
        retry_config: RetryConfig,
    ) -> None:
        self._shell = shell
        self._config = config
        self._retry = retry_config

    def remote_path(self, customer_id: str) -> str:
        validate_customer_id(customer_id)
        return posixpath.join(self._config.base_path, customer_id)

    async def _run(self, command: str, timeout: float | None = None) -> CommandResult:
        return await with_retry(
            lambda: self._shell.run(command, timeout),
            max_retries=self._retry.max_retries,
            base_delay=self._retry.base_delay,
            max_delay=self._retry.max_delay,
        )

    async def _run_checked(
        self, command: str, what: str, timeout: float | None = None
    ) -> CommandResult:
        result = await self._run(command, timeout)
        if not result.ok:
            raise StorageOperationFailedError(
                f"{what} failed (exit {result.exit_code}): {result.stderr.strip()[:500]}"
            )
        return result

    async def create_storage(self, customer_id: str, quota_gb: int) -> StorageAllocation:
        path = self.remote_path(customer_id)
        await self._run_checked(
            f"mkdir -p {shlex.quote(path)}", f"Create storage for {customer_id}"
        )
        # Storage boxes have no per-directory quota; quota_gb is advisory
        logger.info(
            "Storage ready for customer %s at %s",
            customer_id,
            path,
            extra={
                "event": LogEvent.STORAGE_COMMAND,
                "customer_id": customer_id,
                "quota_gb": quota_gb,
            },
        )
        return StorageAllocation(customer_id=customer_id, remote_path=path, quota_gb=quota_gb)

    async def get_usage(self, customer_id: str) -> StorageUsage:
        path = self.remote_path(customer_id)
        try:
            result = await self._run(f"du -sb {shlex.quote(path)}")
        except MediaHostError as exc:
            logger.warning(
                "Usage check for customer %s failed: %s",
                customer_id,
                exc.message,
                extra={"customer_id": customer_id, "error_code": exc.code.value},
            )
            return StorageUsage(customer_id=customer_id, used_bytes=0)

        if not result.ok:
            logger.warning(
                "Usage check for customer %s exited %d: %s",
                customer_id,
                result.exit_code,
                result.stderr.strip()[:200],
                extra={"customer_id": customer_id},
            )
            return StorageUsage(customer_id=customer_id, used_bytes=0)

        try:
            used_bytes = int(result.stdout.split()[0])
        except (IndexError, ValueError):
            logger.warning(
                "Unparseable du output for customer %s: %r",
                customer_id,
                result.stdout[:200],
                extra={"customer_id": customer_id},
            )
            used_bytes = 0
        return StorageUsage(customer_id=customer_id, used_bytes=used_bytes)

    async def delete_storage(self, customer_id: str) -> None:
        path = self.remote_path(customer_id)
        try:
            await self._run_checked(
                f"rm -rf {shlex.quote(path)}", f"Delete storage for {customer_id}"
            )
        except MediaHostError as exc:
            logger.error(
                "Failed to delete storage for customer %s: %s",
                customer_id,
                exc.message,
                extra={"customer_id": customer_id, "error_code": exc.code.value},
            )
            raise
        logger.info(
            "Deleted storage for customer %s",
            customer_id,
            extra={"event": LogEvent.STORAGE_COMMAND, "customer_id": customer_id},
        )

    async def create_backup(
        self, customer_id: str, label: str | None = None
    ) -> BackupInfo:
        self.remote_path(customer_id)
        created_at = utc_now()
        name = sanitize_backup_label(label) if label else ""
        if not name:
            name = f"backup-{customer_id}-{created_at.strftime('%Y%m%dT%H%M%SZ')}"

        backup_dir = self._config.backup_path
        archive = posixpath.join(backup_dir, f"{name}.tar.gz")
        command = (
            f"mkdir -p {shlex.quote(backup_dir)} && "
            f"tar -czf {shlex.quote(archive)} "
            f"-C {shlex.quote(self._config.base_path)} {shlex.quote(customer_id)}"
        )
        await self._run_checked(
            command,
            f"Backup of {customer_id}",
            timeout=self._config.backup_timeout,
        )
        logger.info(
            "Created backup %s for customer %s",
            archive,
            customer_id,
            extra={"event": LogEvent.STORAGE_COMMAND, "customer_id": customer_id},
        )
        return BackupInfo(
            customer_id=customer_id,
            backup_name=name,
            backup_path=archive,
            created_at=created_at,
        )

    async def list_storage(self) -> list[str]:
        result = await self._run_checked(
            f"ls -1 {shlex.quote(self._config.base_path)}", "List storage"
        )
        names = [line.strip() for line in result.stdout.splitlines()]
        return sorted(n for n in names if CUSTOMER_ID_PATTERN.fullmatch(n))
