"""Unit tests for StorageBoxStorage with a mocked RemoteShell."""

from unittest.mock import AsyncMock

import pytest

from mediahost.adapters.storage.storage_box import StorageBoxStorage, sanitize_backup_label
from mediahost.app.config import RetryConfig, StorageBoxConfig
from mediahost.core.errors import (
    InvalidRequestError,
    StorageOperationFailedError,
    StorageUnreachableError,
)
from mediahost.infra.process import CommandResult
from mediahost.infra.ssh import RemoteShell


def _ok(stdout: str = "") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout, stderr="")


def _fail(stderr: str, exit_code: int = 1) -> CommandResult:
    return CommandResult(exit_code=exit_code, stdout="", stderr=stderr)


class TestStorageBoxStorage:
    """Commands issued and error mapping."""

    @pytest.fixture
    def shell(self) -> AsyncMock:
        mock = AsyncMock(spec=RemoteShell)
        mock.run = AsyncMock(return_value=_ok())
        return mock

    @pytest.fixture
    def storage(self, shell: AsyncMock) -> StorageBoxStorage:
        return StorageBoxStorage(
            shell,
            StorageBoxConfig(base_path="/media-storage", backup_path="/backups"),
            RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0),
        )

    def _command(self, shell: AsyncMock) -> str:
        return shell.run.call_args.args[0]

    async def test_create_storage(self, storage: StorageBoxStorage, shell: AsyncMock) -> None:
        allocation = await storage.create_storage("c1", 2048)

        assert self._command(shell) == "mkdir -p /media-storage/c1"
        assert allocation.remote_path == "/media-storage/c1"
        assert allocation.quota_gb == 2048

    async def test_create_storage_failure(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        shell.run.return_value = _fail("mkdir: Permission denied")

        with pytest.raises(StorageOperationFailedError, match="Permission denied"):
            await storage.create_storage("c1", 2048)

        shell.run.assert_awaited_once()  # permanent, not retried

    async def test_unreachable_is_retried(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        shell.run.side_effect = [StorageUnreachableError("timeout"), _ok()]

        await storage.create_storage("c1", 2048)

        assert shell.run.await_count == 2

    async def test_unreachable_exhausts_retries(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        shell.run.side_effect = StorageUnreachableError("timeout")

        with pytest.raises(StorageUnreachableError):
            await storage.create_storage("c1", 2048)

        assert shell.run.await_count == 3

    async def test_rejects_unsafe_customer_id(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        with pytest.raises(InvalidRequestError):
            await storage.delete_storage("../etc")

        shell.run.assert_not_awaited()

    async def test_get_usage(self, storage: StorageBoxStorage, shell: AsyncMock) -> None:
        shell.run.return_value = _ok("5368709120\t/media-storage/c1\n")

        usage = await storage.get_usage("c1")

        assert self._command(shell) == "du -sb /media-storage/c1"
        assert usage.used_bytes == 5368709120
        assert usage.used_gb == 5.0

    @pytest.mark.parametrize(
        "result",
        [_fail("du: cannot access '/media-storage/c1': No such file or directory"), _ok("")],
    )
    async def test_get_usage_degrades_to_zero(
        self, storage: StorageBoxStorage, shell: AsyncMock, result: CommandResult
    ) -> None:
        shell.run.return_value = result

        usage = await storage.get_usage("c1")

        assert usage.used_bytes == 0

    async def test_get_usage_unreachable_is_zero(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        shell.run.side_effect = StorageUnreachableError("timeout")

        usage = await storage.get_usage("c1")

        assert usage.used_bytes == 0

    async def test_delete_storage(self, storage: StorageBoxStorage, shell: AsyncMock) -> None:
        await storage.delete_storage("c1")

        assert self._command(shell) == "rm -rf /media-storage/c1"

    async def test_delete_storage_failure(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        shell.run.return_value = _fail("rm: Device or resource busy")

        with pytest.raises(StorageOperationFailedError):
            await storage.delete_storage("c1")

    async def test_create_backup_with_label(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        backup = await storage.create_backup("c1", "before upgrade")

        assert backup.backup_name == "before-upgrade"
        assert backup.backup_path == "/backups/before-upgrade.tar.gz"
        assert self._command(shell) == (
            "mkdir -p /backups && "
            "tar -czf /backups/before-upgrade.tar.gz -C /media-storage c1"
        )
        assert shell.run.call_args.args[1] == 3600.0

    async def test_create_backup_default_name(
        self, storage: StorageBoxStorage, shell: AsyncMock
    ) -> None:
        backup = await storage.create_backup("c1")

        assert backup.backup_name.startswith("backup-c1-")
        assert backup.backup_path.endswith(".tar.gz")

    async def test_list_storage(self, storage: StorageBoxStorage, shell: AsyncMock) -> None:
        shell.run.return_value = _ok("c2\nc1\nlost+found\n.snapshot\n")

        assert await storage.list_storage() == ["c1", "c2"]
        assert self._command(shell) == "ls -1 /media-storage"


class TestSanitizeBackupLabel:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("nightly", "nightly"),
            ("a b/c", "a-b-c"),
            ("../../etc/passwd", "etc-passwd"),
            ("$(rm -rf /)", "rm--rf"),
        ],
    )
    def test_sanitize(self, label: str, expected: str) -> None:
        assert sanitize_backup_label(label) == expected
