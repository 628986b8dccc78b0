"""Unit tests for CommandRunner."""

from unittest.mock import AsyncMock, MagicMock, patch

from mediahost.infra.process import (
    NOT_FOUND_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    CommandResult,
    CommandRunner,
)


def _proc(returncode: int, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestCommandRunner:
    async def test_success(self) -> None:
        proc = _proc(0, stdout=b"ok\n")
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(return_value=proc)
        ) as exec_mock:
            result = await CommandRunner().run(["sshfs", "a", "b"], timeout=5)

        assert result == CommandResult(exit_code=0, stdout="ok\n", stderr="")
        assert result.ok
        assert exec_mock.call_args.args == ("sshfs", "a", "b")

    async def test_failure_keeps_stderr(self) -> None:
        proc = _proc(1, stderr=b"read: Connection reset by peer\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await CommandRunner().run(["sshfs"], timeout=5)

        assert not result.ok
        assert result.stderr == "read: Connection reset by peer\n"

    async def test_stdin_passed(self) -> None:
        proc = _proc(0)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            await CommandRunner().run(["sshfs"], timeout=5, stdin_data=b"secret\n")

        proc.communicate.assert_awaited_once_with(b"secret\n")

    async def test_missing_binary(self) -> None:
        with patch(
            "asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError)
        ):
            result = await CommandRunner().run(["sshfs"], timeout=5)

        assert result.exit_code == NOT_FOUND_EXIT_CODE
        assert "sshfs: command not found" in result.stderr

    async def test_timeout_kills_process(self) -> None:
        proc = _proc(0)
        proc.communicate = AsyncMock(side_effect=TimeoutError)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await CommandRunner().run(["sshfs"], timeout=0.1)

        proc.kill.assert_called_once()
        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert "timed out" in result.stderr

    async def test_real_process(self) -> None:
        result = await CommandRunner().run(["sh", "-c", "echo hi; exit 3"], timeout=5)

        assert result.exit_code == 3
        assert result.stdout == "hi\n"
