"""Local command execution for host-level tools (sshfs, fusermount)."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Exit code reported when the command did not finish or could not start
TIMEOUT_EXIT_CODE = -1
NOT_FOUND_EXIT_CODE = 127


@dataclass
class CommandResult:
    """Outcome of a local or remote command."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs argv-style commands without a shell, each bounded by a timeout."""

    async def run(
        self,
        args: Sequence[str],
        timeout: float,
        stdin_data: bytes | None = None,
    ) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE
                if stdin_data is not None
                else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return CommandResult(
                exit_code=NOT_FOUND_EXIT_CODE,
                stdout="",
                stderr=f"{args[0]}: command not found",
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin_data),
                timeout=timeout,
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Command timed out after %.0fs: %s", timeout, args[0])
            return CommandResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )

        return CommandResult(
            exit_code=proc.returncode if proc.returncode is not None else TIMEOUT_EXIT_CODE,
            stdout=stdout.decode(errors="replace") if stdout else "",
            stderr=stderr.decode(errors="replace") if stderr else "",
        )
