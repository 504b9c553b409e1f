"""External command runner.

This module handles:
- Executing cloud CLI, SSH and publish commands with subprocess
- Capturing stdout/stderr into the owning build unit's log file
- Enforcing command timeouts
- Turning non-zero exits into CommandError (fail-fast)
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import IO

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        exit_code: int | None = None,
        code: str = "command_failed",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.code = code


class CommandTimeoutError(CommandError):
    """Raised when an external command exceeds its timeout."""

    def __init__(self, message: str, command: list[str] | None = None) -> None:
        super().__init__(message, command=command, exit_code=-1, code="command_timeout")


class CommandRunner:
    """Run external commands on behalf of one unit of work.

    Output of every command goes to ``log_file`` when one is given,
    otherwise it is inherited from the current process.

    Attributes:
        log_file: Open text file receiving command output.
        timeout: Per-command timeout in seconds (None = no timeout).
        log: Logger used to record each command line.
    """

    def __init__(
        self,
        log_file: IO[str] | None = None,
        timeout: int | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.log_file = log_file
        self.timeout = timeout
        self.log = log or logger

    def _flush(self) -> None:
        for handler in self.log.handlers:
            handler.flush()
        if self.log_file is not None:
            self.log_file.flush()

    def _execute(
        self,
        cmd: list[str],
        stdout: int | IO[str] | None,
        stderr: int | IO[str] | None,
    ) -> subprocess.CompletedProcess[str]:
        cmd_str = shlex.join(cmd)
        try:
            return subprocess.run(
                cmd,
                stdout=stdout,
                stderr=stderr,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            message = f"Command timed out after {self.timeout} seconds: {cmd_str}"
            self.log.error(message)
            raise CommandTimeoutError(message, command=cmd) from e
        except OSError as e:
            message = f"Failed to execute {cmd[0]}: {e}"
            self.log.error(message)
            raise CommandError(message, command=cmd, code="execution_error") from e

    def run(self, cmd: list[str], quiet: bool = False) -> None:
        """Run a command, raising on failure.

        Args:
            cmd: Command as list of strings.
            quiet: Discard the command's output instead of logging it.

        Raises:
            CommandError: If the command exits non-zero or cannot start.
        """
        cmd_str = shlex.join(cmd)
        self.log.info("Executing: %s", cmd_str)
        self._flush()

        if quiet:
            stdout: int | IO[str] | None = subprocess.DEVNULL
            stderr: int | IO[str] | None = subprocess.DEVNULL
        else:
            stdout = self.log_file
            stderr = subprocess.STDOUT if self.log_file is not None else None

        result = self._execute(cmd, stdout, stderr)
        if result.returncode != 0:
            message = f"Command failed with exit code {result.returncode}: {cmd_str}"
            self.log.error(message)
            raise CommandError(message, command=cmd, exit_code=result.returncode)

    def capture(self, cmd: list[str], quiet: bool = False) -> str:
        """Run a command and return its stripped stdout.

        Stderr goes to the log file. With ``quiet`` stderr is discarded and
        a failure is only logged at debug level, for polls that are
        expected to fail for a while.

        Raises:
            CommandError: If the command exits non-zero or cannot start.
        """
        cmd_str = shlex.join(cmd)
        self.log.debug("Querying: %s", cmd_str)
        self._flush()

        stderr: int | IO[str] | None = subprocess.DEVNULL if quiet else self.log_file
        result = self._execute(cmd, subprocess.PIPE, stderr)
        if result.returncode != 0:
            message = f"Command failed with exit code {result.returncode}: {cmd_str}"
            if quiet:
                self.log.debug(message)
            else:
                self.log.error(message)
            raise CommandError(message, command=cmd, exit_code=result.returncode)
        return (result.stdout or "").strip()

    def succeeds(self, cmd: list[str]) -> bool:
        """Run a probe command, returning whether it exited zero."""
        self.log.debug("Probing: %s", shlex.join(cmd))
        result = self._execute(cmd, subprocess.DEVNULL, subprocess.DEVNULL)
        return result.returncode == 0


__all__ = ["CommandError", "CommandRunner", "CommandTimeoutError"]
