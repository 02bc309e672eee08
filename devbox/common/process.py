"""External program execution with bounded retry.

Every external tool the provisioners drive (git, npm, diskpart, fsutil,
powershell, setx, dsc) runs through this module. run_command executes a
single attempt and captures its output; invoke_program wraps it with a
bounded retry policy and linear back-off.
"""

import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

from devbox.common.errors import ExternalCommandError

logger = structlog.get_logger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3


@dataclass
class CommandResult:
    """Result of a single external command execution.

    Attributes:
        command: Argument vector that was executed.
        exit_code: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    command: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def resolve_executable(name: str) -> str:
    """Resolve a program name against PATH.

    On Windows this turns "npm" into the full path of npm.cmd, which
    CreateProcess cannot find on its own. Unknown names are returned
    unchanged so the launch failure names the program.
    """
    return shutil.which(name) or name


def run_command(
    command: Sequence[str],
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
    capture: bool = True,
) -> CommandResult:
    """Run a command once and capture its output.

    Text is exchanged as UTF-8 and undecodable output bytes are replaced.

    Args:
        command: Program and arguments.
        cwd: Working directory for the process.
        input_text: Text written to the process's standard input.
        capture: Capture stdout and stderr. When False the process writes
            straight to the console and the result carries empty output.

    Returns:
        CommandResult with the exit code and captured output.

    Raises:
        ExternalCommandError: If the program cannot be started.
    """
    argv = [resolve_executable(command[0]), *command[1:]]
    logger.debug("Running command", command=list(command), cwd=str(cwd) if cwd else None)
    start_time = time.monotonic()

    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            input=input_text,
            capture_output=capture,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise ExternalCommandError(
            command,
            -1,
            message=f"Failed to start {command[0]}: {exc}",
        ) from exc

    return CommandResult(
        command=list(command),
        exit_code=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        duration_seconds=time.monotonic() - start_time,
    )


def invoke_program(
    command: Sequence[str],
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
    cwd: Optional[Path] = None,
    input_text: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> CommandResult:
    """Run a command, retrying nonzero exits with linear back-off.

    Attempts before the last log a warning and sleep for as many seconds
    as the attempt number before trying again. A failure on the final
    attempt is fatal.

    Args:
        command: Program and arguments.
        retry_attempts: Total number of attempts (at least 1).
        cwd: Working directory for the process.
        input_text: Text written to the process's standard input.
        sleep: Sleep function, replaceable in tests.

    Returns:
        The successful CommandResult (exit code 0).

    Raises:
        ExternalCommandError: If the final attempt exits nonzero or the
            program cannot be started.
        ValueError: If retry_attempts is less than 1.
    """
    if retry_attempts < 1:
        raise ValueError("retry_attempts must be at least 1")

    for attempt in range(1, retry_attempts + 1):
        result = run_command(command, cwd=cwd, input_text=input_text)
        if result.success:
            return result

        if attempt == retry_attempts:
            logger.error(
                "Command failed after all attempts",
                command=list(command),
                exit_code=result.exit_code,
                attempts=retry_attempts,
            )
            raise ExternalCommandError(command, result.exit_code, result.stderr)

        logger.warning(
            "Command failed, retrying",
            command=list(command),
            exit_code=result.exit_code,
            attempt=attempt,
            retry_attempts=retry_attempts,
            delay=attempt,
        )
        sleep(attempt)

    # Unreachable: the loop either returns or raises
    raise AssertionError("retry loop exited without a result")
