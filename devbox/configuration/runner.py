"""Configuration tool invocation.

Runs "<tool> config set" with the configuration document on standard
input. The tool writes its progress straight to the console and its exit
code is reported unchanged.
"""

import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from devbox.common.process import run_command

logger = structlog.get_logger(__name__)


@dataclass
class ApplyResult:
    """Result of applying a configuration document.

    Attributes:
        exit_code: Exit code of the configuration tool.
        duration_seconds: Wall-clock execution time.
    """

    exit_code: int
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ConfigurationRunner:
    """Applies configuration documents with the configuration tool.

    Attributes:
        tool_path: Path of the configuration tool executable.
    """

    def __init__(self, tool_path: Path):
        self.tool_path = tool_path

    def apply(self, document: str) -> ApplyResult:
        """Pipe a document into "config set".

        Args:
            document: Configuration document text.

        Returns:
            ApplyResult carrying the tool's exit code.

        Raises:
            ExternalCommandError: If the tool cannot be started.
        """
        start_time = time.monotonic()
        logger.info("Applying configuration", tool=str(self.tool_path), size=len(document))

        result = run_command(
            [str(self.tool_path), "config", "set"],
            input_text=document,
            capture=False,
        )
        duration = time.monotonic() - start_time

        if result.success:
            logger.info("Configuration applied", duration_seconds=round(duration, 1))
        else:
            logger.error(
                "Configuration tool failed",
                exit_code=result.exit_code,
                duration_seconds=round(duration, 1),
            )

        return ApplyResult(
            exit_code=result.exit_code,
            duration_seconds=duration,
        )
