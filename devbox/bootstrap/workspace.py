"""Repository bootstrapping into a fresh local workspace.

Clones a repository into the fixed workspace root, updates its
submodules and installs npm dependencies for every package manifest in
the clone. Handles workspace lifecycle: a prior workspace root is
archived under a timestamped name, never deleted.
"""

import os
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog

from devbox.common.errors import (
    ExternalCommandError,
    ProvisioningError,
    ProvisioningTimeoutError,
)
from devbox.common.process import DEFAULT_RETRY_ATTEMPTS, invoke_program, resolve_executable

logger = structlog.get_logger(__name__)

ARCHIVE_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
PACKAGE_MANIFEST = "package.json"
SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git"})


@dataclass
class BootstrapConfig:
    """Configuration for repository bootstrapping.

    Attributes:
        workspace_root: Directory that receives the clone.
        poll_interval_seconds: Interval between checks for the clone.
        clone_timeout_seconds: Upper bound on the wait for the clone.
        retry_attempts: Attempts for submodule and install commands.
    """

    workspace_root: Path
    poll_interval_seconds: float = 3.0
    clone_timeout_seconds: float = 1800.0
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS


@dataclass
class BootstrapResult:
    """Result of a successful bootstrap.

    Attributes:
        repository_path: Path of the fresh clone.
        archived_root: Where the previous workspace root was moved, if any.
        package_directories: Directories whose dependencies were installed.
    """

    repository_path: Path
    archived_root: Optional[Path] = None
    package_directories: list[Path] = field(default_factory=list)


class WorkspaceError(ProvisioningError):
    """Raised when the workspace root cannot be archived or created."""

    pass


class GitCloneError(ExternalCommandError):
    """Raised when a Git clone exits nonzero or produces nothing."""

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str = "", source: str = ""):
        self.source = source
        detail = stderr.strip()[:500] or f"exit code {exit_code}"
        super().__init__(
            command,
            exit_code,
            stderr,
            message=f"Failed to clone {source}: {detail}",
        )


def archive_name(workspace_root: Path, now: Optional[datetime] = None) -> Path:
    """Build the archive path for an existing workspace root.

    Args:
        workspace_root: The root being archived.
        now: Timestamp to use; defaults to the current UTC time.

    Returns:
        Sibling path named "<root>-<yyyyMMddTHHmmssZ>".
    """
    moment = now or datetime.now(timezone.utc)
    stamp = moment.astimezone(timezone.utc).strftime(ARCHIVE_TIMESTAMP_FORMAT)
    return workspace_root.with_name(f"{workspace_root.name}-{stamp}")


def find_package_directories(root: Path) -> list[Path]:
    """Find every directory under root that holds a package manifest.

    node_modules and .git directories are not searched. Order follows
    the directory walk and is otherwise unspecified.
    """
    found: list[Path] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = [name for name in dirnames if name not in SKIPPED_DIRECTORIES]
        if PACKAGE_MANIFEST in filenames:
            found.append(Path(current))
    return found


class RepositoryBootstrapper:
    """Materializes a fresh clone and installs its dependencies.

    Attributes:
        config: Bootstrap configuration (workspace root, wait bounds).
    """

    def __init__(
        self,
        config: BootstrapConfig,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._popen = popen
        self._sleep = sleep
        self._clock = clock

    def bootstrap(self, repo_name: str, branch: str, base_path: str) -> BootstrapResult:
        """Clone a repository and install its dependencies.

        Args:
            repo_name: Repository name appended to base_path.
            branch: Branch to check out.
            base_path: Clone source prefix (URL or local path).

        Returns:
            BootstrapResult describing the new workspace.

        Raises:
            WorkspaceError: If the workspace root cannot be prepared.
            GitCloneError: If the clone fails.
            ProvisioningTimeoutError: If the clone does not finish in time.
            ExternalCommandError: If a submodule or install step fails.
        """
        archived_root = self.prepare_workspace_root()
        repository_path = self.clone_repository(repo_name, branch, base_path)
        self.update_submodules(repository_path)
        package_directories = self.install_dependencies(self.config.workspace_root)

        logger.info(
            "Bootstrap complete",
            repository=str(repository_path),
            packages=len(package_directories),
        )
        return BootstrapResult(
            repository_path=repository_path,
            archived_root=archived_root,
            package_directories=package_directories,
        )

    def prepare_workspace_root(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Archive any existing workspace root and create an empty one.

        Returns:
            The archive path, or None when there was nothing to archive.

        Raises:
            WorkspaceError: If renaming or creation fails.
        """
        root = self.config.workspace_root
        archived: Optional[Path] = None

        if root.exists():
            archived = archive_name(root, now)
            try:
                root.rename(archived)
            except OSError as exc:
                raise WorkspaceError(f"Failed to archive {root} to {archived}: {exc}") from exc
            logger.info("Archived previous workspace", source=str(root), archive=str(archived))

        try:
            root.mkdir(parents=True)
        except OSError as exc:
            raise WorkspaceError(f"Failed to create workspace at {root}: {exc}") from exc

        return archived

    def clone_repository(self, repo_name: str, branch: str, base_path: str) -> Path:
        """Start a detached clone and wait until it has materialized.

        Returns:
            Path of the cloned repository.
        """
        source = f"{base_path.rstrip('/')}/{repo_name}"
        target = self.config.workspace_root / repo_name
        command = ["git", "clone", "--branch", branch, source, str(target)]

        logger.info("Cloning repository", source=source, branch=branch, target=str(target))
        try:
            process = self._popen(
                [resolve_executable("git"), *command[1:]],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                creationflags=getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0),
            )
        except OSError as exc:
            raise GitCloneError(command, -1, f"Failed to execute git: {exc}", source) from exc

        self._wait_for_clone(process, target, command, source)
        logger.info("Cloned repository", target=str(target))
        return target

    def _wait_for_clone(
        self,
        process: subprocess.Popen,
        target: Path,
        command: list[str],
        source: str,
    ) -> None:
        """Poll for the clone directory, then wait for git to exit.

        Raises:
            GitCloneError: If git exits nonzero or never creates target.
            ProvisioningTimeoutError: If the timeout expires first.
        """
        timeout = self.config.clone_timeout_seconds
        deadline = self._clock() + timeout

        while not target.is_dir():
            exit_code = process.poll()
            if exit_code is not None:
                stderr = process.communicate()[1] or ""
                if exit_code != 0:
                    raise GitCloneError(command, exit_code, stderr, source)
                if not target.is_dir():
                    raise GitCloneError(command, exit_code, "clone produced no directory", source)
                return

            if self._clock() >= deadline:
                self._kill(process)
                raise ProvisioningTimeoutError(
                    f"Clone of {source} did not appear within {timeout:g}s",
                    timeout_seconds=timeout,
                )

            logger.debug("Waiting for clone", target=str(target))
            self._sleep(self.config.poll_interval_seconds)

        remaining = max(deadline - self._clock(), 0.0)
        try:
            _, stderr = process.communicate(timeout=remaining)
        except subprocess.TimeoutExpired as exc:
            self._kill(process)
            raise ProvisioningTimeoutError(
                f"Clone of {source} did not finish within {timeout:g}s",
                timeout_seconds=timeout,
            ) from exc

        if process.returncode != 0:
            raise GitCloneError(command, process.returncode, stderr or "", source)

    def _kill(self, process: subprocess.Popen) -> None:
        process.kill()
        process.communicate()

    def update_submodules(self, repository_path: Path) -> None:
        """Initialize submodules, then update them to their remote heads."""
        invoke_program(
            ["git", "submodule", "update", "--init", "--recursive"],
            retry_attempts=self.config.retry_attempts,
            cwd=repository_path,
        )
        invoke_program(
            ["git", "submodule", "update", "--remote", "--recursive"],
            retry_attempts=self.config.retry_attempts,
            cwd=repository_path,
        )
        logger.info("Updated submodules", repository=str(repository_path))

    def install_dependencies(self, root: Path) -> list[Path]:
        """Run "npm install" in every directory holding a package manifest.

        Returns:
            The directories that were installed.
        """
        package_directories = find_package_directories(root)
        for directory in package_directories:
            logger.info("Installing dependencies", directory=str(directory))
            invoke_program(
                ["npm", "install"],
                retry_attempts=self.config.retry_attempts,
                cwd=directory,
            )
        return package_directories
