"""Unit tests for repository bootstrapping.

Tests workspace archiving, the bounded clone wait, submodule updates,
and per-package dependency installation for the RepositoryBootstrapper.
"""

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import call, patch

import pytest

from devbox.bootstrap.workspace import (
    BootstrapConfig,
    GitCloneError,
    RepositoryBootstrapper,
    archive_name,
    find_package_directories,
)
from devbox.common.errors import ProvisioningTimeoutError


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCloneProcess:
    """Stands in for the detached git clone.

    The target directory appears after `appear_after` polls; the process
    reports `returncode` once `exit_after` polls have happened.
    """

    def __init__(self, target: Path, appear_after: int = 0, exit_after=None,
                 returncode: int = 0, stderr: str = "", hang: bool = False):
        self.target = target
        self.appear_after = appear_after
        self.exit_after = exit_after
        self.final_returncode = returncode
        self.stderr = stderr
        self.hang = hang
        self.polls = 0
        self.returncode = None
        self.killed = False

    def poll(self):
        self.polls += 1
        if self.appear_after is not None and self.polls > self.appear_after:
            self.target.mkdir(parents=True, exist_ok=True)
        if self.exit_after is not None and self.polls > self.exit_after:
            self.returncode = self.final_returncode
        return self.returncode

    def communicate(self, timeout=None):
        if self.hang and not self.killed:
            raise subprocess.TimeoutExpired("git", timeout)
        self.returncode = -9 if self.killed else self.final_returncode
        return None, self.stderr

    def kill(self):
        self.killed = True


@pytest.fixture
def workspace_root(tmp_path):
    return tmp_path / "Repos"


@pytest.fixture
def clock():
    return FakeClock()


def make_bootstrapper(workspace_root, clock, process_factory, timeout=30.0):
    config = BootstrapConfig(
        workspace_root=workspace_root,
        poll_interval_seconds=3.0,
        clone_timeout_seconds=timeout,
    )
    return RepositoryBootstrapper(
        config,
        popen=process_factory,
        sleep=clock.sleep,
        clock=clock,
    )


class TestArchiveName:

    def test_utc_timestamp_suffix(self, workspace_root):
        moment = datetime(2024, 3, 5, 7, 8, 9, tzinfo=timezone.utc)
        assert archive_name(workspace_root, moment).name == "Repos-20240305T070809Z"

    def test_converts_to_utc(self, workspace_root):
        moment = datetime(2024, 3, 5, 9, 8, 9, tzinfo=timezone(timedelta(hours=2)))
        assert archive_name(workspace_root, moment).name == "Repos-20240305T070809Z"

    def test_sibling_of_root(self, workspace_root):
        assert archive_name(workspace_root).parent == workspace_root.parent


class TestPrepareWorkspaceRoot:

    def test_creates_missing_root(self, workspace_root, clock):
        bootstrapper = make_bootstrapper(workspace_root, clock, None)
        assert bootstrapper.prepare_workspace_root() is None
        assert workspace_root.is_dir()

    def test_archives_existing_root_preserving_content(self, workspace_root, clock):
        (workspace_root / "old-repo" / "src").mkdir(parents=True)
        (workspace_root / "old-repo" / "src" / "main.ts").write_text("export {}")
        moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        bootstrapper = make_bootstrapper(workspace_root, clock, None)
        archived = bootstrapper.prepare_workspace_root(now=moment)

        assert archived == workspace_root.parent / "Repos-20240102T030405Z"
        assert (archived / "old-repo" / "src" / "main.ts").read_text() == "export {}"
        assert workspace_root.is_dir()
        assert list(workspace_root.iterdir()) == []


class TestFindPackageDirectories:

    def test_finds_nested_manifests_and_skips_node_modules(self, tmp_path):
        for directory in ["app", "app/packages/ui", "tools/cli", "app/node_modules/left-pad", ".git/hooks"]:
            (tmp_path / directory).mkdir(parents=True)
            (tmp_path / directory / "package.json").write_text("{}")
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "README.md").write_text("docs")

        found = {path.relative_to(tmp_path).as_posix() for path in find_package_directories(tmp_path)}

        assert found == {"app", "app/packages/ui", "tools/cli"}

    def test_root_manifest(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        assert find_package_directories(tmp_path) == [tmp_path]

    def test_no_manifests(self, tmp_path):
        assert find_package_directories(tmp_path) == []


class TestCloneRepository:

    def test_waits_for_directory_then_process(self, workspace_root, clock):
        workspace_root.mkdir()
        target = workspace_root / "service"
        processes = []

        def factory(argv, **kwargs):
            processes.append((argv, kwargs))
            return FakeCloneProcess(target, appear_after=2)

        bootstrapper = make_bootstrapper(workspace_root, clock, factory)
        path = bootstrapper.clone_repository("service", "main", "https://github.com/org/")

        assert path == target
        argv, kwargs = processes[0]
        assert argv[1:] == ["clone", "--branch", "main", "https://github.com/org/service", str(target)]
        assert clock.sleeps == [3.0, 3.0, 3.0]

    def test_clone_failure_raises(self, workspace_root, clock):
        workspace_root.mkdir()
        target = workspace_root / "service"

        def factory(argv, **kwargs):
            return FakeCloneProcess(
                target, appear_after=None, exit_after=1, returncode=128,
                stderr="fatal: Remote branch nope not found",
            )

        bootstrapper = make_bootstrapper(workspace_root, clock, factory)
        with pytest.raises(GitCloneError, match="Remote branch nope not found") as exc_info:
            bootstrapper.clone_repository("service", "nope", "https://github.com/org")
        assert exc_info.value.exit_code == 128

    def test_clone_never_appearing_times_out(self, workspace_root, clock):
        workspace_root.mkdir()
        target = workspace_root / "service"
        process = FakeCloneProcess(target, appear_after=None)

        bootstrapper = make_bootstrapper(workspace_root, clock, lambda argv, **kw: process, timeout=10.0)
        with pytest.raises(ProvisioningTimeoutError) as exc_info:
            bootstrapper.clone_repository("service", "main", "https://github.com/org")

        assert exc_info.value.timeout_seconds == 10.0
        assert process.killed
        assert clock.sleeps == [3.0, 3.0, 3.0, 3.0]

    def test_clone_that_never_finishes_times_out(self, workspace_root, clock):
        workspace_root.mkdir()
        target = workspace_root / "service"
        process = FakeCloneProcess(target, appear_after=0, hang=True)

        bootstrapper = make_bootstrapper(workspace_root, clock, lambda argv, **kw: process)
        with pytest.raises(ProvisioningTimeoutError):
            bootstrapper.clone_repository("service", "main", "https://github.com/org")
        assert process.killed

    def test_failure_after_directory_appears(self, workspace_root, clock):
        workspace_root.mkdir()
        target = workspace_root / "service"

        def factory(argv, **kwargs):
            return FakeCloneProcess(target, appear_after=0, returncode=1, stderr="checkout failed")

        bootstrapper = make_bootstrapper(workspace_root, clock, factory)
        with pytest.raises(GitCloneError, match="checkout failed"):
            bootstrapper.clone_repository("service", "main", "https://github.com/org")

    def test_missing_git_raises_clone_error(self, workspace_root, clock):
        workspace_root.mkdir()

        def factory(argv, **kwargs):
            raise FileNotFoundError("git")

        bootstrapper = make_bootstrapper(workspace_root, clock, factory)
        with pytest.raises(GitCloneError, match="Failed to execute git"):
            bootstrapper.clone_repository("service", "main", "https://github.com/org")


class TestSubmodulesAndDependencies:

    def test_update_submodules_runs_init_then_remote(self, workspace_root, clock):
        bootstrapper = make_bootstrapper(workspace_root, clock, None)
        repo = workspace_root / "service"

        with patch("devbox.bootstrap.workspace.invoke_program") as invoke:
            bootstrapper.update_submodules(repo)

        assert invoke.call_args_list == [
            call(["git", "submodule", "update", "--init", "--recursive"], retry_attempts=3, cwd=repo),
            call(["git", "submodule", "update", "--remote", "--recursive"], retry_attempts=3, cwd=repo),
        ]

    def test_install_dependencies_runs_npm_in_each_package(self, tmp_path, clock):
        for directory in ["service", "service/web"]:
            (tmp_path / directory).mkdir(parents=True)
            (tmp_path / directory / "package.json").write_text("{}")

        bootstrapper = make_bootstrapper(tmp_path, clock, None)
        with patch("devbox.bootstrap.workspace.invoke_program") as invoke:
            installed = bootstrapper.install_dependencies(tmp_path)

        assert {p.relative_to(tmp_path).as_posix() for p in installed} == {"service", "service/web"}
        assert sorted(c.kwargs["cwd"] for c in invoke.call_args_list) == sorted(installed)
        assert all(c.args[0] == ["npm", "install"] for c in invoke.call_args_list)


class TestBootstrap:

    def test_end_to_end(self, workspace_root, clock):
        (workspace_root / "stale").mkdir(parents=True)
        target = workspace_root / "service"

        class CloneCreatingManifest(FakeCloneProcess):
            def poll(self):
                result = super().poll()
                if self.target.is_dir():
                    (self.target / "package.json").write_text("{}")
                return result

        def factory(argv, **kwargs):
            return CloneCreatingManifest(target, appear_after=0)

        bootstrapper = make_bootstrapper(workspace_root, clock, factory)
        with patch("devbox.bootstrap.workspace.invoke_program") as invoke:
            result = bootstrapper.bootstrap("service", "main", "https://github.com/org")

        assert result.repository_path == target
        assert result.archived_root is not None
        assert (result.archived_root / "stale").is_dir()
        assert result.package_directories == [target]
        commands = [c.args[0] for c in invoke.call_args_list]
        assert commands == [
            ["git", "submodule", "update", "--init", "--recursive"],
            ["git", "submodule", "update", "--remote", "--recursive"],
            ["npm", "install"],
        ]
