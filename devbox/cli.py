"""Command-line entry points for the provisioning tools.

Each tool is a standalone click command installed as its own console
script:

\b
    devbox-configure  Apply a configuration document with DSC
    devbox-bootstrap  Clone a repository and install its dependencies
    devbox-devdrive   Create a Dev Drive and redirect package caches

Failures are logged with a stack trace and end the process with exit
status 1.
"""

import asyncio
import sys
from functools import partial
from pathlib import Path
from typing import NoReturn, Optional

import click
import structlog
from pydantic import ValidationError

from devbox.bootstrap.workspace import BootstrapConfig, RepositoryBootstrapper
from devbox.common.config import DevBoxSettings, get_settings
from devbox.common.errors import ProvisioningError
from devbox.common.logging import configure_logging
from devbox.configuration.release import ReleaseFeedClient
from devbox.configuration.runner import ConfigurationRunner
from devbox.configuration.source import fetch_uri, resolve_configuration
from devbox.configuration.tool import ToolInstaller, ToolLocation
from devbox.devdrive.environment import MachineEnvironmentWriter
from devbox.devdrive.provisioner import DevDriveOptions, DevDriveProvisioner
from devbox.devdrive.volumes import WindowsVolumeManager

logger = structlog.get_logger(__name__)


def _load_settings(**overrides) -> DevBoxSettings:
    try:
        settings = get_settings(**overrides)
    except ValidationError as exc:
        raise click.UsageError(f"Invalid configuration: {exc}") from exc
    configure_logging(settings.log_level, settings.log_json)
    return settings


def _fail(exc: Exception) -> NoReturn:
    logger.error("Provisioning failed", error=str(exc), exc_info=True)
    sys.exit(1)


async def _ensure_tool(settings: DevBoxSettings) -> ToolLocation:
    async with ReleaseFeedClient(
        repository=settings.release_feed_repository,
        base_url=settings.release_feed_url,
        token=settings.github_token,
        timeout=settings.request_timeout_seconds,
    ) as feed:
        installer = ToolInstaller(settings.tool_name, feed)
        return await installer.ensure_tool()


@click.command("configure")
@click.argument("configuration_path", required=False)
@click.option(
    "--inline-configuration",
    "-i",
    default=None,
    help="Configuration document text (instead of CONFIGURATION_PATH)",
)
@click.option("--log-level", default=None, help="Log level (default: INFO)")
def configure(
    configuration_path: Optional[str],
    inline_configuration: Optional[str],
    log_level: Optional[str],
) -> None:
    """Apply a configuration document with the DSC tool.

    CONFIGURATION_PATH is an absolute URI or a local file. The tool is
    downloaded from its release feed when it is not installed. The exit
    status is the tool's own.

    \b
    Examples:
        devbox-configure https://example.com/devbox.dsc.yaml
        devbox-configure .\\devbox.dsc.yaml
        devbox-configure --inline-configuration "$(cat devbox.dsc.yaml)"
    """
    settings = _load_settings(log_level=log_level)

    try:
        document = resolve_configuration(
            configuration_path,
            inline_configuration,
            fetch=partial(fetch_uri, timeout=settings.request_timeout_seconds),
        )
        location = asyncio.run(_ensure_tool(settings))
        result = ConfigurationRunner(location.path).apply(document)
    except ProvisioningError as exc:
        _fail(exc)

    sys.exit(result.exit_code)


@click.command("bootstrap")
@click.argument("repo_name")
@click.argument("branch")
@click.argument("base_path")
@click.option(
    "--workspace-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Workspace root (default: %USERPROFILE%\\Repos)",
)
@click.option(
    "--clone-timeout",
    type=float,
    default=None,
    help="Seconds to wait for the clone (default: 1800)",
)
@click.option("--log-level", default=None, help="Log level (default: INFO)")
def bootstrap(
    repo_name: str,
    branch: str,
    base_path: str,
    workspace_root: Optional[Path],
    clone_timeout: Optional[float],
    log_level: Optional[str],
) -> None:
    """Clone BASE_PATH/REPO_NAME at BRANCH into a fresh workspace.

    An existing workspace root is renamed with a UTC timestamp suffix
    before the clone. Submodules are updated and "npm install" runs in
    every directory holding a package.json.

    \b
    Examples:
        devbox-bootstrap my-service main https://github.com/my-org
    """
    settings = _load_settings(
        workspace_root=workspace_root,
        clone_timeout_seconds=clone_timeout,
        log_level=log_level,
    )
    bootstrapper = RepositoryBootstrapper(
        BootstrapConfig(
            workspace_root=settings.workspace_root,
            poll_interval_seconds=settings.clone_poll_interval_seconds,
            clone_timeout_seconds=settings.clone_timeout_seconds,
            retry_attempts=settings.retry_attempts,
        )
    )

    try:
        result = bootstrapper.bootstrap(repo_name, branch, base_path)
    except ProvisioningError as exc:
        _fail(exc)

    click.echo(f"Cloned {repo_name} into {result.repository_path}")
    if result.archived_root is not None:
        click.echo(f"Previous workspace kept at {result.archived_root}")


@click.command("devdrive")
@click.option(
    "--dev-drive",
    "dev_drive",
    default="E",
    show_default=True,
    help="Drive letter for the Dev Drive",
)
@click.option(
    "--os-drive-min-size-gb",
    type=click.IntRange(min=0),
    default=250,
    show_default=True,
    help="Space to keep on the system volume, in GB",
)
@click.option("--enable-gvfs", is_flag=True, help="Allow the VFS for Git filter")
@click.option("--enable-containers", is_flag=True, help="Allow container filters")
@click.option("--log-level", default=None, help="Log level (default: INFO)")
def devdrive(
    dev_drive: str,
    os_drive_min_size_gb: int,
    enable_gvfs: bool,
    enable_containers: bool,
    log_level: Optional[str],
) -> None:
    """Create a Dev Drive and redirect package caches onto it.

    An existing Dev Drive is reused (and moved to the requested letter).
    Otherwise the system volume is shrunk and a new volume is formatted;
    any volume already at the requested letter is deleted first.

    \b
    Examples:
        devbox-devdrive --dev-drive E --os-drive-min-size-gb 250
        devbox-devdrive --enable-gvfs --enable-containers
    """
    settings = _load_settings(log_level=log_level)

    try:
        options = DevDriveOptions(
            drive_letter=dev_drive,
            os_drive_min_size_gb=os_drive_min_size_gb,
            enable_gvfs=enable_gvfs,
            enable_containers=enable_containers,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--dev-drive") from exc

    provisioner = DevDriveProvisioner(
        options,
        volumes=WindowsVolumeManager(retry_attempts=settings.retry_attempts),
        environment=MachineEnvironmentWriter(),
    )

    try:
        result = provisioner.provision()
    except (ProvisioningError, OSError) as exc:
        _fail(exc)

    click.echo(f"Dev Drive {result.drive_letter}: {result.action.value}")

