"""Dev Drive provisioning workflow.

Runs the provisioning steps once, in order, failing fast:

1. Check the OS supports Dev Drive
2. Reuse an existing Dev Drive (relabeling it if needed) or carve a new
   one out of the system volume
3. Apply the minifilter allow-list and trust the volume
4. Redirect package caches onto the volume

Nothing is rolled back when a step fails; changes made by earlier steps
persist.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from devbox.common.errors import ProvisioningError
from devbox.devdrive.environment import (
    EnvironmentWriter,
    make_cache_directory,
    redirect_package_caches,
)
from devbox.devdrive.filters import allowed_filters
from devbox.devdrive.host import ensure_supported
from devbox.devdrive.sizing import compute_dev_drive_size, shrink_size_mb
from devbox.devdrive.volumes import VolumeManager, normalize_letter

logger = structlog.get_logger(__name__)


class VolumeAction(str, Enum):
    """What volume selection did."""

    REUSED = "reused"
    RELABELED = "relabeled"
    CREATED = "created"


@dataclass
class DevDriveOptions:
    """Options for Dev Drive provisioning.

    Attributes:
        drive_letter: Letter the Dev Drive must end up on.
        os_drive_min_size_gb: Space to keep on the system volume in GB.
        enable_gvfs: Allow the VFS for Git projection filter.
        enable_containers: Allow container filesystem filters.
        system_drive: Letter of the system volume to shrink.
    """

    drive_letter: str = "E"
    os_drive_min_size_gb: int = 250
    enable_gvfs: bool = False
    enable_containers: bool = False
    system_drive: str = "C"

    def __post_init__(self):
        self.drive_letter = normalize_letter(self.drive_letter)
        self.system_drive = normalize_letter(self.system_drive)
        if self.drive_letter == self.system_drive:
            raise ValueError("Dev Drive letter cannot be the system drive letter")
        if self.os_drive_min_size_gb < 0:
            raise ValueError("os_drive_min_size_gb cannot be negative")


@dataclass
class DevDriveResult:
    """Result of a successful provisioning run.

    Attributes:
        drive_letter: Letter of the provisioned Dev Drive.
        action: How the volume was obtained.
        size_gb: Size of a newly created volume, if one was created.
        deleted_existing: True when a volume at the letter was destroyed.
        filters: Applied minifilter allow-list.
        environment: Package cache variables that were written.
    """

    drive_letter: str
    action: VolumeAction
    size_gb: Optional[float] = None
    deleted_existing: bool = False
    filters: str = ""
    environment: Dict[str, str] = field(default_factory=dict)


class DevDriveProvisioner:
    """Provisions a Dev Drive through injected system effects.

    Attributes:
        options: Provisioning options.
        volumes: Volume manager performing disk changes.
        environment: Writer for machine environment variables.
    """

    def __init__(
        self,
        options: DevDriveOptions,
        volumes: VolumeManager,
        environment: EnvironmentWriter,
        windows_build: Optional[int] = None,
        make_directory: Callable[[str], None] = make_cache_directory,
    ):
        self.options = options
        self.volumes = volumes
        self.environment = environment
        self._windows_build = windows_build
        self._make_directory = make_directory

    def provision(self) -> DevDriveResult:
        """Run every provisioning step.

        Returns:
            DevDriveResult describing the changes made.

        Raises:
            UnsupportedPlatformError: If the OS is too old.
            InsufficientSpaceError: If the system volume is too small.
            ExternalCommandError: If a disk command fails.
            ProvisioningError: If an environment variable cannot be written.
        """
        build = ensure_supported(self._windows_build)
        logger.info("Provisioning Dev Drive", windows_build=build, drive_letter=self.options.drive_letter)

        result = self.select_volume()
        result.filters = self.apply_filter_policy()

        result.environment = redirect_package_caches(
            self.options.drive_letter,
            self.environment,
            make_directory=self._make_directory,
        )

        logger.info("Dev Drive provisioned", drive_letter=result.drive_letter, action=result.action.value)
        return result

    def select_volume(self) -> DevDriveResult:
        """Reuse an existing Dev Drive or create a new one."""
        letter = self.options.drive_letter
        existing = self.volumes.find_dev_drive()

        if existing is not None:
            if (existing.drive_letter or "").upper() == letter:
                logger.info("Existing Dev Drive already at requested letter", drive_letter=letter)
                return DevDriveResult(drive_letter=letter, action=VolumeAction.REUSED)
            self.volumes.set_drive_letter(existing, letter)
            return DevDriveResult(drive_letter=letter, action=VolumeAction.RELABELED)

        return self.create_volume()

    def create_volume(self) -> DevDriveResult:
        """Shrink the system volume and create a Dev Drive in the freed space.

        Sizing is validated before any disk change, so an
        InsufficientSpaceError leaves the disk untouched.
        """
        letter = self.options.drive_letter
        system = self.volumes.get_volume(self.options.system_drive)
        if system is None:
            raise ProvisioningError(f"System volume {self.options.system_drive}: not found")

        target_gb = compute_dev_drive_size(system.size_gb, self.options.os_drive_min_size_gb)
        shrink_mb = shrink_size_mb(target_gb)
        logger.info(
            "Computed Dev Drive size",
            system_size_gb=round(system.size_gb, 1),
            target_gb=round(target_gb, 1),
            shrink_mb=shrink_mb,
        )

        deleted = False
        if self.volumes.get_volume(letter) is not None:
            self.volumes.delete_volume(letter)
            deleted = True

        self.volumes.create_dev_drive(self.options.system_drive, shrink_mb, letter)
        return DevDriveResult(
            drive_letter=letter,
            action=VolumeAction.CREATED,
            size_gb=target_gb,
            deleted_existing=deleted,
        )

    def apply_filter_policy(self) -> str:
        """Apply the filter allow-list and trust the Dev Drive."""
        filters = allowed_filters(self.options.enable_gvfs, self.options.enable_containers)
        self.volumes.set_allowed_filters(self.options.drive_letter, filters)
        self.volumes.trust(self.options.drive_letter)
        return filters
