"""Dev Drive provisioning.

This package creates or relabels a Dev Drive volume, applies the
filesystem minifilter allow-list, trusts the volume and points package
manager caches at it. Disk and environment changes go through the
VolumeManager and EnvironmentWriter interfaces.
"""

from devbox.devdrive.environment import EnvironmentWriter, MachineEnvironmentWriter
from devbox.devdrive.provisioner import (
    DevDriveOptions,
    DevDriveProvisioner,
    DevDriveResult,
    VolumeAction,
)
from devbox.devdrive.volumes import Volume, VolumeManager, WindowsVolumeManager

__all__ = [
    "DevDriveOptions",
    "DevDriveProvisioner",
    "DevDriveResult",
    "EnvironmentWriter",
    "MachineEnvironmentWriter",
    "Volume",
    "VolumeAction",
    "VolumeManager",
    "WindowsVolumeManager",
]
