"""Dev Drive size arithmetic."""

from devbox.common.errors import InsufficientSpaceError

# Minimum free space, in GB, that must stay on the system volume beyond
# the requested reserve
SAFETY_MARGIN_GB = 50

# Smallest Dev Drive Windows will format
MIN_DEV_DRIVE_SIZE_GB = 20


def compute_dev_drive_size(system_size_gb: float, os_drive_min_size_gb: float) -> float:
    """Compute the size of the new Dev Drive carved from the system volume.

    The new volume takes everything beyond the requested reserve:
    target = system size - reserve.

    Args:
        system_size_gb: Current size of the system volume in GB.
        os_drive_min_size_gb: Space to keep on the system volume in GB.

    Returns:
        The target Dev Drive size in GB.

    Raises:
        InsufficientSpaceError: If system size minus twice the reserve is
            below SAFETY_MARGIN_GB, or the target is below
            MIN_DEV_DRIVE_SIZE_GB.
    """
    target_gb = system_size_gb - os_drive_min_size_gb
    headroom_gb = system_size_gb - os_drive_min_size_gb - os_drive_min_size_gb

    if headroom_gb < SAFETY_MARGIN_GB:
        raise InsufficientSpaceError(
            f"System volume of {system_size_gb:.0f} GB cannot keep "
            f"{os_drive_min_size_gb:g} GB reserved with a {SAFETY_MARGIN_GB} GB margin",
            system_size_gb=system_size_gb,
            os_drive_min_size_gb=os_drive_min_size_gb,
        )
    if target_gb < MIN_DEV_DRIVE_SIZE_GB:
        raise InsufficientSpaceError(
            f"Dev Drive would be {target_gb:.0f} GB; at least "
            f"{MIN_DEV_DRIVE_SIZE_GB} GB is required",
            system_size_gb=system_size_gb,
            os_drive_min_size_gb=os_drive_min_size_gb,
        )
    return target_gb


def shrink_size_mb(target_gb: float) -> int:
    """Convert a target size in GB to the diskpart shrink amount in MB."""
    return round(target_gb) * 1024
