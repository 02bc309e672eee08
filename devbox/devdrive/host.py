"""Operating system support checks."""

import sys
from typing import Optional

from devbox.common.errors import UnsupportedPlatformError

# Dev Drive ships with Windows 11 22H2 and later
MIN_WINDOWS_BUILD = 22621


def windows_build() -> Optional[int]:
    """Return the Windows build number, or None on other systems."""
    if sys.platform != "win32":
        return None
    return sys.getwindowsversion().build


def ensure_supported(build: Optional[int] = None) -> int:
    """Fail unless the host can create a Dev Drive.

    Args:
        build: Build number to check; defaults to the running system's.

    Returns:
        The accepted build number.

    Raises:
        UnsupportedPlatformError: If the host is not Windows or its build
            is older than MIN_WINDOWS_BUILD.
    """
    if build is None:
        build = windows_build()
    if build is None:
        raise UnsupportedPlatformError("Dev Drive provisioning requires Windows")
    if build < MIN_WINDOWS_BUILD:
        raise UnsupportedPlatformError(
            f"Windows build {build} does not support Dev Drive; "
            f"build {MIN_WINDOWS_BUILD} or later is required"
        )
    return build
