"""Package cache redirection onto the Dev Drive.

Each package manager's cache directory is created on the Dev Drive and a
machine-wide environment variable is pointed at it. Writes go through
the EnvironmentWriter interface so they can be recorded in tests.

Machine variables are written to the system Environment key under
HKEY_LOCAL_MACHINE, not with setx: setx parses values starting with "-"
(MAVEN_OPTS) as switches and truncates values at 1024 characters.
"""

import ctypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Any, Callable, Dict, Optional

import structlog

from devbox.common.errors import ProvisioningError
from devbox.devdrive.volumes import normalize_letter

logger = structlog.get_logger(__name__)

PACKAGE_ROOT_NAME = "packages"

ENVIRONMENT_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"

# SendMessageTimeoutW arguments for announcing an environment change
HWND_BROADCAST = 0xFFFF
WM_SETTINGCHANGE = 0x001A
SMTO_ABORTIFHUNG = 0x0002
BROADCAST_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class CacheVariable:
    """A package cache environment variable.

    Attributes:
        name: Environment variable name.
        directory: Cache directory relative to the package root.
        value_template: Variable value with "{path}" standing for the
            absolute cache directory.
    """

    name: str
    directory: str
    value_template: str = "{path}"

    def value_for(self, path: str) -> str:
        return self.value_template.format(path=path)


PACKAGE_CACHE_VARIABLES = (
    CacheVariable("npm_config_cache", "npm"),
    CacheVariable("NUGET_PACKAGES", r".nuget\packages"),
    CacheVariable("VCPKG_DEFAULT_BINARY_CACHE", "vcpkg"),
    CacheVariable("PIP_CACHE_DIR", "pip"),
    CacheVariable("CARGO_HOME", "cargo"),
    CacheVariable("MAVEN_OPTS", "maven", "-Dmaven.repo.local={path}"),
    CacheVariable("GRADLE_USER_HOME", "gradle"),
)


class EnvironmentWriter(ABC):
    """Abstract sink for machine-wide environment variables."""

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Set a machine-wide environment variable, replacing any value."""


def broadcast_environment_change() -> None:
    """Tell running programs (Explorer, new shells) to reload the environment."""
    ctypes.windll.user32.SendMessageTimeoutW(
        HWND_BROADCAST,
        WM_SETTINGCHANGE,
        0,
        "Environment",
        SMTO_ABORTIFHUNG,
        BROADCAST_TIMEOUT_MS,
        None,
    )


class MachineEnvironmentWriter(EnvironmentWriter):
    """Writes machine environment variables to the registry.

    Attributes:
        registry: winreg-compatible module; the real winreg is imported on
            first use when not given.
    """

    def __init__(
        self,
        registry: Optional[Any] = None,
        notify: Callable[[], None] = broadcast_environment_change,
    ):
        self.registry = registry
        self._notify = notify

    def _registry(self) -> Any:
        if self.registry is None:
            import winreg

            self.registry = winreg
        return self.registry

    def set(self, name: str, value: str) -> None:
        """Store a REG_SZ machine variable and announce the change.

        Raises:
            ProvisioningError: If the registry key cannot be written.
        """
        registry = self._registry()
        try:
            key = registry.CreateKeyEx(
                registry.HKEY_LOCAL_MACHINE,
                ENVIRONMENT_KEY,
                0,
                registry.KEY_WRITE,
            )
            try:
                registry.SetValueEx(key, name, 0, registry.REG_SZ, value)
            finally:
                registry.CloseKey(key)
        except OSError as exc:
            raise ProvisioningError(
                f"Failed to set machine environment variable {name}: {exc}"
            ) from exc

        logger.debug("Set machine environment variable", name=name, value=value)
        self._notify()


def package_root(drive_letter: str) -> PureWindowsPath:
    return PureWindowsPath(f"{normalize_letter(drive_letter)}:\\") / PACKAGE_ROOT_NAME


def package_cache_variables(drive_letter: str) -> Dict[str, str]:
    """Compute the cache variables for a Dev Drive letter.

    Returns:
        Mapping of variable name to value, in PACKAGE_CACHE_VARIABLES order.
    """
    root = package_root(drive_letter)
    return {
        variable.name: variable.value_for(str(root / variable.directory))
        for variable in PACKAGE_CACHE_VARIABLES
    }


def make_cache_directory(path: str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def redirect_package_caches(
    drive_letter: str,
    writer: EnvironmentWriter,
    make_directory: Callable[[str], None] = make_cache_directory,
) -> Dict[str, str]:
    """Create each cache directory and point its variable at it.

    Rerunning overwrites the variables with the same values.

    Args:
        drive_letter: Dev Drive letter.
        writer: Destination for the environment variables.
        make_directory: Directory creation function, replaceable in tests.

    Returns:
        The variables that were written.
    """
    root = package_root(drive_letter)
    written: Dict[str, str] = {}

    for variable in PACKAGE_CACHE_VARIABLES:
        directory = str(root / variable.directory)
        make_directory(directory)

        value = variable.value_for(directory)
        writer.set(variable.name, value)
        written[variable.name] = value
        logger.info("Redirected package cache", variable=variable.name, value=value)

    return written
