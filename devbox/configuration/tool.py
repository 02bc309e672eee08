"""Discovery and on-demand installation of the configuration tool.

The tool is looked up on PATH and in its install directory first. When
absent, the latest release is downloaded from the release feed and
expanded into a per-user or per-machine install directory, depending on
whether the process runs elevated.
"""

import ctypes
import os
import shutil
import sys
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import structlog

from devbox.common.errors import ProvisioningError, ReleaseFeedError
from devbox.configuration.release import (
    ReleaseFeedClient,
    host_architecture,
    select_asset,
)

logger = structlog.get_logger(__name__)


def is_elevated() -> bool:
    """Return True when running as Administrator (root elsewhere)."""
    if sys.platform == "win32":
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return hasattr(os, "geteuid") and os.geteuid() == 0


def default_install_dir(tool_name: str, elevated: bool) -> Path:
    """Choose the install directory for the invoking identity.

    Elevated processes install for the machine under %ProgramFiles%;
    everyone else installs under %LOCALAPPDATA%.
    """
    if elevated:
        base = os.environ.get("ProgramFiles", r"C:\Program Files")
    else:
        base = os.environ.get("LOCALAPPDATA", str(Path.home() / "AppData" / "Local"))
    return Path(base) / tool_name


def executable_name(tool_name: str) -> str:
    if sys.platform == "win32" and not tool_name.lower().endswith(".exe"):
        return f"{tool_name}.exe"
    return tool_name


@dataclass
class ToolLocation:
    """Where the configuration tool was found.

    Attributes:
        path: Absolute path of the executable.
        installed: True when this run downloaded it.
        tag: Release tag that was installed, if any.
    """

    path: Path
    installed: bool = False
    tag: Optional[str] = None


class ToolInstaller:
    """Ensures the configuration tool is available locally.

    Attributes:
        tool_name: Executable name without extension.
        feed: Release feed client used for downloads.
        install_dir: Target directory for extracted releases.
        architecture: Asset architecture string.
    """

    def __init__(
        self,
        tool_name: str,
        feed: ReleaseFeedClient,
        install_dir: Optional[Path] = None,
        architecture: Optional[str] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.tool_name = tool_name
        self.feed = feed
        self.install_dir = install_dir or default_install_dir(tool_name, is_elevated())
        self.architecture = architecture
        self._which = which

    def find_existing(self) -> Optional[Path]:
        """Look up the tool on PATH, then in the install directory."""
        found = self._which(self.tool_name)
        if found:
            return Path(found)

        candidate = self.install_dir / executable_name(self.tool_name)
        if candidate.is_file():
            return candidate
        return None

    async def ensure_tool(self) -> ToolLocation:
        """Return the tool location, installing the latest release if needed.

        Raises:
            ReleaseFeedError: If the feed has no usable release.
            ProvisioningError: If the archive does not contain the tool.
        """
        existing = self.find_existing()
        if existing is not None:
            logger.info("Configuration tool found", path=str(existing))
            return ToolLocation(path=existing)

        logger.info(
            "Configuration tool not found, installing from release feed",
            repository=self.feed.repository,
            install_dir=str(self.install_dir),
        )
        tag = await self._latest_tag()
        release = await self.feed.get_release_by_tag(tag)
        architecture = self.architecture or host_architecture()
        asset_url = select_asset(release, architecture)

        with tempfile.TemporaryDirectory() as scratch:
            archive = Path(scratch) / asset_url.rsplit("/", 1)[-1]
            await self.feed.download(asset_url, archive)
            self._expand_archive(archive)

        executable = self.install_dir / executable_name(self.tool_name)
        if not executable.is_file():
            raise ProvisioningError(
                f"Release {tag} did not contain {executable.name} at {self.install_dir}"
            )

        logger.info("Installed configuration tool", tag=tag, path=str(executable))
        return ToolLocation(path=executable, installed=True, tag=tag)

    async def _latest_tag(self) -> str:
        tags = await self.feed.list_tags()
        if not tags:
            raise ReleaseFeedError(f"No tags published for {self.feed.repository}")
        return tags[0]

    def _expand_archive(self, archive: Path) -> None:
        """Extract a zip archive into the install directory.

        Raises:
            ProvisioningError: If the file is not a readable zip archive.
        """
        self.install_dir.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(archive) as bundle:
                bundle.extractall(self.install_dir)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ProvisioningError(f"Failed to expand {archive.name}: {exc}") from exc
