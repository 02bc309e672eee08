"""Volume management for Dev Drive provisioning.

This module defines the VolumeManager interface the provisioner drives
and its Windows implementation. The interface keeps disk mutation at the
edge so orchestration can be exercised against an in-memory fake.

WindowsVolumeManager drives the stock tools:
- PowerShell (Get-Volume, Set-Partition, Format-Volume) for queries,
  relabeling and formatting
- diskpart for deleting, shrinking and partitioning
- fsutil devdrv for filter policy and trust
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

import structlog

from devbox.common.errors import ProvisioningError
from devbox.common.process import DEFAULT_RETRY_ATTEMPTS, CommandResult, invoke_program

logger = structlog.get_logger(__name__)

DEV_DRIVE_FILESYSTEM = "ReFS"
DEV_DRIVE_LABEL = "DevDrive"
BYTES_PER_GB = 1024 ** 3


@dataclass
class Volume:
    """A formatted volume as reported by the OS.

    Attributes:
        drive_letter: Assigned letter without colon, or None.
        filesystem: Filesystem name (e.g., "NTFS", "ReFS").
        size_bytes: Total size in bytes.
        label: Filesystem label.
        unique_id: OS volume identifier.
    """

    drive_letter: Optional[str]
    filesystem: str
    size_bytes: int
    label: str = ""
    unique_id: str = ""

    @property
    def size_gb(self) -> float:
        return self.size_bytes / BYTES_PER_GB


def normalize_letter(letter: str) -> str:
    """Return an upper-case drive letter without colon or backslash."""
    cleaned = letter.strip().rstrip("\\").rstrip(":").upper()
    if len(cleaned) != 1 or not cleaned.isalpha():
        raise ValueError(f"Invalid drive letter: {letter!r}")
    return cleaned


class VolumeManager(ABC):
    """Abstract interface over the host's volumes."""

    @abstractmethod
    def list_volumes(self) -> List[Volume]:
        """Return all formatted volumes."""

    def get_volume(self, letter: str) -> Optional[Volume]:
        """Return the volume mounted at a drive letter, if any."""
        wanted = normalize_letter(letter)
        for volume in self.list_volumes():
            if volume.drive_letter and volume.drive_letter.upper() == wanted:
                return volume
        return None

    def find_dev_drive(self) -> Optional[Volume]:
        """Return the first existing volume formatted as a Dev Drive."""
        for volume in self.list_volumes():
            if volume.filesystem.lower() == DEV_DRIVE_FILESYSTEM.lower():
                return volume
        return None

    @abstractmethod
    def set_drive_letter(self, volume: Volume, letter: str) -> None:
        """Reassign a volume's drive letter."""

    @abstractmethod
    def delete_volume(self, letter: str) -> None:
        """Destroy the volume at a drive letter, overriding protections."""

    @abstractmethod
    def create_dev_drive(self, system_letter: str, shrink_mb: int, letter: str) -> None:
        """Shrink the system volume and format the freed space as a Dev Drive."""

    @abstractmethod
    def set_allowed_filters(self, letter: str, filters: str) -> None:
        """Apply the minifilter allow-list to a volume."""

    @abstractmethod
    def trust(self, letter: str) -> None:
        """Mark a Dev Drive as trusted."""


class WindowsVolumeManager(VolumeManager):
    """VolumeManager backed by PowerShell, diskpart and fsutil.

    Attributes:
        retry_attempts: Attempts for every external command.
    """

    POWERSHELL = "powershell.exe"
    DISKPART = "diskpart.exe"
    FSUTIL = "fsutil.exe"

    def __init__(self, retry_attempts: int = DEFAULT_RETRY_ATTEMPTS):
        self.retry_attempts = retry_attempts

    def _run(self, command: List[str]) -> CommandResult:
        return invoke_program(command, retry_attempts=self.retry_attempts)

    def _run_powershell(self, script: str) -> CommandResult:
        return self._run([
            self.POWERSHELL,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy", "Bypass",
            "-Command", script,
        ])

    def _run_diskpart(self, commands: List[str]) -> CommandResult:
        """Run diskpart with a script file."""
        with tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".txt",
            delete=False,
        ) as script:
            script.write("\n".join(commands) + "\n")
            script_path = script.name

        logger.debug("Running diskpart", commands=commands)
        try:
            return self._run([self.DISKPART, "/s", script_path])
        finally:
            os.unlink(script_path)

    def list_volumes(self) -> List[Volume]:
        script = (
            "ConvertTo-Json -Compress -InputObject @(Get-Volume | Select-Object "
            "@{n='DriveLetter';e={[string]$_.DriveLetter}}, FileSystem, "
            "FileSystemLabel, Size, UniqueId)"
        )
        result = self._run_powershell(script)
        return parse_volumes(result.stdout)

    def set_drive_letter(self, volume: Volume, letter: str) -> None:
        letter = normalize_letter(letter)
        if not volume.unique_id:
            raise ProvisioningError("Cannot relabel a volume without a unique id")
        logger.info(
            "Reassigning drive letter",
            current=volume.drive_letter,
            requested=letter,
        )
        self._run_powershell(
            f"Get-Volume -UniqueId '{volume.unique_id}' | Get-Partition | "
            f"Set-Partition -NewDriveLetter {letter}"
        )

    def delete_volume(self, letter: str) -> None:
        letter = normalize_letter(letter)
        logger.warning("Deleting volume", drive_letter=letter)
        self._run_diskpart([
            f"select volume {letter}",
            "delete volume override",
        ])

    def create_dev_drive(self, system_letter: str, shrink_mb: int, letter: str) -> None:
        system_letter = normalize_letter(system_letter)
        letter = normalize_letter(letter)
        logger.info(
            "Creating Dev Drive",
            system_volume=system_letter,
            shrink_mb=shrink_mb,
            drive_letter=letter,
        )
        self._run_diskpart([
            f"select volume {system_letter}",
            f"shrink desired={shrink_mb}",
            "create partition primary",
            f"assign letter={letter}",
        ])
        self._run_powershell(
            f"Format-Volume -DriveLetter {letter} -FileSystem {DEV_DRIVE_FILESYSTEM} "
            f"-NewFileSystemLabel {DEV_DRIVE_LABEL} -DevDrive -Confirm:$false -Force"
        )

    def set_allowed_filters(self, letter: str, filters: str) -> None:
        letter = normalize_letter(letter)
        logger.info("Setting allowed filters", drive_letter=letter, filters=filters)
        self._run([
            self.FSUTIL, "devdrv", "setFiltersAllowed", "/f",
            "/volume", f"{letter}:", filters,
        ])

    def trust(self, letter: str) -> None:
        letter = normalize_letter(letter)
        logger.info("Trusting Dev Drive", drive_letter=letter)
        self._run([self.FSUTIL, "devdrv", "trust", "/f", f"{letter}:"])


def parse_volumes(payload: str) -> List[Volume]:
    """Parse Get-Volume JSON output into Volume objects.

    Entries without a filesystem (unformatted or system reserved) are
    skipped.

    Raises:
        ProvisioningError: If the payload is not valid JSON.
    """
    if not payload.strip():
        return []
    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ProvisioningError(f"Unexpected Get-Volume output: {exc}") from exc

    if isinstance(data, dict):
        data = [data]

    volumes: List[Volume] = []
    for entry in data:
        filesystem = entry.get("FileSystem") or ""
        if not filesystem:
            continue
        letter = (entry.get("DriveLetter") or "").strip()
        volumes.append(Volume(
            drive_letter=letter or None,
            filesystem=filesystem,
            size_bytes=int(entry.get("Size") or 0),
            label=entry.get("FileSystemLabel") or "",
            unique_id=entry.get("UniqueId") or "",
        ))
    return volumes
