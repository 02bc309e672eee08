"""Exception hierarchy shared by the provisioning tools.

Every failure a tool can surface to its caller derives from
ProvisioningError, so command-line entry points catch one type, log it
and exit nonzero.
"""

from typing import Optional, Sequence


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""

    pass


class InvalidInputError(ProvisioningError):
    """Raised when a configuration source is malformed or does not exist."""

    pass


class MissingConfigurationError(ProvisioningError):
    """Raised when no configuration source was supplied at all."""

    pass


class UnsupportedPlatformError(ProvisioningError):
    """Raised when the host operating system is too old or not Windows."""

    pass


class InsufficientSpaceError(ProvisioningError):
    """Raised when disk sizing would violate the safety floors.

    Attributes:
        system_size_gb: Size of the system volume in GB.
        os_drive_min_size_gb: Space requested to remain on the system volume.
    """

    def __init__(self, message: str, system_size_gb: float, os_drive_min_size_gb: float):
        self.system_size_gb = system_size_gb
        self.os_drive_min_size_gb = os_drive_min_size_gb
        super().__init__(message)


class ExternalCommandError(ProvisioningError):
    """Raised when an external program fails or cannot be started.

    Attributes:
        command: The argument vector that was executed.
        exit_code: Process exit code (-1 when the process never started).
        stderr: Captured standard error, if any.
    """

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int,
        stderr: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr or ""
        if message is None:
            message = f"Command {' '.join(self.command)!r} failed with exit code {exit_code}"
            if self.stderr.strip():
                message = f"{message}: {self.stderr.strip()[:500]}"
        super().__init__(message)


class ProvisioningTimeoutError(ProvisioningError):
    """Raised when a bounded wait on an external operation expires.

    Attributes:
        timeout_seconds: The wait budget that was exceeded.
    """

    def __init__(self, message: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(message)


class ReleaseFeedError(ProvisioningError):
    """Raised when the release feed cannot supply the requested release.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        request_url: The URL that was requested, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.request_url = request_url
        super().__init__(message)
