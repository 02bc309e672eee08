"""Shared configuration, logging, error and process helpers."""

from devbox.common.errors import (
    ExternalCommandError,
    InsufficientSpaceError,
    InvalidInputError,
    MissingConfigurationError,
    ProvisioningError,
    ProvisioningTimeoutError,
    ReleaseFeedError,
    UnsupportedPlatformError,
)

__all__ = [
    "ExternalCommandError",
    "InsufficientSpaceError",
    "InvalidInputError",
    "MissingConfigurationError",
    "ProvisioningError",
    "ProvisioningTimeoutError",
    "ReleaseFeedError",
    "UnsupportedPlatformError",
]
