"""Provisioning configuration using pydantic-settings.

This module defines the DevBoxSettings class that reads configuration
from environment variables with the DEVBOX_ prefix. Every field has a
default, so the tools start without any environment set; command-line
options override individual fields.
"""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_workspace_root() -> Path:
    return Path.home() / "Repos"


class DevBoxSettings(BaseSettings):
    """Provisioning configuration from environment variables.

    All environment variables are prefixed with DEVBOX_ (e.g., DEVBOX_GITHUB_TOKEN).
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVBOX_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Release Feed Configuration
    # -------------------------------------------------------------------------
    # Base URL of the GitHub-compatible release API
    release_feed_url: str = "https://api.github.com"

    # owner/name of the repository publishing the configuration tool
    release_feed_repository: str = "PowerShell/DSC"

    # Optional API token; anonymous requests are rate limited
    github_token: str = ""

    # Seconds before an HTTP request is abandoned
    request_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Configuration Tool
    # -------------------------------------------------------------------------
    # Executable name looked up on PATH and inside the install directory
    tool_name: str = "dsc"

    # -------------------------------------------------------------------------
    # Workspace Configuration
    # -------------------------------------------------------------------------
    # Fixed root that receives fresh clones (%USERPROFILE%\Repos)
    workspace_root: Path = _default_workspace_root()

    # Interval between checks for the cloned directory
    clone_poll_interval_seconds: float = 3.0

    # Upper bound on the wait for a clone to materialize
    clone_timeout_seconds: float = 1800.0

    # -------------------------------------------------------------------------
    # Process Execution
    # -------------------------------------------------------------------------
    # Attempts made by invoke_program before a failure is fatal
    retry_attempts: int = 3

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    # Emit JSON log lines instead of console-formatted ones
    log_json: bool = False

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("release_feed_url")
    @classmethod
    def validate_release_feed_url(cls, v: str) -> str:
        """Validate that the feed URL is an http(s) URL."""
        if not v or not v.strip():
            raise ValueError("release_feed_url cannot be empty")
        if not v.startswith(("http://", "https://")):
            raise ValueError("release_feed_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("release_feed_repository")
    @classmethod
    def validate_release_feed_repository(cls, v: str) -> str:
        """Validate that the repository has the owner/name form."""
        parts = v.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError("release_feed_repository must look like owner/name")
        return v.strip()

    @field_validator("tool_name")
    @classmethod
    def validate_tool_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tool_name cannot be empty")
        return v.strip()

    @field_validator(
        "request_timeout_seconds",
        "clone_poll_interval_seconds",
        "clone_timeout_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate that durations are positive."""
        if v <= 0:
            raise ValueError("durations must be greater than zero")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate that at least one attempt is made."""
        if v < 1:
            raise ValueError("retry_attempts must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


def get_settings(**overrides) -> DevBoxSettings:
    """Create and return a DevBoxSettings instance.

    Values come from DEVBOX_* environment variables; keyword overrides
    whose value is None are ignored so CLI options can be passed through
    unconditionally.

    Returns:
        DevBoxSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return DevBoxSettings(**explicit)
