"""Configuration document application.

This package ensures the DSC configuration tool is installed (downloading
the latest release when it is missing), resolves a configuration document
from a URI, a file or an inline value, and pipes it into "config set".
"""

from devbox.configuration.release import ReleaseFeedClient
from devbox.configuration.runner import ApplyResult, ConfigurationRunner
from devbox.configuration.source import resolve_configuration
from devbox.configuration.tool import ToolInstaller, ToolLocation

__all__ = [
    "ApplyResult",
    "ConfigurationRunner",
    "ReleaseFeedClient",
    "ToolInstaller",
    "ToolLocation",
    "resolve_configuration",
]
