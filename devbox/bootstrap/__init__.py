"""Repository bootstrapping into the local workspace root.

This package clones a repository into a fresh workspace root (archiving
any previous one), updates its submodules and installs npm dependencies
for every package manifest found in the clone.
"""

from devbox.bootstrap.workspace import (
    BootstrapConfig,
    BootstrapResult,
    GitCloneError,
    RepositoryBootstrapper,
    WorkspaceError,
)

__all__ = [
    "BootstrapConfig",
    "BootstrapResult",
    "GitCloneError",
    "RepositoryBootstrapper",
    "WorkspaceError",
]
