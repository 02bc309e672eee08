"""Windows developer host provisioning tools.

This package provides three standalone command-line tools:
- Configuration runner: installs the DSC tool on demand and applies a
  configuration document with it
- Repository bootstrapper: clones a repository into a fresh workspace and
  installs per-package dependencies
- Dev Drive provisioner: creates or relabels a Dev Drive volume, applies
  filesystem filter policy and redirects package caches onto it
"""

__version__ = "0.1.0"
