"""Pytest configuration for all tests."""

import os
import sys

import pytest

# Add the repository root to the Python path so devbox imports without install
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)


@pytest.fixture(autouse=True)
def isolated_devbox_env(monkeypatch):
    """Keep DEVBOX_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("DEVBOX_"):
            monkeypatch.delenv(name, raising=False)
