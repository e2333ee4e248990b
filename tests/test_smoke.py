"""
Smoke tests for package structure and availability.

Scope
-----
These tests strictly verify that the package is installed correctly in the
environment and that the entry points named in pyproject.toml resolve.
"""

from __future__ import annotations

import importlib

from saveport import __version__


def test_package_importable() -> None:
    """Ensure the top-level package can be imported."""
    mod = importlib.import_module("saveport")
    assert mod is not None


def test_version_is_set() -> None:
    assert isinstance(__version__, str)
    assert len(__version__) > 0


def test_entry_points_resolve() -> None:
    """`saveport.cli:app` and `saveport.api.server:main` back the console scripts."""
    cli = importlib.import_module("saveport.cli")
    server = importlib.import_module("saveport.api.server")
    assert hasattr(cli, "app")
    assert callable(server.main)
