"""Typed smoke tests for the settings loader.

These tests verify four guarantees:
1) Importing the module-level `settings` yields a `Settings` instance.
2) Environment variables override defaults after clearing the loader cache.
3) `get_logger()` respects the configured LOG_LEVEL when constructing loggers.
4) The save store coordinates default to the web port's values.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from saveport.core.settings import (
    DEFAULT_SAVE_FILES,
    Settings,
    get_logger,
    load_settings,
    settings,
)


def test_settings_instance_type() -> None:
    """`settings` should be an instance of the typed `Settings` model."""
    assert isinstance(settings, Settings)


def test_store_defaults(monkeypatch: Any) -> None:
    monkeypatch.delenv("SAVEPORT_STORE_PATH", raising=False)
    load_settings.cache_clear()
    s = load_settings()

    assert s.db_name == "/_savedata"
    assert s.db_version == 21
    assert s.object_store == "FILE_DATA"
    assert s.archive_prefix == "undertale_indexeddb_"
    assert s.min_unrequested_download_bytes == 100_000
    assert s.store_path == Path(".saveport") / "store.pickle"
    assert s.probe_keys() == [f"/_savedata/{name}" for name in DEFAULT_SAVE_FILES]


def test_env_overrides_with_cache_clear(monkeypatch: Any) -> None:
    """Changing env vars should take effect after `load_settings.cache_clear()`."""
    monkeypatch.setenv("SAVEPORT_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SAVEPORT_DB_VERSION", "22")
    monkeypatch.setenv("SAVEPORT_SAVE_FILES", '["file1", "config.ini"]')

    load_settings.cache_clear()
    s = load_settings()

    assert s.is_prod and not s.is_dev
    assert s.log_level == "DEBUG"
    assert s.db_version == 22
    assert s.probe_keys() == ["/_savedata/file1", "/_savedata/config.ini"]


def test_get_logger_respects_level(monkeypatch: Any) -> None:
    """`get_logger()` should apply the numeric level derived from `LOG_LEVEL`."""
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    load_settings.cache_clear()

    logger = get_logger("saveport.tests.settings")

    assert logger.level == logging.ERROR
    assert len(logger.handlers) == 1
    assert logger.propagate is False
