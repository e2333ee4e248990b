"""Shared fixtures.

Every test runs against its own snapshot path and a fresh store session, so
neither the cached settings nor the session singleton leak between tests.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from saveport.core.settings import load_settings
from saveport.store.memory import MemoryBackend
from saveport.store.session import StoreSession

DB_NAME = "/_savedata"
STORE_NAME = "FILE_DATA"


@pytest.fixture(autouse=True)  # type: ignore[misc]
def isolated_settings(monkeypatch: Any, tmp_path: Path) -> Generator[Path, None, None]:
    """Point the snapshot store at a temp file and reset cached singletons."""
    store_path = tmp_path / "store.pickle"
    monkeypatch.setenv("SAVEPORT_ENV", "test")
    monkeypatch.setenv("SAVEPORT_STORE_PATH", str(store_path))
    monkeypatch.setenv("SAVEPORT_DOWNLOAD_DIR", str(tmp_path / "downloads"))
    load_settings.cache_clear()
    StoreSession.reset_instance()
    yield store_path
    StoreSession.reset_instance()
    load_settings.cache_clear()


@pytest.fixture  # type: ignore[misc]
def backend() -> MemoryBackend:
    """In-memory backend without snapshots."""
    return MemoryBackend()


@pytest.fixture  # type: ignore[misc]
def session(backend: MemoryBackend) -> StoreSession:
    """Session on the in-memory backend with the default probe keys."""
    return StoreSession(
        backend,
        db_name=DB_NAME,
        db_version=21,
        store_name=STORE_NAME,
        probe_keys=load_settings().probe_keys(),
    )

