"""Centralized application configuration using Pydantic Settings (v2).

This module exposes a single, cached `settings` instance that reads from:
- Real environment variables (highest precedence)
- `.env` files at the repository root: .env, .env.local, .env.dev/.env.test/.env.prod

The defaults describe the save store used by the web port of the game:
database ``/_savedata`` (version 21) holding one object store ``FILE_DATA``
whose keys are virtual file paths such as ``/_savedata/file0``.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["dev", "test", "prod"]
LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_SAVE_FILES: tuple[str, ...] = (
    "file0",
    "file9",
    "undertale.ini",
    "decomp_vars.ini",
    "trophies.ini",
)


class Settings(BaseSettings):
    """Typed application configuration loaded from env and `.env` files.

    Attributes
    ----------
    environment : EnvName
        Runtime environment flag; maps from `SAVEPORT_ENV`.
    log_level : LogLevelName
        Global log level string; maps from `LOG_LEVEL`.
    db_name, db_version, object_store : str, int, str
        Coordinates of the save store inside the key-value backend.
    save_prefix, save_files : str, list[str]
        Well-known save files probed during export (prefix + file name).
    archive_prefix : str
        Filename prefix of exported archives.
    store_path : Path | None
        Snapshot file of the local store used by the CLI and the HTTP API.
    download_dir : Path
        Directory where offered downloads land.
    min_unrequested_download_bytes : int
        Downloads smaller than this that the user did not ask for are refused.
    """

    environment: EnvName = Field(default="dev", alias="SAVEPORT_ENV")
    log_level: LogLevelName = Field(default="INFO", alias="LOG_LEVEL")

    db_name: str = Field(default="/_savedata", alias="SAVEPORT_DB_NAME")
    db_version: int = Field(default=21, ge=1, alias="SAVEPORT_DB_VERSION")
    object_store: str = Field(default="FILE_DATA", alias="SAVEPORT_OBJECT_STORE")
    save_prefix: str = Field(default="/_savedata/", alias="SAVEPORT_SAVE_PREFIX")
    save_files: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SAVE_FILES), alias="SAVEPORT_SAVE_FILES"
    )

    archive_prefix: str = Field(default="undertale_indexeddb_", alias="SAVEPORT_ARCHIVE_PREFIX")
    store_path: Path | None = Field(
        default=Path(".saveport") / "store.pickle", alias="SAVEPORT_STORE_PATH"
    )
    download_dir: Path = Field(default=Path("."), alias="SAVEPORT_DOWNLOAD_DIR")
    min_unrequested_download_bytes: int = Field(
        default=100_000, ge=0, alias="SAVEPORT_MIN_DOWNLOAD_BYTES"
    )

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local", ".env.dev", ".env.test", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def is_dev(self) -> bool:
        """Return True if running in the development environment."""
        return self.environment == "dev"

    @property
    def is_test(self) -> bool:
        """Return True if running in the test environment."""
        return self.environment == "test"

    @property
    def is_prod(self) -> bool:
        """Return True if running in the production environment."""
        return self.environment == "prod"

    def log_level_numeric(self) -> int:
        """Return the numeric logging level corresponding to `self.log_level`."""
        return getattr(logging, self.log_level, logging.INFO)

    def probe_keys(self) -> list[str]:
        """Return the well-known store keys probed before a full scan."""
        return [f"{self.save_prefix}{name}" for name in self.save_files]


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Create and cache a `Settings` instance.

    We keep this behind an LRU cache so tests can force a rebuild via
    `load_settings.cache_clear()` after mutating `os.environ`.
    """
    os.environ.setdefault("SAVEPORT_ENV", "dev")
    return Settings()


# Export a ready-to-use singleton (import-time read of env / .env files).
settings: Settings = load_settings()


def get_logger(name: str = "saveport") -> logging.Logger:
    """Return a process-global logger configured to the current log level."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(load_settings().log_level_numeric())
    logger.propagate = False
    return logger
