"""Archive contracts: the portable JSON document exchanged with users.

The document is a flat JSON object. Each save key maps to an *envelope*
``{"data": ..., "type": "binary"}`` and may be followed by a sibling
``"<key>_metadata"`` object ``{"timestamp": ..., "mode": ...}``. There is no
version field; the format is interpreted structurally.

This module defines Pydantic v2 models for those shapes plus the parsed,
paired view (:class:`ArchiveDocument`) that the importer walks.

Notes
-----
- ``data`` is left as ``Any`` on purpose: byte arrays, strings, and the odd
  legacy shape all have to reach the record codec, which decides what is
  recoverable. Validation here only guards the envelope structure.
- Unknown envelope fields are ignored so older exports keep importing.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

METADATA_SUFFIX = "_metadata"


class ArchiveEnvelope(BaseModel):
    """Data-bearing entry of an archive."""

    model_config = ConfigDict(extra="ignore")

    data: Any = Field(default=None, description="Byte values or text payload")
    type: str = Field(default="binary", description="'binary' or 'json' (tagged fallback)")

    @property
    def has_data(self) -> bool:
        """Mirror of the legacy truthiness check on ``data``."""
        if self.data is None:
            return False
        if isinstance(self.data, str):
            return self.data != ""
        return True


class ArchiveMetadata(BaseModel):
    """Timestamp / mode sibling of an envelope."""

    model_config = ConfigDict(extra="ignore")

    timestamp: str | float | int | None = Field(default=None, description="ISO-8601 or legacy")
    mode: int | None = Field(default=None, description="File-mode bits")


class ArchiveEntry(BaseModel):
    """An envelope paired with its optional metadata sibling."""

    envelope: ArchiveEnvelope
    metadata: ArchiveMetadata | None = None


class ArchiveDocument(BaseModel):
    """Parsed archive: data keys (in document order) with their metadata."""

    entries: dict[str, ArchiveEntry] = Field(default_factory=dict)
    orphan_metadata: list[str] = Field(
        default_factory=list,
        description="Metadata keys whose base key has no envelope",
    )

    @property
    def is_empty(self) -> bool:
        """True when the document carries no data-bearing entry."""
        return not self.entries

    def keys(self) -> list[str]:
        """Data keys in document order."""
        return list(self.entries)

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self.entries)


def metadata_key(key: str) -> str:
    """Return the sibling metadata key for ``key``."""
    return f"{key}{METADATA_SUFFIX}"


def is_metadata_key(key: str) -> bool:
    return key.endswith(METADATA_SUFFIX)


__all__ = [
    "METADATA_SUFFIX",
    "ArchiveDocument",
    "ArchiveEntry",
    "ArchiveEnvelope",
    "ArchiveMetadata",
    "is_metadata_key",
    "metadata_key",
]
