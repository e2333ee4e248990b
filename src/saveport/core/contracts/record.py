"""
Record contracts: the canonical pivot between store values and archives.

Two small, immutable dataclasses live here:

- :class:`CanonicalRecord` is what the record codec produces from *any* stored
  value and what the archive codec serializes. It only exists for the
  duration of one export or import pass.
- :class:`FileEntry` is the value written back into the store on import. It
  mirrors the host filesystem's stored-file record
  (``{timestamp, mode, contents}``).

Design Notes
------------
- **Flavors**: a record is either binary (``data`` is ``bytes``) or textual.
  Textual records come in two flavors. ``TEXT`` keeps a string the store held
  verbatim; ``JSON`` tags a structured value whose contents could not be
  recovered as bytes and was kept as JSON text instead. The tag travels into
  the archive so that importing never mistakes one for the other.
- **Immutability**: ``frozen=True`` like the blackboard's trace snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

# Regular file, rw for user/group/other (S_IFREG | 0o666).
DEFAULT_FILE_MODE = 0o100666


class RecordFlavor(StrEnum):
    """How the payload of a :class:`CanonicalRecord` must be read."""

    BINARY = "binary"
    TEXT = "text"
    JSON = "json"

    @property
    def archive_type(self) -> str:
        """Envelope ``type`` label written to archives for this flavor."""
        return "json" if self is RecordFlavor.JSON else "binary"


@dataclass(frozen=True, slots=True)
class CanonicalRecord:
    """
    Normalized, lossless (where possible) representation of one save slot.

    Attributes
    ----------
    key : str
        Store key, also used as the archive key.
    data : bytes | str
        Flat byte payload for ``BINARY`` records, text otherwise.
    flavor : RecordFlavor
        Tells consumers how to interpret ``data``.
    timestamp : datetime | None
        Last-modified time if the stored value carried one.
    mode : int | None
        File-mode bits if the stored value carried them.
    """

    key: str
    data: bytes | str = b""
    flavor: RecordFlavor = RecordFlavor.BINARY
    timestamp: datetime | None = None
    mode: int | None = None

    @property
    def is_empty(self) -> bool:
        """True when the payload has zero length (flagged, never dropped)."""
        return len(self.data) == 0

    @property
    def has_metadata(self) -> bool:
        """True when a timestamp or a mode accompanies the payload."""
        return self.timestamp is not None or self.mode is not None

    def octets(self) -> list[int] | str:
        """Return the payload in archive form: byte values or the text."""
        if isinstance(self.data, bytes):
            return list(self.data)
        return self.data


@dataclass(frozen=True)
class FileEntry:
    """Store-insertable file record produced on import."""

    contents: bytes
    timestamp: datetime
    mode: int = DEFAULT_FILE_MODE


__all__ = ["DEFAULT_FILE_MODE", "CanonicalRecord", "FileEntry", "RecordFlavor"]
