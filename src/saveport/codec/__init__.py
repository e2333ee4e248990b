"""Pure conversion layer: store values <-> canonical records <-> archive text."""

from __future__ import annotations

from .archive import (
    archive_filename,
    deserialize,
    entry_to_record,
    records_from_document,
    serialize,
)
from .record import from_canonical, pack_octets, to_canonical

__all__ = [
    "archive_filename",
    "deserialize",
    "entry_to_record",
    "from_canonical",
    "pack_octets",
    "records_from_document",
    "serialize",
    "to_canonical",
]
