"""
Archive codec: one portable JSON document per export.

Milestone
---------
M2 | Save Records
Step 2.2 | Archive export/import format

Format
------
A single, pretty-printed JSON object::

    {
      "/_savedata/file0": {"data": [76, 101, ...], "type": "binary"},
      "/_savedata/file0_metadata": {"timestamp": "2026-10-17T13:03:00.104Z", "mode": 33206},
      "/_savedata/undertale.ini": {"data": "[General]\\r\\nName=...", "type": "binary"}
    }

Byte payloads are emitted as plain numeric arrays rather than base64 so that a
human can inspect an export with any text editor. Records that the record
codec could only keep as JSON text are tagged ``"type": "json"``.

The default filename is ``undertale_indexeddb_<YYYY-MM-DD>.json``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from pydantic import ValidationError

from saveport.codec.record import pack_octets
from saveport.codec.timestamps import format_timestamp, parse_timestamp
from saveport.core.contracts.archive import (
    ArchiveDocument,
    ArchiveEntry,
    ArchiveEnvelope,
    ArchiveMetadata,
    is_metadata_key,
    metadata_key,
)
from saveport.core.contracts.record import CanonicalRecord, RecordFlavor
from saveport.core.errors import MalformedArchive
from saveport.core.settings import get_logger, load_settings

logger = get_logger(__name__)

_KNOWN_TYPES = frozenset({"binary", "json"})


# --------------------------------------------------------------------------- #
# Export
# --------------------------------------------------------------------------- #


def serialize(records: Mapping[str, CanonicalRecord]) -> str:
    """Serialize ``records`` into the archive JSON text.

    Each record becomes a ``{"data", "type"}`` envelope, immediately followed
    by its ``<key>_metadata`` sibling when the record carries a timestamp or
    a mode. Keys that themselves end in ``_metadata`` are left out: they would
    read back as metadata and could overwrite a real sibling.
    """
    payload: dict[str, Any] = {}
    for key, record in records.items():
        if is_metadata_key(key):
            logger.warning("Skipping '%s': its key collides with archive metadata", key)
            continue

        payload[key] = {"data": record.octets(), "type": record.flavor.archive_type}
        if record.has_metadata:
            payload[metadata_key(key)] = {
                "timestamp": format_timestamp(record.timestamp) if record.timestamp else None,
                "mode": record.mode,
            }

    text = json.dumps(payload, indent=2, ensure_ascii=False)
    logger.debug("Serialized %d record(s) into %d characters", len(records), len(text))
    return text


def archive_filename(prefix: str | None = None, today: date | None = None) -> str:
    """Return the suggested download name, e.g. ``undertale_indexeddb_2026-10-17.json``."""
    if prefix is None:
        prefix = load_settings().archive_prefix
    day = today if today is not None else datetime.now(UTC).date()
    return f"{prefix}{day.isoformat()}.json"


# --------------------------------------------------------------------------- #
# Import
# --------------------------------------------------------------------------- #


def _validated_envelope(key: str, value: dict[str, Any]) -> ArchiveEnvelope:
    try:
        return ArchiveEnvelope.model_validate(value)
    except ValidationError as exc:
        logger.warning("Envelope of '%s' is invalid; reading it as binary: %s", key, exc)
        return ArchiveEnvelope(data=value.get("data"))


def _validated_metadata(key: str, value: dict[str, Any]) -> ArchiveMetadata | None:
    try:
        return ArchiveMetadata.model_validate(value)
    except ValidationError as exc:
        logger.warning("Ignoring invalid metadata '%s'; defaults apply: %s", key, exc)
        return None


def deserialize(text: str) -> ArchiveDocument:
    """Parse archive ``text`` into an :class:`ArchiveDocument`.

    Raises
    ------
    MalformedArchive
        If the text is not JSON, the top level is not an object, or a value is
        not an object.

    Notes
    -----
    ``"{}"`` is *not* an error: it yields an empty document, and the importer
    turns that into :class:`~saveport.core.errors.EmptyArchive`.

    A single bad entry never rejects the archive. An envelope with an invalid
    ``type`` is read as binary; an invalid metadata sibling is dropped, so the
    record falls back to the default timestamp and mode.
    """
    try:
        raw = json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise MalformedArchive(f"Archive is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise MalformedArchive(f"Archive must be a JSON object, got {type(raw).__name__}")

    bad = [key for key, value in raw.items() if not isinstance(value, dict)]
    if bad:
        raise MalformedArchive(
            f"Archive entries must be objects: {', '.join(bad[:5])}",
            context={"keys": bad},
        )

    envelopes: dict[str, ArchiveEnvelope] = {}
    metas: dict[str, ArchiveMetadata | None] = {}
    for key, value in raw.items():
        if is_metadata_key(key):
            metas[key] = _validated_metadata(key, value)
        else:
            envelopes[key] = _validated_envelope(key, value)

    entries: dict[str, ArchiveEntry] = {}
    for key, envelope in envelopes.items():
        entries[key] = ArchiveEntry(envelope=envelope, metadata=metas.pop(metadata_key(key), None))

    orphans = list(metas)
    if orphans:
        logger.warning("Ignoring %d metadata entr(ies) without data: %s", len(orphans), orphans)

    logger.debug("Parsed archive with %d data entr(ies)", len(entries))
    return ArchiveDocument(entries=entries, orphan_metadata=orphans)


def entry_to_record(key: str, entry: ArchiveEntry) -> CanonicalRecord:
    """Lift an archive entry into a canonical record without interpreting text.

    Legacy decoding of text payloads (embedded JSON records) is left to
    :func:`saveport.codec.record.from_canonical`.
    """
    envelope = entry.envelope
    if envelope.type not in _KNOWN_TYPES:
        logger.warning("Unknown envelope type '%s' for '%s'; reading as binary", envelope.type, key)

    data = envelope.data
    payload: bytes | str
    flavor = RecordFlavor.BINARY
    if isinstance(data, str):
        payload = data
        flavor = RecordFlavor.JSON if envelope.type == "json" else RecordFlavor.TEXT
    elif isinstance(data, list):
        first = data[0] if data else None
        if not data or (isinstance(first, int | float) and not isinstance(first, bool)):
            payload = pack_octets(data, key=key)
        else:
            logger.warning("Array payload of '%s' does not hold numbers", key)
            payload = b""
    else:
        if data is not None:
            logger.warning("Unrecognized payload of '%s': %s", key, type(data).__name__)
        payload = b""

    meta = entry.metadata
    return CanonicalRecord(
        key=key,
        data=payload,
        flavor=flavor,
        timestamp=parse_timestamp(meta.timestamp) if meta else None,
        mode=meta.mode if meta else None,
    )


def records_from_document(document: ArchiveDocument) -> dict[str, CanonicalRecord]:
    """Return every entry of ``document`` as a canonical record, in order."""
    return {key: entry_to_record(key, entry) for key, entry in document.entries.items()}


__all__ = [
    "archive_filename",
    "deserialize",
    "entry_to_record",
    "records_from_document",
    "serialize",
]
