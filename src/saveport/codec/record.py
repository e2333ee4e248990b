"""
Record codec: normalize whatever the store holds into canonical records.

Milestone
---------
M2 | Save Records
Step 2.1 | Canonical record conversion

The save store does not guarantee one binary representation per value. Over
the lifetime of the web port we have seen raw byte buffers, typed arrays,
objects indexed by ``"0"``, ``"1"``, ..., JSON text, plain arrays and
arbitrary objects. This module turns all of them into :class:`CanonicalRecord`
(``to_canonical``) and turns canonical records back into store-insertable
:class:`FileEntry` values (``from_canonical``).

Failure policy
--------------
Neither direction ever raises. One corrupt slot must not abort an archive
operation, so anomalies degrade to empty/default data and a log line.

Decision order of ``to_canonical`` (first match wins)
-----------------------------------------------------
1. Structured record exposing ``contents``:
   a. byte buffer / typed array  -> bytes (empty stays empty)
   b. index-keyed mapping or list -> dense bytes, gaps zero-filled
   c. anything else              -> JSON text, flavor ``JSON``
2. Raw byte buffer               -> bytes
3. String                        -> kept as text
4. Flat list of numbers          -> bytes
5. Anything else                 -> JSON text, flavor ``JSON``
"""

from __future__ import annotations

import json
import math
from array import array
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from saveport.codec.timestamps import format_timestamp, parse_timestamp
from saveport.core.contracts.record import (
    DEFAULT_FILE_MODE,
    CanonicalRecord,
    FileEntry,
    RecordFlavor,
)
from saveport.core.settings import get_logger

logger = get_logger(__name__)

# Upper bound for index reconstruction; larger indices are treated as corrupt.
_MAX_DENSE_LENGTH = 1 << 26


# --------------------------------------------------------------------------- #
# Octet helpers
# --------------------------------------------------------------------------- #


def _to_octet(value: Any) -> tuple[int, bool]:
    """Convert ``value`` like a ``Uint8Array`` element assignment would.

    Returns the byte and whether the input was already a clean 0-255 integer.
    """
    if isinstance(value, bool):
        return int(value), False
    if isinstance(value, int):
        return value & 0xFF, 0 <= value <= 0xFF
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0, False
        return int(value) & 0xFF, False
    if isinstance(value, str):
        try:
            number = float(value.strip() or "0")
        except ValueError:
            return 0, False
        return _to_octet(number)[0], False
    return 0, False


def pack_octets(values: Iterable[Any], *, key: str = "?") -> bytes:
    """Pack a sequence of byte-ish values into ``bytes``, wrapping modulo 256."""
    out = bytearray()
    coerced = 0
    for value in values:
        octet, clean = _to_octet(value)
        out.append(octet)
        if not clean:
            coerced += 1
    if coerced:
        logger.warning("Coerced %d non-byte value(s) while packing '%s'", coerced, key)
    return bytes(out)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_byte_buffer(value: Any) -> bool:
    return isinstance(value, bytes | bytearray | memoryview | array)


def _buffer_bytes(value: bytes | bytearray | memoryview | array, key: str) -> bytes:
    if isinstance(value, array):
        if value.typecode == "B":
            return value.tobytes()
        # Signed and wide typed arrays convert element-wise
        return pack_octets(value, key=key)
    if isinstance(value, memoryview):
        return value.tobytes()
    return bytes(value)


def _parse_index(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdecimal():
            return int(text)
    return None


def _dense_from_indexed(mapping: Mapping[Any, Any], key: str) -> list[Any] | None:
    """Rebuild an index-ordered list from an object keyed by integers.

    Returns ``None`` when no key parses as a non-negative integer or when the
    highest index is implausibly large. Missing indices are zero-filled.
    """
    indexed: dict[int, Any] = {}
    for raw, value in mapping.items():
        idx = _parse_index(raw)
        if idx is not None:
            indexed[idx] = value
    if not indexed:
        return None

    size = max(indexed) + 1
    if size > _MAX_DENSE_LENGTH:
        logger.warning("Index %d too large to rebuild '%s'", size - 1, key)
        return None

    dense: list[Any] = [0] * size
    for idx, value in indexed.items():
        dense[idx] = value
    gaps = size - len(indexed)
    if gaps:
        logger.warning("Zero-filled %d missing index(es) in '%s'", gaps, key)
    return dense


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if _is_byte_buffer(value):
        return list(_buffer_bytes(value, "?"))
    if isinstance(value, set | frozenset):
        return sorted(value, key=repr)
    return repr(value)


def _dump_json(value: Any, key: str) -> str:
    try:
        return json.dumps(value, default=_json_default, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        logger.warning("Value of '%s' is not JSON-serializable (%s); keeping repr", key, exc)
        return json.dumps(repr(value))


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _coerce_mode(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


# --------------------------------------------------------------------------- #
# Store value -> canonical record
# --------------------------------------------------------------------------- #


def _unwrap_contents(contents: Any, key: str) -> tuple[bytes | str, RecordFlavor]:
    if _is_byte_buffer(contents):
        return _buffer_bytes(contents, key), RecordFlavor.BINARY

    if isinstance(contents, Mapping):
        if not contents:
            logger.warning("Contents object of '%s' is empty", key)
            return b"", RecordFlavor.BINARY
        dense = _dense_from_indexed(contents, key)
        if dense is not None:
            return pack_octets(dense, key=key), RecordFlavor.BINARY
        logger.warning("Contents of '%s' has no byte order; keeping JSON text", key)
        return _dump_json(contents, key), RecordFlavor.JSON

    if isinstance(contents, list | tuple):
        return pack_octets(contents, key=key), RecordFlavor.BINARY

    logger.warning("Contents of '%s' has unexpected type %s", key, type(contents).__name__)
    return _dump_json(contents, key), RecordFlavor.JSON


def _classify(key: str, value: Any) -> CanonicalRecord:
    contents = None if isinstance(value, str | bytes) else _field(value, "contents")
    if contents is not None:
        data, flavor = _unwrap_contents(contents, key)
        return CanonicalRecord(
            key=key,
            data=data,
            flavor=flavor,
            timestamp=parse_timestamp(_field(value, "timestamp")),
            mode=_coerce_mode(_field(value, "mode")),
        )

    if _is_byte_buffer(value):
        return CanonicalRecord(key=key, data=_buffer_bytes(value, key))

    if isinstance(value, str):
        return CanonicalRecord(key=key, data=value, flavor=RecordFlavor.TEXT)

    if isinstance(value, list | tuple) and all(_is_number(v) for v in value):
        return CanonicalRecord(key=key, data=pack_octets(value, key=key))

    logger.debug("Stringifying opaque %s stored under '%s'", type(value).__name__, key)
    return CanonicalRecord(key=key, data=_dump_json(value, key), flavor=RecordFlavor.JSON)


def to_canonical(key: str, value: Any) -> CanonicalRecord:
    """Normalize a stored value into a :class:`CanonicalRecord`.

    Parameters
    ----------
    key:
        Store key the value was read from.
    value:
        Whatever the store returned for ``key``.

    Returns
    -------
    CanonicalRecord
        Always a record. Unrecoverable shapes yield an empty binary record;
        callers check :attr:`CanonicalRecord.is_empty` to decide whether to
        keep it.
    """
    try:
        record = _classify(key, value)
    except Exception as exc:
        logger.warning("Could not normalize '%s' (%s); using empty record", key, exc)
        return CanonicalRecord(key=key)

    if record.is_empty:
        logger.warning("Empty payload for '%s'", key)
    else:
        logger.debug("Normalized '%s' as %s (%d)", key, record.flavor, len(record.data))
    return record


# --------------------------------------------------------------------------- #
# Canonical record -> store value
# --------------------------------------------------------------------------- #


def _resolve_contents(contents: Any, key: str) -> bytes:
    if isinstance(contents, Mapping):
        dense = _dense_from_indexed(contents, key)
        if dense is None:
            logger.warning("Embedded contents of '%s' are not index-keyed", key)
            return b""
        return pack_octets(dense, key=key)
    if isinstance(contents, list | tuple):
        return pack_octets(contents, key=key)
    logger.warning("Embedded contents of '%s' has unexpected type %s", key, type(contents).__name__)
    return b""


def _decode_text(text: str, key: str) -> tuple[bytes, datetime | None, int | None]:
    try:
        parsed = json.loads(text)
    except ValueError:
        # Plain text file (e.g. an .ini save)
        return text.encode("utf-8"), None, None

    if isinstance(parsed, Mapping) and parsed.get("contents") is not None:
        return (
            _resolve_contents(parsed["contents"], key),
            parse_timestamp(parsed.get("timestamp")),
            _coerce_mode(parsed.get("mode")),
        )

    # JSON that is not an embedded record (e.g. "12") is file text too
    logger.debug("JSON text of '%s' holds no contents field; keeping it as text", key)
    return text.encode("utf-8"), None, None


def _decode_payload(record: CanonicalRecord) -> tuple[bytes, datetime | None, int | None]:
    data = record.data
    if isinstance(data, bytes):
        return data, None, None
    if isinstance(data, str):
        if record.flavor is RecordFlavor.JSON:
            return data.encode("utf-8"), None, None
        return _decode_text(data, record.key)
    logger.warning("Unrecognized payload type for '%s': %s", record.key, type(data).__name__)
    return b"", None, None


def from_canonical(record: CanonicalRecord) -> FileEntry:
    """Rebuild a store-insertable :class:`FileEntry` from ``record``.

    The record's own ``timestamp``/``mode`` (typically lifted from an archive
    metadata sibling) take precedence over values embedded in legacy JSON
    payloads; missing values default to *now* and :data:`DEFAULT_FILE_MODE`.
    """
    try:
        contents, embedded_ts, embedded_mode = _decode_payload(record)
    except Exception as exc:
        logger.warning("Could not rebuild '%s' (%s); using empty contents", record.key, exc)
        contents, embedded_ts, embedded_mode = b"", None, None

    timestamp = record.timestamp or embedded_ts or datetime.now(UTC)
    if record.mode is not None:
        mode = record.mode
    elif embedded_mode is not None:
        mode = embedded_mode
    else:
        mode = DEFAULT_FILE_MODE

    logger.debug("Rebuilt '%s' with %d byte(s)", record.key, len(contents))
    return FileEntry(contents=contents, timestamp=timestamp, mode=mode)


__all__ = ["DEFAULT_FILE_MODE", "from_canonical", "pack_octets", "to_canonical"]
