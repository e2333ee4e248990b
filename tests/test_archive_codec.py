"""Unit tests for the archive codec.

Scope
-----
1. Export shape: envelopes, metadata siblings, ``json`` tagging, filenames.
2. Import parsing: metadata pairing, orphans, malformed documents.
3. Idempotence: export -> import -> export reproduces the same text.
"""

from __future__ import annotations

import json
from datetime import UTC, date, datetime

import pytest

from saveport.codec.archive import (
    archive_filename,
    deserialize,
    entry_to_record,
    records_from_document,
    serialize,
)
from saveport.core.contracts.archive import ArchiveEntry, ArchiveEnvelope
from saveport.core.contracts.record import CanonicalRecord, RecordFlavor
from saveport.core.errors import MalformedArchive

STAMP = datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=UTC)

RECORDS = {
    "/_savedata/file0": CanonicalRecord(
        key="/_savedata/file0", data=b"Frisk\x00", timestamp=STAMP, mode=33206
    ),
    "/_savedata/undertale.ini": CanonicalRecord(
        key="/_savedata/undertale.ini", data="[General]\r\nRoom=12", flavor=RecordFlavor.TEXT
    ),
    "/_savedata/odd": CanonicalRecord(
        key="/_savedata/odd", data='{"room": "ruins"}', flavor=RecordFlavor.JSON, mode=33188
    ),
}


def test_serialize_shape() -> None:
    text = serialize(RECORDS)
    doc = json.loads(text)

    assert doc["/_savedata/file0"] == {"data": [70, 114, 105, 115, 107, 0], "type": "binary"}
    assert doc["/_savedata/file0_metadata"] == {
        "timestamp": "2024-05-01T12:00:00.250Z",
        "mode": 33206,
    }
    assert doc["/_savedata/undertale.ini"] == {"data": "[General]\r\nRoom=12", "type": "binary"}
    assert "/_savedata/undertale.ini_metadata" not in doc
    assert doc["/_savedata/odd"]["type"] == "json"
    assert doc["/_savedata/odd_metadata"] == {"timestamp": None, "mode": 33188}


def test_serialize_keeps_metadata_next_to_its_entry() -> None:
    keys = list(json.loads(serialize(RECORDS)))
    assert keys.index("/_savedata/file0_metadata") == keys.index("/_savedata/file0") + 1


def test_serialize_is_pretty_printed() -> None:
    assert serialize(RECORDS).startswith('{\n  "/_savedata/file0"')


def test_archive_filename() -> None:
    assert archive_filename(today=date(2024, 5, 1)) == "undertale_indexeddb_2024-05-01.json"
    assert archive_filename("backup_", date(2025, 1, 2)) == "backup_2025-01-02.json"


def test_deserialize_pairs_metadata() -> None:
    document = deserialize(serialize(RECORDS))

    assert document.keys() == list(RECORDS)
    file0 = document.entries["/_savedata/file0"]
    assert file0.metadata is not None
    assert file0.metadata.mode == 33206
    assert document.entries["/_savedata/undertale.ini"].metadata is None
    assert document.orphan_metadata == []


def test_deserialize_reports_orphan_metadata() -> None:
    text = json.dumps(
        {
            "/_savedata/file0": {"data": [1]},
            "/_savedata/file9_metadata": {"timestamp": None, "mode": 33206},
        }
    )
    document = deserialize(text)
    assert document.keys() == ["/_savedata/file0"]
    assert document.orphan_metadata == ["/_savedata/file9_metadata"]


def test_empty_object_is_an_empty_document() -> None:
    document = deserialize("{}")
    assert document.is_empty
    assert records_from_document(document) == {}


@pytest.mark.parametrize(  # type: ignore[misc]
    "text",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"/_savedata/file0": [1, 2, 3]}',
        "[" * 10_000 + "]" * 10_000,
    ],
)
def test_malformed_archives_are_rejected(text: str) -> None:
    with pytest.raises(MalformedArchive):
        deserialize(text)


def test_invalid_metadata_sibling_falls_back_to_defaults() -> None:
    text = json.dumps(
        {
            "/_savedata/file0": {"data": [1, 2]},
            "/_savedata/file9": {"data": [3]},
            "/_savedata/file9_metadata": {"timestamp": ["x"], "mode": "rw"},
        }
    )
    document = deserialize(text)

    assert document.keys() == ["/_savedata/file0", "/_savedata/file9"]
    assert document.entries["/_savedata/file9"].metadata is None
    assert document.orphan_metadata == []
    assert records_from_document(document)["/_savedata/file9"].data == b"\x03"


def test_invalid_envelope_type_reads_as_binary() -> None:
    document = deserialize('{"/_savedata/file0": {"data": [1, 2], "type": null}}')
    record = records_from_document(document)["/_savedata/file0"]
    assert record.data == b"\x01\x02"
    assert record.flavor is RecordFlavor.BINARY


def test_serialize_skips_keys_that_collide_with_metadata() -> None:
    records = {
        "/_savedata/file0": RECORDS["/_savedata/file0"],
        "/_savedata/file0_metadata": CanonicalRecord(key="/_savedata/file0_metadata", data=b"x"),
    }
    doc = json.loads(serialize(records))
    assert doc["/_savedata/file0_metadata"] == {
        "timestamp": "2024-05-01T12:00:00.250Z",
        "mode": 33206,
    }
    assert list(doc) == ["/_savedata/file0", "/_savedata/file0_metadata"]


def test_entry_to_record_shapes() -> None:
    numbers = entry_to_record("k", ArchiveEntry(envelope=ArchiveEnvelope(data=[72, 105])))
    assert numbers.data == b"Hi" and numbers.flavor is RecordFlavor.BINARY

    text = entry_to_record("k", ArchiveEntry(envelope=ArchiveEnvelope(data="x=1")))
    assert text.data == "x=1" and text.flavor is RecordFlavor.TEXT

    tagged = entry_to_record("k", ArchiveEntry(envelope=ArchiveEnvelope(data="{}", type="json")))
    assert tagged.flavor is RecordFlavor.JSON

    junk = entry_to_record("k", ArchiveEntry(envelope=ArchiveEnvelope(data=[{"a": 1}])))
    assert junk.is_empty


def test_legacy_timestamp_in_metadata_is_parsed() -> None:
    text = json.dumps(
        {
            "/_savedata/file0": {"data": [1], "type": "binary"},
            "/_savedata/file0_metadata": {
                "timestamp": "Wed May 01 2024 14:00:00 GMT+0200 (Central European Summer Time)",
                "mode": 33206,
            },
        }
    )
    record = records_from_document(deserialize(text))["/_savedata/file0"]
    assert record.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def test_export_import_export_is_idempotent() -> None:
    first = serialize(RECORDS)
    second = serialize(records_from_document(deserialize(first)))
    assert second == first
