"""Tests for the store session: lifecycle, export, import.

Scope
-----
1. **State machine**: shared open attempts, terminal failure, missing store.
2. **Export**: probe of well-known keys, cursor fallback, empty-record skip.
3. **Import**: one transaction, per-key tally, partial failures, sync signal.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest
from _helpers import STAMP, file_entry, seed

from saveport.codec.archive import deserialize
from saveport.core.contracts.record import FileEntry
from saveport.core.errors import (
    DataCloneError,
    EmptyArchive,
    NoSaveData,
    PartialImportFailure,
    StoreError,
    StoreOpenError,
)
from saveport.store.memory import MemoryBackend, MemoryObjectStore
from saveport.store.protocol import UpgradeCallback
from saveport.store.session import ImportOutcome, SessionState, StoreSession, get_session


def _archive(**entries: Any) -> str:
    return json.dumps({f"/_savedata/{k}": v for k, v in entries.items()})


async def _stored(session: StoreSession, key: str) -> Any:
    connection = await session.open()
    store = connection.transaction(session.store_name).object_store(session.store_name)
    return await store.get(key)


# --------------------------------------------------------------------------- #
# Lifecycle
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio  # type: ignore[misc]
async def test_open_transitions_to_ready(session: StoreSession) -> None:
    assert session.state is SessionState.UNINITIALIZED
    connection = await session.open()
    assert session.state is SessionState.READY
    assert session.store_name in connection.object_store_names
    assert await session.open() is connection


@pytest.mark.asyncio  # type: ignore[misc]
async def test_close_releases_the_connection(session: StoreSession) -> None:
    await seed(session, {"/_savedata/file0": file_entry(b"Frisk")})
    connection = await session.open()

    session.close()
    assert session.state is SessionState.UNINITIALIZED
    with pytest.raises(StoreError, match="closed"):
        connection.transaction("FILE_DATA")

    reopened = await session.open()
    assert reopened is not connection
    assert await session.list_keys() == ["/_savedata/file0"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_concurrent_opens_share_one_attempt(
    session: StoreSession, backend: MemoryBackend, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = 0
    original = backend.open

    async def counting(name: str, version: int, on_upgrade: UpgradeCallback | None = None) -> Any:
        nonlocal calls
        calls += 1
        return await original(name, version, on_upgrade)

    monkeypatch.setattr(backend, "open", counting)
    first, second, third = await asyncio.gather(session.open(), session.open(), session.open())

    assert calls == 1
    assert first is second is third


@pytest.mark.asyncio  # type: ignore[misc]
async def test_open_failure_is_terminal(
    session: StoreSession, backend: MemoryBackend, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = 0

    async def broken(*_args: Any) -> Any:
        nonlocal calls
        calls += 1
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(backend, "open", broken)

    with pytest.raises(StoreOpenError) as first:
        await session.open()
    with pytest.raises(StoreOpenError) as second:
        await session.open()

    assert session.state is SessionState.FAILED
    assert first.value is second.value is session.error
    assert "disk on fire" in first.value.reason
    assert calls == 1


@pytest.mark.asyncio  # type: ignore[misc]
async def test_missing_object_store_fails_open(backend: MemoryBackend) -> None:
    # Database already at v21 but created without the object store.
    await backend.open("/_savedata", 21)
    session = StoreSession(backend, db_name="/_savedata", db_version=21, store_name="FILE_DATA")

    with pytest.raises(StoreOpenError, match="FILE_DATA"):
        await session.open()
    assert session.state is SessionState.FAILED


def test_get_instance_is_built_from_settings(isolated_settings: Path) -> None:
    first = get_session()
    assert first is StoreSession.get_instance()
    assert first.db_name == "/_savedata"
    assert first.db_version == 21
    assert first.probe_keys[0] == "/_savedata/file0"

    StoreSession.reset_instance()
    assert get_session() is not first


# --------------------------------------------------------------------------- #
# Export
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_probes_well_known_keys_first(session: StoreSession) -> None:
    await seed(
        session,
        {
            "/_savedata/file0": file_entry(b"slot zero"),
            "/_savedata/undertale.ini": "[General]",
            "/_savedata/unlisted": file_entry(b"not probed"),
        },
    )
    records = await session.export_all()

    assert list(records) == ["/_savedata/file0", "/_savedata/undertale.ini"]
    assert records["/_savedata/file0"].data == b"slot zero"
    assert records["/_savedata/file0"].timestamp == STAMP


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_falls_back_to_full_scan(session: StoreSession) -> None:
    await seed(
        session,
        {
            "/_savedata/file3": file_entry(b"three"),
            "/_savedata/file1": file_entry(b"one"),
        },
    )
    records = await session.export_all()
    assert list(records) == ["/_savedata/file1", "/_savedata/file3"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_skips_empty_records(session: StoreSession) -> None:
    await seed(
        session,
        {"/_savedata/file0": file_entry(b""), "/_savedata/file9": file_entry(b"nine")},
    )
    records = await session.export_all()
    assert list(records) == ["/_savedata/file9"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_skips_keys_that_look_like_metadata(session: StoreSession) -> None:
    await seed(
        session,
        {
            "/_savedata/slot": file_entry(b"slot"),
            "/_savedata/slot_metadata": file_entry(b"not metadata"),
        },
    )
    records = await session.export_all()
    assert list(records) == ["/_savedata/slot"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_of_empty_store_is_no_save_data(session: StoreSession) -> None:
    with pytest.raises(NoSaveData, match="No save files found"):
        await session.export_all()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_export_only_empty_records_is_no_save_data(session: StoreSession) -> None:
    await seed(session, {"/_savedata/file0": file_entry(b""), "/_savedata/x": b""})
    with pytest.raises(NoSaveData):
        await session.export_all()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_list_keys_is_sorted(session: StoreSession) -> None:
    await seed(session, {"/_savedata/b": b"1", "/_savedata/a": b"2"})
    assert await session.list_keys() == ["/_savedata/a", "/_savedata/b"]


# --------------------------------------------------------------------------- #
# Import
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio  # type: ignore[misc]
async def test_import_writes_every_entry_with_metadata(session: StoreSession) -> None:
    text = _archive(
        file0={"data": [70, 114], "type": "binary"},
        file0_metadata={"timestamp": "2024-05-01T12:00:00.250Z", "mode": 33188},
        **{"undertale.ini": {"data": "[General]", "type": "binary"}},
    )
    report = await session.import_all(deserialize(text))

    assert report.outcome is ImportOutcome.SUCCESS
    assert report.total == 2
    assert report.succeeded == ["/_savedata/file0", "/_savedata/undertale.ini"]
    assert report.synced is False

    stored = await _stored(session, "/_savedata/file0")
    assert stored == FileEntry(contents=b"Fr", timestamp=STAMP, mode=33188)
    ini = await _stored(session, "/_savedata/undertale.ini")
    assert ini.contents == b"[General]"
    assert ini.mode == 33206


@pytest.mark.asyncio  # type: ignore[misc]
async def test_import_many_entries_in_one_transaction(session: StoreSession) -> None:
    text = json.dumps({f"/_savedata/file{i}": {"data": [i]} for i in range(40)})
    report = await session.import_all(deserialize(text))
    assert len(report.succeeded) == 40
    assert len(await session.list_keys()) == 40


@pytest.mark.asyncio  # type: ignore[misc]
async def test_empty_byte_array_round_trips_as_empty_contents(session: StoreSession) -> None:
    report = await session.import_all(deserialize(_archive(file0={"data": []})))
    assert report.succeeded == ["/_savedata/file0"]
    stored = await _stored(session, "/_savedata/file0")
    assert stored.contents == b""


@pytest.mark.asyncio  # type: ignore[misc]
async def test_partial_failure_reports_two_of_three(
    session: StoreSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = MemoryObjectStore._write

    def flaky(self: MemoryObjectStore, key: str, value: Any) -> str:
        if key.endswith("file9"):
            raise StoreError("QuotaExceededError")
        return original(self, key, value)

    monkeypatch.setattr(MemoryObjectStore, "_write", flaky)
    synced: list[bool] = []

    async def sync() -> bool:
        synced.append(True)
        return True

    text = _archive(file0={"data": [1]}, file9={"data": [2]}, **{"undertale.ini": {"data": "x"}})
    report = await session.import_all(deserialize(text), sync=sync)

    assert report.outcome is ImportOutcome.PARTIAL
    assert report.succeeded == ["/_savedata/file0", "/_savedata/undertale.ini"]
    assert report.failed == {"/_savedata/file9": "QuotaExceededError"}
    assert synced == [True] and report.synced
    assert await session.list_keys() == ["/_savedata/file0", "/_savedata/undertale.ini"]

    with pytest.raises(PartialImportFailure) as exc:
        report.raise_for_failures()
    assert exc.value.message == (
        "Upload completed with errors. Successfully uploaded 2 out of 3 records."
    )


@pytest.mark.asyncio  # type: ignore[misc]
async def test_synchronous_put_errors_are_tallied(
    session: StoreSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = MemoryObjectStore.put

    def picky(self: MemoryObjectStore, value: Any, key: str) -> Any:
        if key.endswith("file0"):
            raise DataCloneError("cannot clone")
        return original(self, value, key)

    monkeypatch.setattr(MemoryObjectStore, "put", picky)
    text = _archive(file0={"data": [1]}, file9={"data": [2]})
    report = await session.import_all(deserialize(text))

    assert report.failed == {"/_savedata/file0": "cannot clone"}
    assert report.succeeded == ["/_savedata/file9"]


@pytest.mark.asyncio  # type: ignore[misc]
async def test_total_failure_skips_sync(
    session: StoreSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    def always(self: MemoryObjectStore, key: str, value: Any) -> str:
        raise StoreError("nope")

    monkeypatch.setattr(MemoryObjectStore, "_write", always)
    calls: list[int] = []

    async def sync() -> bool:
        calls.append(1)
        return True

    report = await session.import_all(deserialize(_archive(file0={"data": [1]})), sync=sync)
    assert report.outcome is ImportOutcome.FAILURE
    assert calls == []
    assert report.synced is False


@pytest.mark.asyncio  # type: ignore[misc]
async def test_sync_failure_does_not_undo_import(session: StoreSession) -> None:
    async def sync() -> bool:
        raise RuntimeError("host went away")

    report = await session.import_all(deserialize(_archive(file0={"data": [1]})), sync=sync)
    assert report.outcome is ImportOutcome.SUCCESS
    assert report.synced is False


@pytest.mark.asyncio  # type: ignore[misc]
async def test_empty_archives_write_nothing(session: StoreSession) -> None:
    with pytest.raises(EmptyArchive, match="does not contain any data"):
        await session.import_all(deserialize("{}"))
    with pytest.raises(EmptyArchive, match="valid data"):
        await session.import_all(deserialize(_archive(file0={"data": None}, file9={"data": ""})))
    assert await session.list_keys() == []


@pytest.mark.asyncio  # type: ignore[misc]
async def test_entries_without_data_are_skipped(session: StoreSession) -> None:
    text = _archive(file0={"data": [1]}, file9={"data": None})
    report = await session.import_all(deserialize(text))
    assert report.total == 2
    assert report.skipped == ["/_savedata/file9"]
    assert report.outcome is ImportOutcome.SUCCESS


@pytest.mark.asyncio  # type: ignore[misc]
async def test_import_then_export_round_trip(session: StoreSession) -> None:
    text = _archive(
        file0={"data": [1, 2, 3], "type": "binary"},
        file0_metadata={"timestamp": "2024-05-01T12:00:00.250Z", "mode": 33206},
    )
    await session.import_all(deserialize(text))
    records = await session.export_all()
    assert records["/_savedata/file0"].data == b"\x01\x02\x03"
    assert records["/_savedata/file0"].timestamp == STAMP
