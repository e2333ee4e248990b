"""Small helpers shared by the store and workflow tests."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from saveport.core.contracts.record import FileEntry
from saveport.store.session import StoreSession

STAMP = datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=UTC)


async def seed(session: StoreSession, values: dict[str, Any]) -> None:
    """Write raw values straight into the session's object store."""
    connection = await session.open()
    tx = connection.transaction(session.store_name, "readwrite")
    store = tx.object_store(session.store_name)
    for key, value in values.items():
        store.put(value, key)
    await tx.complete()


def file_entry(contents: bytes, mode: int = 33206) -> FileEntry:
    return FileEntry(contents=contents, timestamp=STAMP, mode=mode)
