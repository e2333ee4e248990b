"""
Store session: the one connection to the save store, and bulk transfers.

Milestone
---------
M3 | Store & Session
Step 3.2 | Session lifecycle, export and import

Responsibilities
----------------
- **Lifecycle**: ``UNINITIALIZED -> OPENING -> READY`` or ``-> FAILED``.
  Concurrent :meth:`StoreSession.open` calls share one attempt; a READY
  session is reused, a FAILED one keeps raising the error it failed with.
- **Export**: read every save record inside a single read-only transaction.
  Well-known keys are probed first; the full cursor scan only runs when none
  of them holds data.
- **Import**: write every archive entry inside a single read-write
  transaction. All puts are issued in the same turn of the event loop so the
  transaction cannot finish half way; failures are tallied per key.

The session is process-global via :meth:`StoreSession.get_instance`, like
the API job store, and can be swapped in tests with
:meth:`StoreSession.reset_instance`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, ClassVar

from saveport.codec.archive import entry_to_record
from saveport.codec.record import from_canonical, to_canonical
from saveport.core.contracts.archive import ArchiveDocument, is_metadata_key
from saveport.core.contracts.record import CanonicalRecord, FileEntry
from saveport.core.errors import (
    EmptyArchive,
    NoSaveData,
    PartialImportFailure,
    RecordAccessError,
    StoreError,
    StoreOpenError,
)
from saveport.core.result import Result, err, ok
from saveport.core.settings import get_logger, load_settings
from saveport.store.memory import MemoryBackend
from saveport.store.protocol import StoreBackend, StoreConnection, StoreRequest, UpgradeContext

logger = get_logger(__name__)

# Called once after a successful import; returns whether a sync happened.
SyncSignal = Callable[[], Awaitable[bool]]


class SessionState(StrEnum):
    """Lifecycle of a :class:`StoreSession`."""

    UNINITIALIZED = "uninitialized"
    OPENING = "opening"
    READY = "ready"
    FAILED = "failed"


class ImportOutcome(StrEnum):
    """Overall verdict of an import."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class ImportReport:
    """
    Per-key tally of one import.

    Attributes
    ----------
    total : int
        Data entries in the archive (metadata siblings are not counted).
    succeeded : list[str]
        Keys written, in the order their puts settled.
    failed : dict[str, str]
        Keys whose put failed, with the reason.
    skipped : list[str]
        Entries without data; nothing was written for them.
    synced : bool
        Whether the host filesystem was refreshed afterwards.
    """

    total: int
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    synced: bool = False

    @property
    def outcome(self) -> ImportOutcome:
        if not self.succeeded:
            return ImportOutcome.FAILURE
        if self.failed:
            return ImportOutcome.PARTIAL
        return ImportOutcome.SUCCESS

    def raise_for_failures(self) -> None:
        """Raise :class:`PartialImportFailure` if any put failed."""
        if self.failed:
            raise PartialImportFailure(self)


class StoreSession:
    """Owns the connection to the save store."""

    _instance: ClassVar[StoreSession | None] = None

    def __init__(
        self,
        backend: StoreBackend,
        *,
        db_name: str,
        db_version: int,
        store_name: str,
        probe_keys: Sequence[str] = (),
    ) -> None:
        self._backend = backend
        self.db_name = db_name
        self.db_version = db_version
        self.store_name = store_name
        self.probe_keys = list(probe_keys)

        self._state = SessionState.UNINITIALIZED
        self._connection: StoreConnection | None = None
        self._error: StoreOpenError | None = None
        self._waiter: asyncio.Future[StoreConnection] | None = None

    # ----- singleton ---------------------------------------------------------

    @classmethod
    def from_settings(cls, store_path: Path | None = None) -> StoreSession:
        """Build a session on the local snapshot store described by settings.

        ``store_path`` overrides ``settings.store_path``.
        """
        cfg = load_settings()
        return cls(
            MemoryBackend(snapshot_path=store_path or cfg.store_path),
            db_name=cfg.db_name,
            db_version=cfg.db_version,
            store_name=cfg.object_store,
            probe_keys=cfg.probe_keys(),
        )

    @classmethod
    def get_instance(cls) -> StoreSession:
        """Accessor for the global singleton instance."""
        if cls._instance is None:
            cls._instance = cls.from_settings()
        return cls._instance

    @classmethod
    def reset_instance(cls, session: StoreSession | None = None) -> None:
        """Replace (or clear) the global instance."""
        cls._instance = session

    # ----- lifecycle ---------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def error(self) -> StoreOpenError | None:
        return self._error

    async def open(self) -> StoreConnection:
        """Return the ready connection, opening it on first use.

        Raises
        ------
        StoreOpenError
            If opening fails now or failed before.
        """
        if self._state is SessionState.READY:
            assert self._connection is not None
            return self._connection
        if self._state is SessionState.FAILED:
            assert self._error is not None
            raise self._error
        if self._state is SessionState.OPENING:
            assert self._waiter is not None
            return await asyncio.shield(self._waiter)

        self._state = SessionState.OPENING
        waiter: asyncio.Future[StoreConnection] = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        logger.info("Opening store '%s' v%d", self.db_name, self.db_version)

        try:
            connection = await self._backend.open(self.db_name, self.db_version, self._upgrade)
            if self.store_name not in connection.object_store_names:
                raise StoreOpenError(self.db_name, f"object store '{self.store_name}' is missing")
        except asyncio.CancelledError:
            self._state = SessionState.UNINITIALIZED
            self._waiter = None
            waiter.cancel()
            raise
        except StoreOpenError as exc:
            self._fail(waiter, exc)
            raise
        except Exception as exc:
            error = StoreOpenError(self.db_name, str(exc), cause=exc)
            self._fail(waiter, error)
            raise error from exc

        self._connection = connection
        self._state = SessionState.READY
        waiter.set_result(connection)
        logger.info("Store '%s' ready", self.db_name)
        return connection

    def _fail(self, waiter: asyncio.Future[StoreConnection], error: StoreOpenError) -> None:
        self._state = SessionState.FAILED
        self._error = error
        logger.error("Store initialization failed: %s", error)
        waiter.set_exception(error)
        # Concurrent openers re-raise it; mark retrieved for the lone-caller case.
        waiter.exception()

    def close(self) -> None:
        """Close the connection so the next :meth:`open` starts over.

        A FAILED session stays failed.
        """
        if self._state is not SessionState.READY:
            return
        assert self._connection is not None
        self._connection.close()
        self._connection = None
        self._waiter = None
        self._state = SessionState.UNINITIALIZED
        logger.info("Store '%s' closed", self.db_name)

    def _upgrade(self, ctx: UpgradeContext) -> None:
        if self.store_name not in ctx.object_store_names:
            ctx.create_object_store(self.store_name)
            logger.info("Created object store '%s'", self.store_name)

    # ----- export ------------------------------------------------------------

    async def export_all(self) -> dict[str, CanonicalRecord]:
        """Collect every save record as canonical records, keyed by store key.

        Raises
        ------
        StoreOpenError
            The store could not be opened.
        StoreError
            The fallback cursor scan failed.
        NoSaveData
            Neither the probe nor the scan found a non-empty record.
        """
        connection = await self.open()
        tx = connection.transaction(self.store_name, "readonly")
        store = tx.object_store(self.store_name)
        records: dict[str, CanonicalRecord] = {}

        for key in self.probe_keys:
            try:
                value = await store.get(key)
            except StoreError as exc:
                logger.error("%s", RecordAccessError(key, "get", str(exc)))
                continue
            if value is None:
                logger.debug("Save file not found: %s", key)
                continue
            self._accept(records, to_canonical(key, value))

        if not records:
            logger.info("No save files at well-known keys; scanning the whole store")
            async for key, value in store.cursor():
                self._accept(records, to_canonical(key, value))

        if not records:
            raise NoSaveData()
        logger.info("Exported %d record(s)", len(records))
        return records

    @staticmethod
    def _accept(records: dict[str, CanonicalRecord], record: CanonicalRecord) -> None:
        if is_metadata_key(record.key):
            logger.warning("Skipping '%s': its key collides with archive metadata", record.key)
            return
        if record.is_empty:
            logger.warning("Skipping empty data for %s", record.key)
            return
        records[record.key] = record

    async def list_keys(self) -> list[str]:
        """Return every key of the object store in key order."""
        connection = await self.open()
        tx = connection.transaction(self.store_name, "readonly")
        keys = [key async for key, _ in tx.object_store(self.store_name).cursor()]
        logger.debug("Store holds %d key(s)", len(keys))
        return keys

    # ----- import ------------------------------------------------------------

    async def import_all(
        self, document: ArchiveDocument, sync: SyncSignal | None = None
    ) -> ImportReport:
        """Write every data entry of ``document`` into the store.

        Parameters
        ----------
        document : ArchiveDocument
            Parsed archive.
        sync : SyncSignal | None
            Awaited once after the transaction committed, and only when at
            least one put succeeded.

        Raises
        ------
        EmptyArchive
            The document holds no data-bearing entry. Nothing is written.
        StoreOpenError
            The store could not be opened. Nothing is written.
        """
        if document.is_empty:
            raise EmptyArchive()

        report = ImportReport(total=len(document.entries))
        values: dict[str, FileEntry] = {}
        for key, entry in document.entries.items():
            if not entry.envelope.has_data:
                logger.warning("Skipping '%s': no data", key)
                report.skipped.append(key)
                continue
            values[key] = from_canonical(entry_to_record(key, entry))
        if not values:
            raise EmptyArchive("The uploaded file does not contain any valid data.")

        connection = await self.open()
        settled = await self._put_all(connection, values)
        for outcome in settled:
            if outcome.is_ok():
                report.succeeded.append(outcome.unwrap())
            else:
                error = outcome.unwrap_err()
                logger.error("%s", error)
                report.failed[error.key] = error.reason

        logger.info(
            "Import wrote %d of %d record(s)", len(report.succeeded), report.total
        )
        if report.succeeded and sync is not None:
            try:
                report.synced = bool(await sync())
            except Exception as exc:
                logger.error("Filesystem sync after import failed: %s", exc)
        return report

    async def _put_all(
        self, connection: StoreConnection, values: dict[str, FileEntry]
    ) -> list[Result[str, RecordAccessError]]:
        tx = connection.transaction(self.store_name, "readwrite")
        store = tx.object_store(self.store_name)
        settled: list[Result[str, RecordAccessError]] = []
        finished: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        expected = len(values)

        def record(outcome: Result[str, RecordAccessError]) -> None:
            settled.append(outcome)
            if len(settled) == expected and not finished.done():
                finished.set_result(None)

        def on_settled(request: StoreRequest[Any]) -> None:
            key = request.key or "?"
            exc = request.exception()
            if exc is None:
                record(ok(key))
            else:
                record(err(RecordAccessError(key, "put", str(exc))))

        # No await until every put is issued.
        for key, value in values.items():
            try:
                request = store.put(value, key)
            except (StoreError, TypeError) as exc:
                record(err(RecordAccessError(key, "put", str(exc))))
                continue
            request.add_done_callback(on_settled)

        await finished
        await tx.complete()
        return settled


# Global accessor for convenience
def get_session() -> StoreSession:
    return StoreSession.get_instance()


__all__ = [
    "ImportOutcome",
    "ImportReport",
    "SessionState",
    "StoreSession",
    "SyncSignal",
    "get_session",
]
