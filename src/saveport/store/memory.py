"""
In-process transactional key-value store.

Milestone
---------
M3 | Store & Session
Step 3.1 | In-memory backend with transaction lifetimes

This module implements :class:`~saveport.store.protocol.StoreBackend` on top
of plain dicts and the running asyncio loop. It is what the CLI, the HTTP API
and the tests talk to, and it reproduces the behaviour the session has to
respect in a browser:

- **Asynchronous requests**: every get/put/cursor step is queued on the loop
  and resolved later, in issue order.
- **Transaction lifetime**: a transaction finishes as soon as the loop gets a
  turn while it has no request outstanding. Issuing a request after that
  raises :class:`TransactionInactiveError`.
- **Structured clone**: values are deep-copied on the way in and out; a value
  that cannot be copied raises :class:`DataCloneError` at ``put`` time.
- **Non-fatal request errors**: a failed request fails alone; siblings in
  the same transaction still run.

Persistence
-----------
With ``snapshot_path`` set, the whole state is pickled after each schema
upgrade and each read-write commit, and reloaded on the first open. Without
it the store lives for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
import copy
import os
import pickle
from bisect import bisect_right
from collections.abc import AsyncIterator, Callable, Generator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from saveport.core.errors import (
    ConstraintError,
    DataCloneError,
    NotFoundError,
    ReadOnlyError,
    StoreError,
    TransactionInactiveError,
    VersionError,
)
from saveport.core.settings import get_logger
from saveport.store.protocol import TransactionMode, UpgradeCallback

logger = get_logger(__name__)

_MODES: frozenset[str] = frozenset({"readonly", "readwrite"})


def _clone(value: Any) -> Any:
    try:
        return copy.deepcopy(value)
    except Exception as exc:
        kind = type(value).__name__
        raise DataCloneError(f"Value of type {kind} cannot be cloned: {exc}") from exc


@dataclass
class _DatabaseState:
    version: int = 0
    stores: dict[str, dict[str, Any]] = field(default_factory=dict)


# --------------------------------------------------------------------------- #
# Requests
# --------------------------------------------------------------------------- #


class MemoryRequest:
    """Awaitable handle for one issued store operation."""

    __slots__ = ("_future", "operation", "key")

    def __init__(self, future: asyncio.Future[Any], operation: str, key: str | None) -> None:
        self._future = future
        self.operation = operation
        self.key = key

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future.__await__()

    def done(self) -> bool:
        return self._future.done()

    def add_done_callback(self, fn: Callable[[MemoryRequest], None]) -> None:
        """Call ``fn(self)`` once the request settles (success or failure)."""
        self._future.add_done_callback(lambda _fut: fn(self))

    def result(self) -> Any:
        return self._future.result()

    def exception(self) -> BaseException | None:
        return self._future.exception()

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        state = "done" if self.done() else "pending"
        return f"MemoryRequest({self.operation!r}, {self.key!r}, {state})"


# --------------------------------------------------------------------------- #
# Transactions and object stores
# --------------------------------------------------------------------------- #


class MemoryObjectStore:
    """Request factory bound to one object store inside one transaction."""

    def __init__(self, transaction: MemoryTransaction, name: str, data: dict[str, Any]) -> None:
        self._transaction = transaction
        self._data = data
        self.name = name

    def get(self, key: str) -> MemoryRequest:
        """Issue a read; resolves to a copy of the value or ``None``."""
        return self._transaction._issue("get", key, lambda: _clone(self._data.get(key)))

    def put(self, value: Any, key: str) -> MemoryRequest:
        """Issue a write of ``value`` under ``key``; resolves to ``key``."""
        self._transaction._ensure_active()
        if self._transaction.mode != "readwrite":
            raise ReadOnlyError(f"Cannot put '{key}' in a read-only transaction")
        if not isinstance(key, str):
            raise TypeError(f"Store keys must be strings, got {type(key).__name__}")
        cloned = _clone(value)
        return self._transaction._issue("put", key, lambda: self._write(key, cloned))

    def _write(self, key: str, value: Any) -> str:
        self._data[key] = value
        return key

    def _next_after(self, last: str | None) -> tuple[str, Any] | None:
        keys = sorted(self._data)
        idx = 0 if last is None else bisect_right(keys, last)
        if idx >= len(keys):
            return None
        key = keys[idx]
        return key, _clone(self._data[key])

    async def cursor(self) -> AsyncIterator[tuple[str, Any]]:
        """Yield ``(key, value)`` pairs in key order, one request per step."""
        last: str | None = None
        while True:
            step = self._transaction._issue(
                "cursor", last, lambda after=last: self._next_after(after)
            )
            item = await step
            if item is None:
                return
            last = item[0]
            yield item


class MemoryTransaction:
    """Transaction whose lifetime is bounded by its outstanding requests."""

    def __init__(
        self,
        connection: MemoryConnection,
        store_names: tuple[str, ...],
        mode: TransactionMode,
    ) -> None:
        self._loop = asyncio.get_running_loop()
        self._connection = connection
        self._store_names = store_names
        self.mode: TransactionMode = mode
        self._pending = 0
        self._finished = False
        self._check_scheduled = False
        self._done: asyncio.Future[None] = self._loop.create_future()
        self._schedule_check()

    @property
    def active(self) -> bool:
        return not self._finished

    def object_store(self, name: str) -> MemoryObjectStore:
        if name not in self._store_names:
            raise NotFoundError(f"Object store '{name}' is not in this transaction's scope")
        self._ensure_active()
        return MemoryObjectStore(self, name, self._connection._state.stores[name])

    async def complete(self) -> None:
        """Wait until the transaction has committed."""
        await asyncio.shield(self._done)

    # ----- internals ---------------------------------------------------------

    def _ensure_active(self) -> None:
        if self._finished:
            raise TransactionInactiveError(
                "The transaction has finished; requests must be issued before "
                "control returns to the event loop with nothing outstanding"
            )

    def _issue(self, operation: str, key: str | None, fn: Callable[[], Any]) -> MemoryRequest:
        self._ensure_active()
        future: asyncio.Future[Any] = self._loop.create_future()
        self._pending += 1
        self._loop.call_soon(self._run, future, fn)
        return MemoryRequest(future, operation, key)

    def _run(self, future: asyncio.Future[Any], fn: Callable[[], Any]) -> None:
        try:
            result = fn()
        except Exception as exc:
            if not future.cancelled():
                future.set_exception(exc)
        else:
            if not future.cancelled():
                future.set_result(result)
        finally:
            self._pending -= 1
            if self._pending == 0:
                self._schedule_check()

    def _schedule_check(self) -> None:
        if not self._check_scheduled:
            self._check_scheduled = True
            self._loop.call_soon(self._maybe_finish)

    def _maybe_finish(self) -> None:
        self._check_scheduled = False
        if self._finished or self._pending:
            return
        self._finished = True
        try:
            if self.mode == "readwrite":
                self._connection._backend._persist()
        except StoreError as exc:
            self._done.set_exception(exc)
        else:
            self._done.set_result(None)
        logger.debug("Transaction on %s (%s) finished", self._store_names, self.mode)


# --------------------------------------------------------------------------- #
# Connections and backend
# --------------------------------------------------------------------------- #


class MemoryUpgradeContext:
    """Schema editor handed to ``on_upgrade``."""

    def __init__(self, stores: dict[str, dict[str, Any]], old: int, new: int) -> None:
        self._stores = stores
        self.old_version = old
        self.new_version = new

    @property
    def object_store_names(self) -> frozenset[str]:
        return frozenset(self._stores)

    def create_object_store(self, name: str) -> None:
        if name in self._stores:
            raise ConstraintError(f"Object store '{name}' already exists")
        self._stores[name] = {}


class MemoryConnection:
    """Open handle on one database of a :class:`MemoryBackend`."""

    def __init__(self, backend: MemoryBackend, name: str, state: _DatabaseState) -> None:
        self._backend = backend
        self._state = state
        self._closed = False
        self.name = name
        self.version = state.version

    @property
    def object_store_names(self) -> frozenset[str]:
        return frozenset(self._state.stores)

    def transaction(
        self, store_names: str | Sequence[str], mode: TransactionMode = "readonly"
    ) -> MemoryTransaction:
        if self._closed:
            raise StoreError(f"Connection to '{self.name}' is closed")
        if mode not in _MODES:
            raise ValueError(f"Unknown transaction mode: {mode!r}")
        names = (store_names,) if isinstance(store_names, str) else tuple(store_names)
        missing = [n for n in names if n not in self._state.stores]
        if missing:
            raise NotFoundError(f"Object store(s) not found: {', '.join(missing)}")
        return MemoryTransaction(self, names, mode)

    def close(self) -> None:
        self._closed = True


class MemoryBackend:
    """Dict-backed store factory with optional pickle snapshots."""

    def __init__(self, snapshot_path: Path | None = None) -> None:
        self._databases: dict[str, _DatabaseState] = {}
        self._snapshot_path = snapshot_path
        self._loaded = snapshot_path is None

    async def open(
        self, name: str, version: int, on_upgrade: UpgradeCallback | None = None
    ) -> MemoryConnection:
        """Open ``name`` at ``version``, running ``on_upgrade`` on a bump."""
        if version < 1:
            raise ValueError(f"Database version must be >= 1, got {version}")

        # Opening always completes on a later turn of the loop
        await asyncio.sleep(0)

        if not self._loaded:
            self._loaded = True
            if self._snapshot_path is not None and self._snapshot_path.exists():
                self._load(self._snapshot_path)

        state = self._databases.get(name)
        old_version = state.version if state else 0
        if version < old_version:
            raise VersionError(
                f"Requested version {version} of '{name}' is older than stored {old_version}"
            )

        if state is None or version > old_version:
            stores = dict(state.stores) if state else {}
            if on_upgrade is not None:
                on_upgrade(MemoryUpgradeContext(stores, old_version, version))
            state = _DatabaseState(version=version, stores=stores)
            self._databases[name] = state
            self._persist()
            logger.info("Upgraded '%s' from v%d to v%d", name, old_version, version)

        return MemoryConnection(self, name, state)

    # ----- snapshots ---------------------------------------------------------

    def _persist(self) -> None:
        if self._snapshot_path is None:
            return
        path = self._snapshot_path
        payload = {name: (s.version, s.stores) for name, s in self._databases.items()}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            with tmp.open("wb") as f:
                pickle.dump(payload, f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp, path)
        except (OSError, pickle.PicklingError) as exc:
            raise StoreError(f"Could not write store snapshot {path}: {exc}") from exc

    def _load(self, path: Path) -> None:
        try:
            with path.open("rb") as f:
                payload = pickle.load(f)
        except (OSError, EOFError, pickle.UnpicklingError, AttributeError, ImportError) as exc:
            raise StoreError(f"Could not read store snapshot {path}: {exc}") from exc

        for name, (version, stores) in payload.items():
            self._databases[name] = _DatabaseState(version=version, stores=stores)
        logger.debug("Loaded %d database(s) from %s", len(payload), path)


__all__ = [
    "MemoryBackend",
    "MemoryConnection",
    "MemoryObjectStore",
    "MemoryRequest",
    "MemoryTransaction",
    "MemoryUpgradeContext",
]
