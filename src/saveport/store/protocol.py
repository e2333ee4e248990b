"""
Key-value store collaborator interfaces.

The session never talks to a concrete database. It depends on the small
surface below, modelled on the browser's transactional object stores:

- ``await backend.open(name, version, on_upgrade)`` returns a connection; a
  version bump runs ``on_upgrade`` first so it can create object stores.
- ``connection.transaction(names, mode)`` returns a transaction that stays
  alive only while it has requests outstanding.
- ``object_store.get(key)`` / ``put(value, key)`` *issue* a request
  immediately and return an awaitable handle. Issuing eagerly is what lets a
  caller fire a whole batch of puts in one turn of the event loop.
- ``object_store.cursor()`` walks records in key order, one request per step.

:mod:`saveport.store.memory` provides the in-process implementation.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Generator, Sequence
from typing import Any, Literal, Protocol, TypeVar

T_co = TypeVar("T_co", covariant=True)

TransactionMode = Literal["readonly", "readwrite"]


class StoreRequest(Protocol[T_co]):
    """Handle of an issued request; await it for the result."""

    operation: str
    key: str | None

    def __await__(self) -> Generator[Any, None, T_co]: ...

    def done(self) -> bool: ...

    def exception(self) -> BaseException | None: ...

    def add_done_callback(self, fn: Callable[[StoreRequest[T_co]], None]) -> None: ...


class UpgradeContext(Protocol):
    """Schema access granted to ``on_upgrade`` during a version change."""

    old_version: int
    new_version: int

    @property
    def object_store_names(self) -> frozenset[str]: ...

    def create_object_store(self, name: str) -> None: ...


UpgradeCallback = Callable[[UpgradeContext], None]


class ObjectStore(Protocol):
    """Request factory scoped to one object store of one transaction."""

    name: str

    def get(self, key: str) -> StoreRequest[Any]: ...

    def put(self, value: Any, key: str) -> StoreRequest[str]: ...

    def cursor(self) -> AsyncIterator[tuple[str, Any]]: ...


class StoreTransaction(Protocol):
    """A bounded group of requests that commits once none are outstanding."""

    mode: TransactionMode

    @property
    def active(self) -> bool: ...

    def object_store(self, name: str) -> ObjectStore: ...

    async def complete(self) -> None: ...


class StoreConnection(Protocol):
    """An open database."""

    name: str
    version: int

    @property
    def object_store_names(self) -> frozenset[str]: ...

    def transaction(
        self, store_names: str | Sequence[str], mode: TransactionMode = "readonly"
    ) -> StoreTransaction: ...

    def close(self) -> None: ...


class StoreBackend(Protocol):
    """Factory of connections."""

    async def open(
        self, name: str, version: int, on_upgrade: UpgradeCallback | None = None
    ) -> StoreConnection: ...


__all__ = [
    "ObjectStore",
    "StoreBackend",
    "StoreConnection",
    "StoreRequest",
    "StoreTransaction",
    "TransactionMode",
    "UpgradeCallback",
    "UpgradeContext",
]
