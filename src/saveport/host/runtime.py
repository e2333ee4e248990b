"""
Host runtime bridge: the filesystem-sync hook and its readiness.

The game runs on an in-memory filesystem that the host flushes to and from
the save store with ``sync(populate)``. That hook only exists once the host
runtime has booted, and there is no fixed moment at which that happens.

:class:`HostBridge` is an explicit readiness handle: the host calls
:meth:`HostBridge.resolve` exactly once when its hook is available, and the
core either awaits :meth:`HostBridge.wait_ready` or checks
:meth:`HostBridge.current` when it needs to sync. Resolving wraps the hook so
every sync first makes sure the store session is open.

After an import has been written, :meth:`HostBridge.sync_after_import` pulls
the store into the running program and then notifies the subscribed
listeners (for instance a request to reload the page).
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from saveport.core.settings import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from saveport.store.session import StoreSession

logger = get_logger(__name__)

FilesystemSync = Callable[[bool], Awaitable[None]]
SyncListener = Callable[[], Awaitable[None] | None]


class HostBridge:
    """One-shot readiness handle for the host's filesystem-sync hook."""

    def __init__(self, session: StoreSession | None = None) -> None:
        self._session = session
        self._sync: FilesystemSync | None = None
        self._ready = asyncio.Event()
        self._listeners: list[SyncListener] = []

    @property
    def is_ready(self) -> bool:
        return self._sync is not None

    def resolve(self, sync: FilesystemSync) -> None:
        """Publish the host's sync hook. Later calls are ignored."""
        if self._sync is not None:
            logger.warning("Host sync hook already resolved; ignoring")
            return
        self._sync = self._guard(sync)
        self._ready.set()
        logger.info("Host filesystem sync is ready")

    def _guard(self, sync: FilesystemSync) -> FilesystemSync:
        session = self._session

        async def guarded(populate: bool) -> None:
            if session is not None:
                await session.open()
            await sync(populate)

        return guarded

    def current(self) -> FilesystemSync | None:
        """Return the guarded hook, or ``None`` while the host is booting."""
        return self._sync

    async def wait_ready(self) -> FilesystemSync:
        """Suspend until the host resolves its hook."""
        await self._ready.wait()
        assert self._sync is not None
        return self._sync

    def subscribe(self, listener: SyncListener) -> None:
        """Call ``listener`` after each successful post-import sync."""
        self._listeners.append(listener)

    async def sync_after_import(self) -> bool:
        """Populate the program's filesystem from the store, then notify.

        Returns ``False`` without syncing when the host is not ready yet.
        """
        sync = self.current()
        if sync is None:
            logger.info("Host runtime not ready; skipping filesystem sync")
            return False

        await sync(True)
        logger.info("Filesystem sync completed after upload")
        for listener in self._listeners:
            outcome = listener()
            if inspect.isawaitable(outcome):
                await outcome
        return True


__all__ = ["FilesystemSync", "HostBridge", "SyncListener"]
