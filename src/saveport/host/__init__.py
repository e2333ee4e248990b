"""Host collaborators: status display, file transfer, runtime sync."""

from __future__ import annotations

from .files import (
    DirectoryDownloadTrigger,
    DownloadRequest,
    DownloadTrigger,
    allow_all,
    block_small_unrequested,
    read_archive_text,
)
from .runtime import HostBridge
from .status import LogStatusReporter, StatusEvent, StatusLevel, StatusReporter

__all__ = [
    "DirectoryDownloadTrigger",
    "DownloadRequest",
    "DownloadTrigger",
    "HostBridge",
    "LogStatusReporter",
    "StatusEvent",
    "StatusLevel",
    "StatusReporter",
    "allow_all",
    "block_small_unrequested",
    "read_archive_text",
]
