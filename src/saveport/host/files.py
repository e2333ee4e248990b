"""File collaborators: reading uploaded archives and offering downloads.

Download policy
---------------
The host runtime sometimes tries to hand small save files to the user on its
own. Instead of intercepting those attempts globally, every download goes
through a :class:`DownloadTrigger` that consults an allow/deny predicate.
:func:`block_small_unrequested` reproduces the old behaviour: downloads below
a byte threshold are refused unless the user asked for them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from saveport.core.errors import ArchiveReadError
from saveport.core.settings import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class DownloadRequest:
    """What a policy gets to see about an offered download."""

    filename: str
    size: int
    user_initiated: bool


DownloadPolicy = Callable[[DownloadRequest], bool]


def allow_all(_request: DownloadRequest) -> bool:
    """Policy that never refuses."""
    return True


def block_small_unrequested(min_bytes: int = 100_000) -> DownloadPolicy:
    """Refuse downloads under ``min_bytes`` that the user did not start."""

    def policy(request: DownloadRequest) -> bool:
        return request.user_initiated or request.size >= min_bytes

    return policy


class DownloadTrigger(Protocol):
    """Offers serialized content to the user as a file."""

    def offer(
        self, payload: str | bytes, filename: str, *, user_initiated: bool = False
    ) -> Path | None: ...


class DirectoryDownloadTrigger:
    """Deliver offered downloads by writing them into a directory."""

    def __init__(self, directory: Path, policy: DownloadPolicy = allow_all) -> None:
        self.directory = directory
        self.policy = policy

    def offer(
        self, payload: str | bytes, filename: str, *, user_initiated: bool = False
    ) -> Path | None:
        """Write ``payload`` as ``filename`` unless the policy refuses it.

        Returns the written path, or ``None`` when the download was blocked.
        """
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        request = DownloadRequest(
            filename=Path(filename).name,
            size=len(data),
            user_initiated=user_initiated,
        )
        if not self.policy(request):
            logger.info("Blocked download of %s (%d bytes)", request.filename, request.size)
            return None

        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / request.filename
        target.write_bytes(data)
        logger.info("Delivered %s (%d bytes)", target, request.size)
        return target


async def read_archive_text(path: Path) -> str:
    """Read an uploaded archive without blocking the event loop.

    Raises
    ------
    ArchiveReadError
        If the file cannot be opened or is not valid UTF-8.
    """
    try:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ArchiveReadError(
            f"Failed to read the uploaded file: {exc}", context={"path": str(path)}
        ) from exc


__all__ = [
    "DirectoryDownloadTrigger",
    "DownloadPolicy",
    "DownloadRequest",
    "DownloadTrigger",
    "allow_all",
    "block_small_unrequested",
    "read_archive_text",
]
