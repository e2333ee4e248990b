"""
Save transfer workflows: user-facing export and import.

Milestone
---------
M4 | Workflows & Surfaces
Step 4.1 | Export / import with status reporting

Flow Overview
-------------
1. **Export**: session export -> archive serialization -> user-initiated
   download named ``<prefix><YYYY-MM-DD>.json``.
2. **Import**: archive text (or file) -> parsed document -> session import in
   one transaction -> host filesystem sync when something was written.

Both workflows are the error boundary of the package. Every
:class:`~saveport.core.errors.SavePortError` is turned into a status report
and a :class:`TransferResult` with ``ok=False``; the CLI and the HTTP API
only look at that result.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from saveport.codec.archive import archive_filename, deserialize, serialize
from saveport.core.errors import (
    ArchiveReadError,
    DownloadBlocked,
    DownloadError,
    EmptyArchive,
    MalformedArchive,
    NoSaveData,
    PartialImportFailure,
    SavePortError,
    StoreError,
    StoreOpenError,
)
from saveport.core.settings import get_logger
from saveport.host.files import DownloadTrigger, read_archive_text
from saveport.host.runtime import HostBridge
from saveport.host.status import StatusLevel, StatusReporter
from saveport.store.session import ImportOutcome, ImportReport, StoreSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of one workflow run.

    Attributes
    ----------
    ok : bool
        False when the workflow reported an error.
    level : StatusLevel
        Level of the final status report.
    message : str
        Text of the final status report.
    records : int
        Records exported or written.
    path : Path | None
        Where the exported archive was delivered.
    report : ImportReport | None
        Per-key tally of an import that reached the store.
    error_code : str | None
        ``error_code`` of the error that stopped the workflow.
    """

    ok: bool
    level: StatusLevel
    message: str
    records: int = 0
    path: Path | None = None
    report: ImportReport | None = None
    error_code: str | None = None


def _fail(reporter: StatusReporter, message: str, error: SavePortError) -> TransferResult:
    reporter.report(StatusLevel.ERROR, message)
    return TransferResult(
        ok=False, level=StatusLevel.ERROR, message=message, error_code=error.error_code
    )


async def run_export(
    session: StoreSession, trigger: DownloadTrigger, reporter: StatusReporter
) -> TransferResult:
    """Export every save record and offer the archive as a download."""
    reporter.report(StatusLevel.INFO, "Preparing all save data for download...")

    try:
        records = await session.export_all()
    except NoSaveData as exc:
        return _fail(reporter, exc.message, exc)
    except StoreOpenError as exc:
        return _fail(reporter, f"Failed to open the save store: {exc.reason}", exc)
    except StoreError as exc:
        return _fail(reporter, f"Failed to read save data: {exc.message}", exc)

    text = serialize(records)
    filename = archive_filename()
    try:
        path = trigger.offer(text, filename, user_initiated=True)
    except OSError as exc:
        logger.error("Writing %s failed: %s", filename, exc)
        error = DownloadError(str(exc), context={"filename": filename})
        return _fail(reporter, f"Failed to download save data: {exc}", error)

    if path is None:
        error = DownloadBlocked("download refused", context={"filename": filename})
        return _fail(reporter, f"Download of {filename} was blocked.", error)

    message = f"Downloaded {len(records)} records successfully!"
    reporter.report(StatusLevel.SUCCESS, message)
    return TransferResult(
        ok=True, level=StatusLevel.SUCCESS, message=message, records=len(records), path=path
    )


async def run_import(
    session: StoreSession,
    text: str,
    reporter: StatusReporter,
    bridge: HostBridge | None = None,
) -> TransferResult:
    """Parse archive text and write it into the store."""
    reporter.report(StatusLevel.INFO, "Processing uploaded save data...")

    try:
        document = deserialize(text)
    except MalformedArchive as exc:
        return _fail(reporter, f"Failed to parse uploaded file: {exc.message}", exc)

    sync = bridge.sync_after_import if bridge is not None else None
    try:
        report = await session.import_all(document, sync=sync)
    except EmptyArchive as exc:
        return _fail(reporter, exc.message, exc)
    except StoreOpenError as exc:
        return _fail(reporter, f"Failed to initialize the save store: {exc.reason}", exc)
    except SavePortError as exc:
        return _fail(reporter, f"Failed to process upload: {exc.message}", exc)

    written = len(report.succeeded)
    try:
        report.raise_for_failures()
    except PartialImportFailure as exc:
        level = (
            StatusLevel.ERROR if report.outcome is ImportOutcome.FAILURE else StatusLevel.WARNING
        )
        reporter.report(level, exc.message)
        return TransferResult(
            ok=report.outcome is not ImportOutcome.FAILURE,
            level=level,
            message=exc.message,
            records=written,
            report=report,
            error_code=exc.error_code,
        )

    message = f"Uploaded {written} records successfully!"
    reporter.report(StatusLevel.SUCCESS, message)
    if report.synced:
        message = "Save data uploaded and synced! Reload the game to apply changes."
        reporter.report(StatusLevel.SUCCESS, message)
    return TransferResult(
        ok=True, level=StatusLevel.SUCCESS, message=message, records=written, report=report
    )


async def run_import_file(
    session: StoreSession,
    path: Path,
    reporter: StatusReporter,
    bridge: HostBridge | None = None,
) -> TransferResult:
    """Read an archive file, then :func:`run_import` its text."""
    try:
        text = await read_archive_text(path)
    except ArchiveReadError as exc:
        logger.error("%s", exc)
        return _fail(reporter, "Failed to read the uploaded file.", exc)
    return await run_import(session, text, reporter, bridge)


__all__ = ["TransferResult", "run_export", "run_import", "run_import_file"]
