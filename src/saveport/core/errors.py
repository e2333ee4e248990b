"""Exception hierarchy for SavePort.

Every error raised by the store, the archive codec or the workflows derives
from :class:`SavePortError`, which carries a machine-readable ``error_code``
and a ``context`` dict. Callers at the outer surfaces (workflows, CLI, HTTP
API) catch the base class and turn it into a status report; nothing below
them swallows errors.

Taxonomy
--------
- Store side: :class:`StoreOpenError` is fatal to the current operation,
  :class:`RecordAccessError` concerns a single key and never aborts a batch.
  The remaining store errors mirror request-level failures of the backend.
- Archive side: :class:`MalformedArchive` and :class:`EmptyArchive` abort an
  import before any write; :class:`ArchiveReadError` covers the file read.
- :class:`NoSaveData` means the export found nothing (the store itself was fine).
- :class:`DownloadError` and :class:`DownloadBlocked` cover delivering the
  exported archive.
- :class:`PartialImportFailure` wraps an import report with failed puts.

The record codec never raises any of these; it degrades data instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from saveport.store.session import ImportReport


class SavePortError(Exception):
    """Base exception for all SavePort errors."""

    error_code: str = "saveport_error"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ----- Store errors ----------------------------------------------------------


class StoreError(SavePortError):
    """Failure reported by the key-value store backend."""

    error_code = "store_error"


class StoreOpenError(StoreError):
    """The store connection (or its schema upgrade) could not be established."""

    error_code = "store_open_failed"

    def __init__(self, db_name: str, reason: str, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Failed to open store '{db_name}': {reason}",
            context={"db_name": db_name, "reason": reason},
        )
        self.db_name = db_name
        self.reason = reason
        self.cause = cause


class RecordAccessError(StoreError):
    """A single get or put failed; the surrounding batch carries on."""

    error_code = "record_access_failed"

    def __init__(self, key: str, operation: str, reason: str) -> None:
        super().__init__(
            f"{operation} failed for '{key}': {reason}",
            context={"key": key, "operation": operation, "reason": reason},
        )
        self.key = key
        self.operation = operation
        self.reason = reason


class TransactionInactiveError(StoreError):
    """A request was issued after its transaction finished."""

    error_code = "transaction_inactive"


class ReadOnlyError(StoreError):
    """A write was issued inside a read-only transaction."""

    error_code = "read_only"


class DataCloneError(StoreError):
    """The value cannot be copied into the store."""

    error_code = "data_clone"


class ConstraintError(StoreError):
    """Schema change conflicts with an existing object store."""

    error_code = "constraint"


class VersionError(StoreError):
    """The requested schema version is older than the stored one."""

    error_code = "version"


class NotFoundError(StoreError):
    """The named object store does not exist."""

    error_code = "not_found"


# ----- Archive errors --------------------------------------------------------


class ArchiveError(SavePortError):
    """Problem with an archive document supplied for import."""

    error_code = "archive_error"


class MalformedArchive(ArchiveError):
    """The archive text is not a JSON object of objects."""

    error_code = "malformed_archive"


class EmptyArchive(ArchiveError):
    """The archive parsed fine but holds no data-bearing entries."""

    error_code = "empty_archive"

    def __init__(self, message: str = "The uploaded file does not contain any data.") -> None:
        super().__init__(message)


class ArchiveReadError(ArchiveError):
    """The archive file could not be read."""

    error_code = "archive_read_failed"


# ----- Workflow outcomes -----------------------------------------------------


class DownloadError(SavePortError):
    """The exported archive could not be delivered (the store was fine)."""

    error_code = "download_failed"


class DownloadBlocked(DownloadError):
    """The download policy refused the archive."""

    error_code = "download_blocked"



class NoSaveData(SavePortError):
    """Export found no save records in the store."""

    error_code = "no_save_data"

    def __init__(
        self, message: str = "No save files found. Try playing the game and saving first."
    ) -> None:
        super().__init__(message)


class PartialImportFailure(SavePortError):
    """Some puts of an import failed; carries the full report."""

    error_code = "partial_import"

    def __init__(self, report: ImportReport) -> None:
        super().__init__(
            f"Upload completed with errors. Successfully uploaded "
            f"{len(report.succeeded)} out of {report.total} records.",
            context={"failed": dict(report.failed)},
        )
        self.report = report


__all__ = [
    "SavePortError",
    "StoreError",
    "StoreOpenError",
    "RecordAccessError",
    "TransactionInactiveError",
    "ReadOnlyError",
    "DataCloneError",
    "ConstraintError",
    "VersionError",
    "NotFoundError",
    "ArchiveError",
    "MalformedArchive",
    "EmptyArchive",
    "ArchiveReadError",
    "DownloadError",
    "DownloadBlocked",
    "NoSaveData",
    "PartialImportFailure",
]
