"""
API Data Models (DTOs).

Pydantic v2 response bodies of the HTTP API. They mirror the workflow
results (:class:`~saveport.pipelines.save_transfer.TransferResult`,
:class:`~saveport.store.session.ImportReport`) without exposing them
directly, so the wire format can stay stable while internals move.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from saveport.host.status import StatusEvent, StatusLevel
from saveport.store.session import ImportOutcome, ImportReport, SessionState


class HealthResponse(BaseModel):
    """Liveness plus the state of the store session."""

    status: str = "ok"
    version: str
    store: SessionState


class KeysResponse(BaseModel):
    """Keys held by the object store, in key order."""

    db_name: str
    object_store: str
    keys: list[str] = Field(default_factory=list)


class ImportReportBody(BaseModel):
    """Per-key tally of an import."""

    total: int
    succeeded: list[str]
    failed: dict[str, str]
    skipped: list[str]
    synced: bool
    outcome: ImportOutcome

    @classmethod
    def from_report(cls, report: ImportReport) -> ImportReportBody:
        return cls(
            total=report.total,
            succeeded=list(report.succeeded),
            failed=dict(report.failed),
            skipped=list(report.skipped),
            synced=report.synced,
            outcome=report.outcome,
        )


class ImportResponse(BaseModel):
    """Result of ``POST /saves/import``."""

    ok: bool
    level: StatusLevel
    message: str
    report: ImportReportBody | None = None


class StatusEventBody(BaseModel):
    level: StatusLevel
    message: str
    at: datetime

    @classmethod
    def from_event(cls, event: StatusEvent) -> StatusEventBody:
        return cls(level=event.level, message=event.message, at=event.at)


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx produced for a domain error."""

    error: str
    detail: str
    context: dict[str, object] = Field(default_factory=dict)


__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "ImportReportBody",
    "ImportResponse",
    "KeysResponse",
    "StatusEventBody",
]
