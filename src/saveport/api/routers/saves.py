"""
API Routes for Save Transfers.

Milestone
---------
M4 | Workflows & Surfaces
Step 4.3 | HTTP API

Endpoints
---------
- `GET /saves/keys`: List the keys held by the object store.
- `GET /saves/export`: Download the archive of every save record.
- `POST /saves/import`: Upload archive text (raw request body).
- `GET /saves/status`: Recent status reports of the workflows.

Design Decisions
----------------
- **Workflow reuse**: export and import run the same workflows as the CLI.
  The export's download trigger captures the archive instead of writing it,
  and the route returns it as an attachment.
- **Error mapping**: domain errors keep their ``error_code``; the HTTP status
  comes from :data:`ERROR_STATUS`.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

from fastapi import APIRouter, HTTPException, Request, Response, status

from saveport.api.schemas import (
    ImportReportBody,
    ImportResponse,
    KeysResponse,
    StatusEventBody,
)
from saveport.host.runtime import HostBridge
from saveport.host.status import LogStatusReporter
from saveport.pipelines.save_transfer import TransferResult, run_export, run_import
from saveport.store.session import get_session

router = APIRouter(prefix="/saves", tags=["Saves"])

ERROR_STATUS: dict[str, int] = {
    "malformed_archive": status.HTTP_400_BAD_REQUEST,
    "empty_archive": status.HTTP_400_BAD_REQUEST,
    "archive_read_failed": status.HTTP_400_BAD_REQUEST,
    "archive_error": status.HTTP_400_BAD_REQUEST,
    "no_save_data": status.HTTP_404_NOT_FOUND,
    "not_found": status.HTTP_404_NOT_FOUND,
    "download_blocked": status.HTTP_403_FORBIDDEN,
    "download_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_status_for(error_code: str | None) -> int:
    """Map a domain ``error_code`` to an HTTP status (store trouble is 503)."""
    if error_code is None:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return ERROR_STATUS.get(error_code, status.HTTP_503_SERVICE_UNAVAILABLE)


class CapturedDownload:
    """Download trigger that keeps the offered payload in memory."""

    def __init__(self) -> None:
        self.payload: bytes | None = None
        self.filename: str | None = None

    def offer(
        self, payload: str | bytes, filename: str, *, user_initiated: bool = False
    ) -> Path | None:
        self.payload = payload.encode("utf-8") if isinstance(payload, str) else payload
        self.filename = Path(filename).name
        return Path(self.filename)


def _reporter(request: Request) -> LogStatusReporter:
    reporter: LogStatusReporter = request.app.state.reporter
    return reporter


def _raise_for(result: TransferResult) -> NoReturn:
    raise HTTPException(
        status_code=http_status_for(result.error_code),
        detail={"error": result.error_code or "error", "detail": result.message},
    )


@router.get("/keys", response_model=KeysResponse, summary="List store keys")
async def list_keys() -> KeysResponse:
    session = get_session()
    keys = await session.list_keys()
    return KeysResponse(db_name=session.db_name, object_store=session.store_name, keys=keys)


@router.get(
    "/export",
    summary="Download every save record as a JSON archive",
    responses={200: {"content": {"application/json": {}}}},
)
async def export_archive(request: Request) -> Response:
    """
    Run the export workflow and return the archive as an attachment.

    The filename follows the export naming scheme
    (``undertale_indexeddb_<YYYY-MM-DD>.json`` by default).
    """
    capture = CapturedDownload()
    result = await run_export(get_session(), capture, _reporter(request))
    if not result.ok or capture.payload is None:
        _raise_for(result)

    return Response(
        content=capture.payload,
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="{capture.filename}"',
            "X-Record-Count": str(result.records),
        },
    )


@router.post("/import", response_model=ImportResponse, summary="Upload an archive")
async def import_archive(request: Request) -> ImportResponse:
    """
    Import the archive sent as the raw request body.

    A partial import still answers 200; the body lists the failed keys.
    """
    raw = await request.body()
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "archive_read_failed", "detail": f"Body is not UTF-8: {exc}"},
        ) from exc

    bridge: HostBridge | None = request.app.state.bridge
    result = await run_import(get_session(), text, _reporter(request), bridge)
    if not result.ok:
        _raise_for(result)

    return ImportResponse(
        ok=result.ok,
        level=result.level,
        message=result.message,
        report=ImportReportBody.from_report(result.report) if result.report else None,
    )


@router.get("/status", response_model=list[StatusEventBody], summary="Recent status reports")
async def recent_status(request: Request) -> list[StatusEventBody]:
    return [StatusEventBody.from_event(e) for e in _reporter(request).history]


__all__ = ["ERROR_STATUS", "CapturedDownload", "http_status_for", "router"]
