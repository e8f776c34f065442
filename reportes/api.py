"""HTTP surface of the report intake backend."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from reportes.intake import ClientInputError, InvalidJSONError, PayloadTooLargeError, ReportIntakeService
from reportes.status import StatusReporter
from reportes.stores import ReportStore, StoreError, XLSX_MIME_TYPE
from reportes.workbook_store import WorkbookStore
from reportes.write_queue import WriteSerializer, WriteTimeoutError
from settings import BACKEND_SHEETS, IntakeSettings

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

router = APIRouter()


def build_store(settings: IntakeSettings) -> ReportStore:
    """Return the store selected by ``settings.backend``."""

    if settings.backend == BACKEND_SHEETS:
        from reportes.sheets_store import build_sheets_store

        return build_sheets_store(settings)
    return WorkbookStore(
        settings.workbook_path,
        sync_status_default=settings.sync_status_default,
        force_sync_status=settings.force_sync_status,
    )


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    content = {"ok": False, "error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def _read_json(request: Request, limit: int) -> Any:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(limit)
    # chunked uploads carry no length, stop reading once the limit is passed
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise PayloadTooLargeError(limit)
        chunks.append(chunk)
    body = b"".join(chunks)
    if not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError as exc:
        raise InvalidJSONError() from exc


def _require_diagnostics(request: Request) -> None:
    if not request.app.state.settings.diagnostics_enabled:
        raise HTTPException(status_code=404, detail="Not Found")


@router.get("/", response_class=PlainTextResponse)
async def root(request: Request) -> str:
    return f"OK backend-reportes ({request.app.state.store.label})"


@router.post("/api/reports")
async def submit_reports(request: Request):
    settings: IntakeSettings = request.app.state.settings
    intake: ReportIntakeService = request.app.state.intake
    payload = await _read_json(request, settings.max_body_bytes)
    result = await intake.submit(payload)
    return {"ok": True, **result.to_json()}


@router.get("/health")
async def health(request: Request):
    return await run_in_threadpool(request.app.state.reporter.health)


@router.get("/status")
async def status(request: Request):
    return await run_in_threadpool(request.app.state.reporter.status)


@router.get("/download/{artifact_name}")
async def download(artifact_name: str, request: Request):
    store: ReportStore = request.app.state.store
    if artifact_name != store.artifact_name:
        raise HTTPException(status_code=404, detail="File not found")
    content = await run_in_threadpool(store.export_bytes)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    headers = dict(NO_CACHE_HEADERS)
    headers["Content-Disposition"] = f'attachment; filename="{store.artifact_name}"'
    return Response(content=content, media_type=XLSX_MIME_TYPE, headers=headers)


@router.get("/test-create-excel", response_class=PlainTextResponse)
async def test_create_excel(request: Request) -> str:
    _require_diagnostics(request)
    intake: ReportIntakeService = request.app.state.intake
    created = await intake.create_artifact()
    description = await run_in_threadpool(intake.store.describe)
    if created:
        return f"Created {description.path}"
    return f"Already exists: {description.path}"


@router.get("/reset-excel", response_class=PlainTextResponse)
async def reset_excel(request: Request) -> str:
    _require_diagnostics(request)
    intake: ReportIntakeService = request.app.state.intake
    await intake.reset_artifact()
    description = await run_in_threadpool(intake.store.describe)
    return f"Reset {description.path}; all stored reports were deleted"


async def _client_error_handler(request: Request, exc: ClientInputError) -> JSONResponse:
    return _error(exc.status_code, str(exc), **exc.extra())


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, exc.public_message)


async def _timeout_handler(request: Request, exc: WriteTimeoutError) -> JSONResponse:
    return _error(500, str(exc))


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, StoreError.public_message)


def create_app(settings: IntakeSettings, store: Optional[ReportStore] = None) -> FastAPI:
    """Assemble the FastAPI application and its collaborators.

    ``store`` overrides the backend chosen by ``settings``.
    """

    logger.info("Starting report intake with settings %s", settings.to_json())
    store = store or build_store(settings)
    serializer = WriteSerializer(timeout=settings.write_timeout_seconds, name=store.label)

    app = FastAPI(
        title="Reportes backend",
        description="Receives equipment inspection reports and appends them to a spreadsheet.",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.serializer = serializer
    app.state.intake = ReportIntakeService(
        store, serializer, sync_status_default=settings.sync_status_default
    )
    app.state.reporter = StatusReporter(store)

    app.add_exception_handler(ClientInputError, _client_error_handler)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(WriteTimeoutError, _timeout_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router)

    logger.info("Report intake ready using the %s backend (%s)", store.label, store.artifact_name)
    return app


__all__ = ["NO_CACHE_HEADERS", "build_store", "create_app"]
