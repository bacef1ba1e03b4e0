"""Batch MP3 Converter - Convert API FastAPI application.

Routes:
- POST /api/verify-code: check an access code
- POST /api/convert: upload a batch, convert it, get a per-file report
- GET  /api/download/{session_id}: fetch the session's ZIP archive
- GET  /api/status: static capability description
- GET  /health: liveness

Conversion runs inside the request (sync endpoint, executed in the server's
threadpool). Deferred cleanups and the hourly retention sweep run on the
huey consumer (see batchconv.huey_app).

Run with:
    uvicorn services.convert_api.main:app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, Header, Query, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from batchconv import config
from batchconv.batch import BatchConverter
from batchconv.coordinator import SessionCoordinator
from batchconv.errors import ConversionError, ConversionErrorCode
from batchconv.retention import RetentionSweeper
from batchconv.schemas import (
    CapabilitiesResponse,
    ConversionResponse,
    ErrorResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from batchconv.storage import StorageArea
from batchconv.utils.audio_meta import supported_formats_label
from batchconv.utils.paths import archive_filename
from services.convert_api.service import (
    UploadedFile,
    ingest_uploads,
    is_valid_access_code,
    require_access_code,
    resolve_session_id,
)

logger = logging.getLogger(__name__)

# --- Coordinator Setup ---

# Module-level coordinator (initialized on startup)
_coordinator: SessionCoordinator | None = None


def build_default_coordinator() -> SessionCoordinator:
    """Wire a coordinator on the configured storage and the huey scheduler."""
    # Imported here so that merely importing the API does not open the queue DB
    from batchconv.huey_app import HueyCleanupScheduler

    storage = StorageArea.from_config()
    return SessionCoordinator(
        storage=storage,
        converter=BatchConverter(storage),
        scheduler=HueyCleanupScheduler(),
    )


def get_coordinator() -> SessionCoordinator:
    """Dependency that provides the session coordinator.

    Raises:
        RuntimeError: If the coordinator is not initialized (app lifespan not invoked).
    """
    if _coordinator is None:
        raise RuntimeError("Coordinator not initialized. App lifespan not invoked?")
    return _coordinator


# --- Lifespan ---


def _startup_housekeeping_safe(storage: StorageArea) -> None:
    """Prepare storage roots and reclaim leftovers (best-effort).

    Removes temp files of interrupted writes and runs one retention sweep,
    so a restart after a long outage does not wait an hour for cleanup.
    Never crashes startup.
    """
    try:
        storage.ensure_roots()
        cleaned = storage.cleanup_orphan_temp_files()
        if cleaned > 0:
            logger.info("Startup cleanup: removed %d orphan temp files", cleaned)
        RetentionSweeper(storage).sweep()
    except Exception:
        logger.warning("Startup housekeeping failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Builds the coordinator (unless one was injected) and runs startup
    housekeeping.
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = build_default_coordinator()

    _startup_housekeeping_safe(_coordinator.storage)

    logger.info("Batch MP3 converter ready (temp dir: %s)", config.TMP_DIR)
    yield


# --- FastAPI App ---


app = FastAPI(
    title="Batch MP3 Converter",
    description="Converts batches of audio files to 320 kbps MP3 and packages them as ZIP.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error Handling ---


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - ACCESS_DENIED -> 401
    - ARCHIVE_NOT_FOUND -> 404
    - validation codes -> 400
    - STORAGE_FAILED and anything else -> 500
    """
    if error_code == ConversionErrorCode.ACCESS_DENIED:
        return 401
    if error_code == ConversionErrorCode.ARCHIVE_NOT_FOUND:
        return 404
    if error_code in (
        ConversionErrorCode.NO_FILES,
        ConversionErrorCode.TOO_MANY_FILES,
        ConversionErrorCode.FILE_TOO_LARGE,
        ConversionErrorCode.UNSUPPORTED_FORMAT,
        ConversionErrorCode.INVALID_SESSION_ID,
        ConversionErrorCode.INVALID_FILENAME,
    ):
        return 400
    return 500


def make_error_response(error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=error_code_to_status(error_code),
        content=ErrorResponse(
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


def conversion_error_response(error: ConversionError) -> JSONResponse:
    """Map a ConversionError to its JSON response.

    Storage failures are logged in full but answered with a generic message
    so that no internal paths leak to the caller.
    """
    if error.error_code == ConversionErrorCode.STORAGE_FAILED:
        logger.error("Storage failure: %s", error.message)
        return make_error_response(
            ConversionErrorCode.STORAGE_FAILED,
            "Internal server error",
        )
    return make_error_response(error.error_code, error.message)


# --- Endpoints ---


@app.post(
    "/api/verify-code",
    response_model=VerifyCodeResponse,
    responses={401: {"model": VerifyCodeResponse, "description": "Invalid access code"}},
    summary="Verify an access code",
)
def verify_code(request: VerifyCodeRequest):
    """Tell the client whether its access code is valid."""
    if is_valid_access_code(request.code):
        return VerifyCodeResponse(valid=True, message="Access granted")
    return JSONResponse(
        status_code=401,
        content=VerifyCodeResponse(valid=False, message="Invalid access code").model_dump(),
    )


@app.post(
    "/api/convert",
    response_model=ConversionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid upload batch"},
        401: {"model": ErrorResponse, "description": "Invalid access code"},
        500: {"model": ErrorResponse, "description": "Conversion failed"},
    },
    summary="Convert a batch of audio files to MP3",
    description="Upload up to 50 audio files; each is converted to 320 kbps stereo MP3.",
)
def convert(
    coordinator: Annotated[SessionCoordinator, Depends(get_coordinator)],
    audio_files: Annotated[
        list[UploadFile] | None, File(alias="audioFiles", description="Audio files")
    ] = None,
    session_id: Annotated[
        str | None, Form(alias="sessionId", description="Optional session ID")
    ] = None,
    access_code: Annotated[str | None, Form(alias="accessCode")] = None,
    x_access_code: Annotated[str | None, Header()] = None,
    code: Annotated[str | None, Query()] = None,
):
    """Convert an uploaded batch.

    Per-file failures are reported in the response body; only validation,
    access and storage problems produce an error status.
    """
    try:
        require_access_code(x_access_code, access_code, code)
        resolved_session_id = resolve_session_id(session_id)
        uploads = [
            UploadedFile(
                filename=upload.filename or "unknown",
                content_type=upload.content_type,
                stream=upload.file,
            )
            for upload in audio_files or []
        ]
        input_files = ingest_uploads(coordinator.storage, resolved_session_id, uploads)
        report = coordinator.convert(resolved_session_id, input_files)
        return ConversionResponse.from_report(report)
    except ConversionError as e:
        return conversion_error_response(e)
    except Exception:
        # Log full exception server-side, return generic message to client
        logger.exception("Unexpected error during conversion")
        return make_error_response(
            ConversionErrorCode.CONVERSION_FAILED,
            "An unexpected error occurred during conversion",
        )


@app.get(
    "/api/download/{session_id}",
    response_class=FileResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid access code"},
        404: {"model": ErrorResponse, "description": "Archive not found"},
    },
    summary="Download the converted archive",
)
def download(
    session_id: str,
    coordinator: Annotated[SessionCoordinator, Depends(get_coordinator)],
    x_access_code: Annotated[str | None, Header()] = None,
    code: Annotated[str | None, Query()] = None,
):
    """Send the session ZIP; outbound cleanup is scheduled after sending."""
    try:
        require_access_code(x_access_code, code)
        path = coordinator.retrieve_archive(session_id)
    except ConversionError as e:
        return conversion_error_response(e)

    return FileResponse(
        path,
        media_type="application/zip",
        filename=archive_filename(session_id),
        background=BackgroundTask(coordinator.archive_delivered, session_id),
    )


@app.get("/api/status", response_model=CapabilitiesResponse, summary="Service capabilities")
def status():
    """Static capability description; no state is read."""
    return CapabilitiesResponse(
        message="Batch MP3 converter running",
        timestamp=datetime.now(UTC),
        max_files=config.MAX_FILES_PER_BATCH,
        max_file_size=config.MAX_FILE_SIZE_LABEL,
        supported_formats=supported_formats_label(),
    )


@app.get("/health", summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


# --- For testing: allow overriding the coordinator ---


def override_coordinator(coordinator: SessionCoordinator | None) -> None:
    """Override (or reset with None) the coordinator for testing."""
    global _coordinator
    _coordinator = coordinator
