"""Merge service - Merge API FastAPI application.

FastAPI service that accepts an audio upload, merges it into the fixed base
video with ffmpeg and returns the WebM file as a download.

Endpoint contract:
- POST /api/process, multipart/form-data with a file field "audio"
- other methods -> 405 with "Allow: POST"
- errors -> JSON {"error": ..., "details": ...}

Run with:
    uvicorn services.merge_api.main:app --reload  # dev server only
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.schemas import ErrorResponse, HealthResponse
from app.utils.temp_files import TempFileScope
from services.merge_api.errors import (
    PROCESSING_FAILED_MESSAGE,
    MergeError,
    MergeErrorCode,
    TranscodeExecutableMissingError,
)
from services.merge_api.service import merge_uploaded_audio
from services.merge_api.transcode import TranscodeConfig, load_transcode_config

logger = logging.getLogger(__name__)

# --- Transcoder Setup ---

# Module-level transcoder config (resolved on startup)
_transcode_config: TranscodeConfig | None = None


def get_transcode_config() -> TranscodeConfig | None:
    """Get the transcoder config resolved at startup.

    Returns None when ffmpeg was not found at startup; the request then
    resolves it again and fails with TRANSCODER_NOT_FOUND if still missing.
    """
    return _transcode_config


def _load_transcode_config_safe() -> TranscodeConfig | None:
    """Resolve ffmpeg on startup without crashing the app."""
    try:
        transcode_config = load_transcode_config()
    except TranscodeExecutableMissingError as e:
        logger.error(
            "ffmpeg not available (%s); merge requests will fail until it is installed",
            e.binary,
        )
        return None
    logger.info("Using ffmpeg executable: %s", transcode_config.ffmpeg_path)
    return transcode_config


# --- Lifespan ---


def _cleanup_orphan_temp_files_safe() -> None:
    """Clean up orphan request temp files on startup (best-effort).

    Never crashes startup. Only files carrying this service's prefixes
    and older than ORPHAN_MAX_AGE_SECONDS are removed.
    """
    from app.config import (
        ORPHAN_MAX_AGE_SECONDS,
        OUTPUT_TEMP_PREFIX,
        TEMP_DIR,
        UPLOAD_TEMP_PREFIX,
    )
    from app.utils.temp_files import cleanup_orphan_temp_files

    try:
        total_cleaned = cleanup_orphan_temp_files(
            TEMP_DIR,
            (UPLOAD_TEMP_PREFIX, OUTPUT_TEMP_PREFIX),
            ORPHAN_MAX_AGE_SECONDS,
        )
        if total_cleaned > 0:
            logger.info("Startup cleanup: removed %d orphan temp files", total_cleaned)
    except Exception:
        # Best-effort: never crash startup
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Resolves ffmpeg on startup and cleans up orphan temp files.
    """
    global _transcode_config
    _transcode_config = _load_transcode_config_safe()

    _cleanup_orphan_temp_files_safe()

    yield


# --- FastAPI App ---


app = FastAPI(
    title="Merge Service - Audio/Video Merge API",
    description="Merges an uploaded audio track into a fixed base video (WebM).",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error Handling ---


_STATUS_BY_CODE: dict[str, int] = {
    MergeErrorCode.METHOD_NOT_ALLOWED: 405,
    MergeErrorCode.MISSING_UPLOAD_FIELD: 400,
    MergeErrorCode.UPLOAD_PARSE_FAILED: 400,
    MergeErrorCode.UPLOAD_TOO_LARGE: 413,
}


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes.

    - METHOD_NOT_ALLOWED -> 405
    - MISSING_UPLOAD_FIELD, UPLOAD_PARSE_FAILED -> 400
    - UPLOAD_TOO_LARGE -> 413
    - everything else (server-side) -> 500
    """
    return _STATUS_BY_CODE.get(error_code, 500)


def make_error_response(
    error_code: str,
    error: str,
    details: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=error_code_to_status(error_code),
        content=ErrorResponse(error=error, details=details).to_body(),
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors in the service's error shape.

    Starlette raises 405 with an Allow header listing the route's methods.
    """
    if exc.status_code == 405:
        logger.info("Method not allowed: %s %s", request.method, request.url.path)
        return make_error_response(
            MergeErrorCode.METHOD_NOT_ALLOWED,
            f"Method {request.method} Not Allowed",
            headers=dict(exc.headers or {}),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).to_body(),
        headers=exc.headers,
    )


# --- Endpoints ---


@app.post(
    "/api/process",
    response_class=Response,
    responses={
        200: {"content": {"video/webm": {}}, "description": "Merged video"},
        400: {"model": ErrorResponse, "description": "Missing or malformed upload"},
        405: {"model": ErrorResponse, "description": "Method not allowed"},
        413: {"model": ErrorResponse, "description": "Upload too large"},
        500: {"model": ErrorResponse, "description": "Merge failed"},
    },
    summary="Merge an uploaded audio track into the base video",
    description='Accepts multipart/form-data with a file field named "audio".',
)
async def process(request: Request) -> Response:
    """Merge the uploaded audio into the base video and return the WebM file.

    Every temp file created for the request is removed before returning,
    whatever the outcome.
    """
    with TempFileScope() as scope:
        try:
            result = await merge_uploaded_audio(request, scope, get_transcode_config())
        except MergeError as e:
            if error_code_to_status(e.error_code) >= 500:
                logger.error("Merge failed: %s (details: %s)", e, e.details)
            else:
                logger.info("Merge rejected: %s", e)
            return make_error_response(e.error_code, e.message, e.details)
        except Exception as e:
            # Log full exception server-side, return generic message to client
            logger.exception("Unexpected error during merge")
            return make_error_response(
                MergeErrorCode.INTERNAL_ERROR,
                PROCESSING_FAILED_MESSAGE,
                details=str(e) or "Detail not available",
            )

    logger.info("Sending merged video %s (%d bytes)", result.filename, len(result.content))
    return Response(
        content=result.content,
        status_code=200,
        media_type=result.media_type,
        headers=result.headers,
    )


@app.get("/health", response_model=HealthResponse, summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return HealthResponse()


# --- For testing: allow overriding the transcoder config ---


def override_transcode_config(transcode_config: TranscodeConfig | None) -> None:
    """Override the transcoder config for testing."""
    global _transcode_config
    _transcode_config = transcode_config


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
