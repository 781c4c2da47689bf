"""Merge service - Request lifecycle logic.

Core merge business logic:
1. Parse the multipart body, require the "audio" file field
2. Verify the base video exists
3. Run ffmpeg into a request-scoped output path
4. Read the merged file back

All temp files are owned by the caller's TempFileScope. This module raises
MergeError subclasses and never builds HTTP responses.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from starlette.requests import Request

from app import config
from app.utils.paths import (
    base_video_path,
    download_filename,
    generate_temp_token,
    output_temp_path,
)
from app.utils.temp_files import TempFileScope
from services.merge_api.errors import (
    MissingBaseAssetError,
    MissingUploadFieldError,
    OutputReadError,
)
from services.merge_api.transcode import TranscodeConfig, load_transcode_config, run_merge
from services.merge_api.upload import parse_form

logger = logging.getLogger(__name__)

# Multipart field carrying the audio upload
AUDIO_FIELD = "audio"


# --- Result Types ---


@dataclass
class MergeResult:
    """Result of a successful merge."""

    content: bytes
    filename: str
    media_type: str = config.OUTPUT_MEDIA_TYPE

    @property
    def headers(self) -> dict[str, str]:
        """Download headers for the merged file."""
        return {
            "Content-Disposition": f'attachment; filename="{self.filename}"',
            "Content-Length": str(len(self.content)),
        }


# --- Merge Service ---


async def merge_uploaded_audio(
    request: Request,
    scope: TempFileScope,
    transcode_config: TranscodeConfig | None = None,
) -> MergeResult:
    """Merge the request's uploaded audio into the base video.

    Args:
        request: Incoming multipart request.
        scope: Temp file scope of the request; every temp path is tracked here.
        transcode_config: ffmpeg configuration. Resolved from app.config when None.

    Returns:
        MergeResult with the WebM bytes and the attachment filename.

    Raises:
        UploadTooLargeError: If the audio exceeds the size limit.
        UploadParseError: If the body is malformed.
        MissingUploadFieldError: If no "audio" file was sent.
        MissingBaseAssetError: If the base video is missing.
        TranscodeExecutableMissingError: If ffmpeg cannot be found.
        TranscodeFailedError: If ffmpeg fails.
        OutputReadError: If the merged file cannot be read.
    """
    # 1. Parse the upload
    form = await parse_form(request, scope)
    audio = form.first_file(AUDIO_FIELD)
    if audio is None:
        logger.info("No %r file field in request", AUDIO_FIELD)
        raise MissingUploadFieldError(AUDIO_FIELD)
    logger.info("Audio received: %s (%d bytes)", audio.path, audio.size_bytes)

    # 2. Verify the base video
    video_path = base_video_path()
    if not video_path.is_file():
        # Path is logged server-side only
        logger.error("Base video not found at %s", video_path)
        raise MissingBaseAssetError()
    logger.info("Using base video: %s", video_path)

    # 3. Resolve ffmpeg (fails fast before any output path is created)
    if transcode_config is None:
        transcode_config = load_transcode_config()

    # 4. Run ffmpeg
    output_path = scope.track(output_temp_path(generate_temp_token()))
    logger.info("Merging into temp output: %s", output_path)
    await run_merge(transcode_config, video_path, audio.path, output_path)

    # 5. Read the result
    try:
        content = output_path.read_bytes()
    except OSError as e:
        logger.error("Failed to read merged output %s: %s", output_path, e)
        raise OutputReadError(e.strerror or "unknown error") from e

    logger.info("Merged output read (%d bytes)", len(content))
    timestamp_ms = int(time.time() * 1000)
    return MergeResult(content=content, filename=download_filename(timestamp_ms))
