"""Merge service - Canonical path utilities.

Returns canonical Paths for the base asset and request-scoped temp files.
Does NOT create files or directories. Configuration is read at call time
so tests can patch app.config.
"""

import uuid
from pathlib import Path

from app import config


def generate_temp_token() -> str:
    """Generate a collision-resistant token for temp file names.

    Uses UUID4 for uniqueness. Format: uuid4 hex (32 chars).
    """
    return uuid.uuid4().hex


def base_video_path() -> Path:
    """Get the path of the fixed base video.

    Returns:
        Path: MERGE_BASE_VIDEO_PATH if configured, else <cwd>/video_base.webm
    """
    if config.BASE_VIDEO_PATH is not None:
        return Path(config.BASE_VIDEO_PATH)
    return Path.cwd() / config.BASE_VIDEO_FILENAME


def upload_temp_path(token: str, suffix: str = "") -> Path:
    """Get the temp path for an uploaded audio file.

    Args:
        token: Unique token from generate_temp_token().
        suffix: Original extension including the dot (e.g. ".mp3"), or "".

    Returns:
        Path: {TEMP_DIR}/merge-audio-{token}{suffix}
    """
    return Path(config.TEMP_DIR) / f"{config.UPLOAD_TEMP_PREFIX}{token}{suffix}"


def output_temp_path(token: str) -> Path:
    """Get the temp path for a merged output file.

    Args:
        token: Unique token from generate_temp_token().

    Returns:
        Path: {TEMP_DIR}/merge-output-{token}.webm
    """
    return Path(config.TEMP_DIR) / f"{config.OUTPUT_TEMP_PREFIX}{token}.{config.OUTPUT_EXTENSION}"


def download_filename(timestamp_ms: int) -> str:
    """Get the attachment filename offered to the client.

    Returns:
        str: video_final_{timestamp_ms}.webm
    """
    return f"{config.DOWNLOAD_FILENAME_PREFIX}{timestamp_ms}.{config.OUTPUT_EXTENSION}"
