"""Merge service - Configuration constants.

Minimal configuration read from the environment at import time.
No external config libraries. Paths that depend on the deployment
working directory are resolved at call time (see app.utils.paths).
"""

import os
import tempfile
from pathlib import Path

# Repository root (parent of app/)
REPO_ROOT = Path(__file__).parent.parent.resolve()

# JSON Schema contracts for response bodies
SPECS_DIR = REPO_ROOT / "specs"


def _get_int(name: str, default: int) -> int:
    """Get a positive integer from the environment or use default.

    Returns:
        The parsed value, or default when unset, invalid or not positive.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = int(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
    return default


def _get_optional_float(name: str) -> float | None:
    """Get an optional positive float from the environment.

    Returns:
        The parsed value, or None when unset, invalid or not positive.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            value = float(env_val)
            if value > 0:
                return value
        except ValueError:
            pass
    return None


def _get_optional_path(name: str) -> Path | None:
    env_val = os.environ.get(name, "").strip()
    return Path(env_val) if env_val else None


# Base video asset. When unset, resolved as <cwd>/BASE_VIDEO_FILENAME per request.
BASE_VIDEO_FILENAME = "video_base.webm"
BASE_VIDEO_PATH = _get_optional_path("MERGE_BASE_VIDEO_PATH")

# Uploads and merged outputs land here
TEMP_DIR = _get_optional_path("MERGE_TEMP_DIR") or Path(tempfile.gettempdir())

# Prefixes for request-scoped temp files (also used by the startup sweep)
UPLOAD_TEMP_PREFIX = "merge-audio-"
OUTPUT_TEMP_PREFIX = "merge-output-"

# Transcoder executable (name looked up on PATH, or explicit path)
FFMPEG_BINARY = os.environ.get("MERGE_FFMPEG_BINARY", "").strip() or "ffmpeg"

# Optional transcoder timeout in seconds. None means wait indefinitely.
FFMPEG_TIMEOUT_SECONDS = _get_optional_float("MERGE_FFMPEG_TIMEOUT_SEC")

# Upload limits
MAX_UPLOAD_BYTES = _get_int("MERGE_MAX_UPLOAD_BYTES", 50 * 1024 * 1024)
MAX_FORM_FILES = _get_int("MERGE_MAX_FORM_FILES", 4)
MAX_FORM_FIELDS = _get_int("MERGE_MAX_FORM_FIELDS", 16)
# Request body cap is MAX_UPLOAD_BYTES plus this allowance for multipart framing
FORM_OVERHEAD_BYTES = _get_int("MERGE_FORM_OVERHEAD_BYTES", 64 * 1024)
UPLOAD_CHUNK_SIZE = 65536

# Startup sweep only removes temp files older than this (seconds)
ORPHAN_MAX_AGE_SECONDS = _get_int("MERGE_ORPHAN_MAX_AGE_SEC", 3600)

# Fixed output container
OUTPUT_MEDIA_TYPE = "video/webm"
OUTPUT_EXTENSION = "webm"
DOWNLOAD_FILENAME_PREFIX = "video_final_"

# Characters of transcoder stderr forwarded to the client in error details
STDERR_TAIL_CHARS = 2000
