"""Merge service - Uploaded audio filename helpers.

Extension handling for uploads. The original extension is kept on the
temp copy so the transcoder can probe the container from the name.
"""

import re
from pathlib import Path

# Extensions longer than this, or with odd characters, are dropped
_SAFE_EXTENSION = re.compile(r"^[a-z0-9]{1,10}$")


def guess_format_from_extension(filename: str) -> str | None:
    """Guess audio format from filename extension.

    Args:
        filename: Filename or path string.

    Returns:
        Lowercase extension without dot, or None if no extension.
    """
    path = Path(filename)
    ext = path.suffix.lower().lstrip(".")
    return ext if ext else None


def upload_suffix(filename: str | None) -> str:
    """Get a safe temp-file suffix for an uploaded filename.

    Client filenames are untrusted, so only short alphanumeric
    extensions are kept.

    Args:
        filename: Filename sent by the client (may be None).

    Returns:
        Suffix including the leading dot (e.g. ".mp3"), or "" if unusable.
    """
    if not filename:
        return ""
    ext = guess_format_from_extension(filename)
    if ext is None or not _SAFE_EXTENSION.match(ext):
        return ""
    return f".{ext}"


__all__ = [
    "guess_format_from_extension",
    "upload_suffix",
]
