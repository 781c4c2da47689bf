"""Merge service - Utility modules."""

from app.utils.audio_meta import guess_format_from_extension, upload_suffix
from app.utils.paths import (
    base_video_path,
    download_filename,
    output_temp_path,
    upload_temp_path,
)
from app.utils.temp_files import TempFileScope, cleanup_orphan_temp_files

__all__ = [
    # audio_meta
    "guess_format_from_extension",
    "upload_suffix",
    # paths
    "base_video_path",
    "download_filename",
    "output_temp_path",
    "upload_temp_path",
    # temp_files
    "TempFileScope",
    "cleanup_orphan_temp_files",
]
