"""Merge service - Error taxonomy.

Every failure below the endpoint is raised as a MergeError subclass.
The endpoint is the single place where errors become HTTP responses
(see main.error_code_to_status).
"""

from __future__ import annotations

from enum import StrEnum


class MergeErrorCode(StrEnum):
    """Error codes for the merge request lifecycle."""

    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    MISSING_UPLOAD_FIELD = "MISSING_UPLOAD_FIELD"
    UPLOAD_TOO_LARGE = "UPLOAD_TOO_LARGE"
    UPLOAD_PARSE_FAILED = "UPLOAD_PARSE_FAILED"
    MISSING_BASE_ASSET = "MISSING_BASE_ASSET"
    TRANSCODER_NOT_FOUND = "TRANSCODER_NOT_FOUND"
    TRANSCODE_FAILED = "TRANSCODE_FAILED"
    OUTPUT_READ_FAILED = "OUTPUT_READ_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Generic message for server-side failures
PROCESSING_FAILED_MESSAGE = "An error occurred while processing the video."


class MergeError(Exception):
    """Base exception for merge errors.

    Attributes:
        error_code: Code from MergeErrorCode.
        message: Client-facing message.
        details: Optional client-facing detail. Never an internal path.
    """

    def __init__(self, error_code: str, message: str, details: str | None = None):
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(f"{error_code}: {message}")


class MissingUploadFieldError(MergeError):
    """Required file field absent from the multipart body."""

    def __init__(self, field_name: str):
        super().__init__(
            MergeErrorCode.MISSING_UPLOAD_FIELD,
            f'No audio file provided (field "{field_name}").',
        )


class UploadTooLargeError(MergeError):
    """Uploaded file exceeds the configured size limit."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(
            MergeErrorCode.UPLOAD_TOO_LARGE,
            f"The audio file exceeds the maximum allowed size ({limit_bytes} bytes).",
        )


class UploadParseError(MergeError):
    """Multipart body could not be parsed."""

    def __init__(self, reason: str):
        super().__init__(
            MergeErrorCode.UPLOAD_PARSE_FAILED,
            "Error processing the uploaded file.",
            details=reason,
        )


class MissingBaseAssetError(MergeError):
    """Base video missing. Server misconfiguration; the path stays server-side."""

    def __init__(self):
        super().__init__(
            MergeErrorCode.MISSING_BASE_ASSET,
            "Internal server error: the base video file is missing.",
        )


class TranscodeExecutableMissingError(MergeError):
    """ffmpeg executable could not be located."""

    def __init__(self, binary: str):
        self.binary = binary
        super().__init__(
            MergeErrorCode.TRANSCODER_NOT_FOUND,
            PROCESSING_FAILED_MESSAGE,
            details="The ffmpeg executable could not be located.",
        )


class TranscodeFailedError(MergeError):
    """ffmpeg failed, exited non-zero or timed out.

    Attributes:
        stderr: Diagnostic text captured from ffmpeg's standard error.
        returncode: Exit status, or None if the process never exited normally.
    """

    def __init__(self, reason: str, stderr: str = "", returncode: int | None = None):
        self.stderr = stderr
        self.returncode = returncode
        details = f"ffmpeg error: {reason}"
        if stderr:
            details = f"{details}. Stderr: {stderr}"
        super().__init__(MergeErrorCode.TRANSCODE_FAILED, PROCESSING_FAILED_MESSAGE, details)


class OutputReadError(MergeError):
    """Merged output could not be read back."""

    def __init__(self, reason: str):
        super().__init__(
            MergeErrorCode.OUTPUT_READ_FAILED,
            PROCESSING_FAILED_MESSAGE,
            details=f"Failed to read merged output: {reason}",
        )
