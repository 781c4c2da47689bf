"""Merge service - Multipart form parsing.

Parses the request body with Starlette's multipart parser (python-multipart)
and copies every file part into the system temp directory, keeping the
original extension. Each copy is registered with the request's
TempFileScope before the first byte is written, so partial copies are
cleaned up with everything else.

Limits (app.config):
- Content-Length or received body over MAX_UPLOAD_BYTES + FORM_OVERHEAD_BYTES
  -> UploadTooLargeError, raised before the rest of the body is read
- MAX_UPLOAD_BYTES per file part -> UploadTooLargeError
- MAX_FORM_FILES / MAX_FORM_FIELDS -> UploadParseError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.types import Message, Receive

from app import config
from app.utils.audio_meta import upload_suffix
from app.utils.paths import generate_temp_token, upload_temp_path
from app.utils.temp_files import TempFileScope
from services.merge_api.errors import (
    PROCESSING_FAILED_MESSAGE,
    MergeError,
    MergeErrorCode,
    UploadParseError,
    UploadTooLargeError,
)

logger = logging.getLogger(__name__)


# --- Result Types ---


@dataclass
class UploadedFile:
    """One uploaded file part stored on local disk."""

    field_name: str
    path: Path
    filename: str | None
    content_type: str | None
    size_bytes: int


@dataclass
class ParsedForm:
    """Parsed multipart body: plain fields and stored file parts by name."""

    fields: dict[str, list[str]] = field(default_factory=dict)
    files: dict[str, list[UploadedFile]] = field(default_factory=dict)

    def first_file(self, name: str) -> UploadedFile | None:
        """Get the first file stored for a field, or None."""
        stored = self.files.get(name)
        return stored[0] if stored else None


# --- Parsing ---


async def parse_form(request: Request, scope: TempFileScope) -> ParsedForm:
    """Parse a multipart request body and store its file parts.

    Bodies that are not multipart (or urlencoded) parse as an empty form.
    The body is read through a byte-counting receive channel, so parsing
    stops once more than max_request_bytes() have arrived.

    Args:
        request: Incoming request.
        scope: Temp file scope of the request; owns every stored file.

    Returns:
        ParsedForm with fields and stored files.

    Raises:
        UploadTooLargeError: If the declared or received body, or a file part,
            exceeds the size limits.
        UploadParseError: If the body is malformed or exceeds form limits.
        MergeError: If a file part cannot be written to the temp directory.
    """
    body_limit = max_request_bytes()
    _check_declared_length(request, body_limit)

    limited = Request(request.scope, receive=_limited_receive(request.receive, body_limit))
    try:
        form = await limited.form(
            max_files=config.MAX_FORM_FILES,
            max_fields=config.MAX_FORM_FIELDS,
        )
    except MultiPartException as e:
        logger.warning("Multipart parse failed: %s", e.message)
        raise UploadParseError(e.message) from e
    except HTTPException as e:
        # Starlette converts parser errors to a 400 when running inside an app
        logger.warning("Multipart parse failed: %s", e.detail)
        raise UploadParseError(str(e.detail)) from e

    try:
        parsed = ParsedForm()
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                stored = await _store_upload(name, value, scope)
                parsed.files.setdefault(name, []).append(stored)
            else:
                parsed.fields.setdefault(name, []).append(value)
    finally:
        await form.close()

    logger.info(
        "Form parsed: fields=%s files=%s",
        sorted(parsed.fields),
        {name: [f.size_bytes for f in stored] for name, stored in parsed.files.items()},
    )
    return parsed


def max_request_bytes() -> int:
    """Largest request body accepted: one full upload plus multipart framing."""
    return config.MAX_UPLOAD_BYTES + config.FORM_OVERHEAD_BYTES


def _check_declared_length(request: Request, body_limit: int) -> None:
    """Reject a request whose Content-Length already exceeds the body limit."""
    header_value = request.headers.get("content-length")
    if not header_value:
        return
    try:
        declared_length = int(header_value)
    except ValueError:
        logger.warning("Invalid content-length header: %s", header_value)
        return
    if declared_length > body_limit:
        logger.warning(
            "Request declared %d bytes, exceeds max %d; rejected before parsing",
            declared_length,
            body_limit,
        )
        raise UploadTooLargeError(config.MAX_UPLOAD_BYTES)


def _limited_receive(receive: Receive, body_limit: int) -> Receive:
    """Wrap an ASGI receive channel to raise once the body exceeds body_limit.

    The check runs before a message reaches the parser, so bytes past the
    limit are never spooled to disk.
    """
    received = 0

    async def limited() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > body_limit:
                logger.warning("Request body exceeded %d bytes; parsing stopped", body_limit)
                raise UploadTooLargeError(config.MAX_UPLOAD_BYTES)
        return message

    return limited


async def _store_upload(field_name: str, upload: UploadFile, scope: TempFileScope) -> UploadedFile:
    """Copy one file part to a request-scoped temp path.

    Args:
        field_name: Form field the part was sent under.
        upload: Spooled file part from the parser.
        scope: Temp file scope that will remove the copy.

    Returns:
        UploadedFile describing the stored copy.
    """
    limit = config.MAX_UPLOAD_BYTES

    # Spooled size is known once parsed; reject before copying
    if upload.size is not None and upload.size > limit:
        logger.warning("Upload %r rejected: %d bytes > %d", field_name, upload.size, limit)
        raise UploadTooLargeError(limit)

    dest = scope.track(upload_temp_path(generate_temp_token(), upload_suffix(upload.filename)))

    total_bytes = 0
    try:
        with open(dest, "wb") as out:
            while True:
                chunk = await upload.read(config.UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                total_bytes += len(chunk)
                if total_bytes > limit:
                    logger.warning("Upload %r exceeded %d bytes while copying", field_name, limit)
                    raise UploadTooLargeError(limit)
                out.write(chunk)
    except OSError as e:
        logger.error("Failed to store upload %r at %s: %s", field_name, dest, e)
        raise MergeError(
            MergeErrorCode.INTERNAL_ERROR,
            PROCESSING_FAILED_MESSAGE,
            details=f"Failed to store the uploaded file: {e.strerror or 'unknown error'}",
        ) from e

    logger.debug("Stored upload %r (%d bytes) at %s", field_name, total_bytes, dest)
    return UploadedFile(
        field_name=field_name,
        path=dest,
        filename=upload.filename,
        content_type=upload.content_type,
        size_bytes=total_bytes,
    )
