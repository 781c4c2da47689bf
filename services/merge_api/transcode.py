"""Merge service - ffmpeg invocation.

Muxes the base video (input 0) with the uploaded audio (input 1):
- video stream 0 of input 0 is copied unmodified (VP9 with alpha expected)
- audio stream 0 of input 1 is re-encoded to Vorbis for the WebM container

The executable path and timeout travel in an immutable TranscodeConfig
passed to every call; nothing is stored as process-wide state.

Dependencies:
- Requires ffmpeg installed (PATH lookup or MERGE_FFMPEG_BINARY)
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from app import config
from services.merge_api.errors import TranscodeExecutableMissingError, TranscodeFailedError

logger = logging.getLogger(__name__)

# Codec arguments for the fixed WebM output
VIDEO_CODEC = "copy"
AUDIO_CODEC = "libvorbis"

# stderr pipe reads, and how long to wait for it to drain once ffmpeg exits
STDERR_READ_SIZE = 4096
STDERR_DRAIN_SECONDS = 2.0


@dataclass(frozen=True)
class TranscodeConfig:
    """Configuration for one ffmpeg invocation.

    Attributes:
        ffmpeg_path: Resolved path of the ffmpeg executable.
        timeout_seconds: Kill ffmpeg after this many seconds; None waits forever.
    """

    ffmpeg_path: str
    timeout_seconds: float | None = None


def resolve_ffmpeg_binary(binary: str | None = None) -> str:
    """Locate the ffmpeg executable.

    Args:
        binary: Executable name or path. Defaults to config.FFMPEG_BINARY.

    Returns:
        Absolute path of the executable.

    Raises:
        TranscodeExecutableMissingError: If it cannot be found or is not executable.
    """
    binary = binary or config.FFMPEG_BINARY
    resolved = shutil.which(binary)
    if resolved is None:
        logger.error("ffmpeg executable not found: %s", binary)
        raise TranscodeExecutableMissingError(binary)
    return resolved


def load_transcode_config() -> TranscodeConfig:
    """Build a TranscodeConfig from app.config.

    Raises:
        TranscodeExecutableMissingError: If ffmpeg cannot be found.
    """
    return TranscodeConfig(
        ffmpeg_path=resolve_ffmpeg_binary(),
        timeout_seconds=config.FFMPEG_TIMEOUT_SECONDS,
    )


def build_merge_command(
    transcode_config: TranscodeConfig,
    video_path: str | Path,
    audio_path: str | Path,
    output_path: str | Path,
) -> list[str]:
    """Build the ffmpeg argument list for a merge.

    Args:
        transcode_config: Executable to run.
        video_path: Base video (input 0).
        audio_path: Uploaded audio (input 1).
        output_path: Muxed WebM destination.

    Returns:
        Argument list, executable first.
    """
    return [
        transcode_config.ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(video_path),
        "-i",
        str(audio_path),
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-c:v",
        VIDEO_CODEC,
        "-c:a",
        AUDIO_CODEC,
        str(output_path),
    ]


def _stderr_tail(stderr: bytes | None) -> str:
    """Decode ffmpeg stderr, keeping the last STDERR_TAIL_CHARS characters."""
    if not stderr:
        return ""
    text = stderr.decode("utf-8", errors="replace").strip()
    return text[-config.STDERR_TAIL_CHARS :]


async def _collect_stderr(stream: asyncio.StreamReader, buffer: bytearray) -> None:
    """Read stderr until EOF, keeping a bounded tail in buffer."""
    max_bytes = config.STDERR_TAIL_CHARS * 4
    while True:
        chunk = await stream.read(STDERR_READ_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            del buffer[: len(buffer) - max_bytes]


async def _finish_reader(reader: asyncio.Task) -> None:
    """Wait briefly for the stderr reader; a grandchild may still hold the pipe."""
    done, _ = await asyncio.wait({reader}, timeout=STDERR_DRAIN_SECONDS)
    if not done:
        reader.cancel()


async def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def run_merge(
    transcode_config: TranscodeConfig,
    video_path: str | Path,
    audio_path: str | Path,
    output_path: str | Path,
) -> None:
    """Run ffmpeg to merge the base video with the uploaded audio.

    Completes once, when ffmpeg exits. The caller owns output_path and
    removes it whether or not this succeeds.

    Args:
        transcode_config: Executable and timeout.
        video_path: Base video (input 0).
        audio_path: Uploaded audio (input 1).
        output_path: Muxed WebM destination.

    Raises:
        TranscodeExecutableMissingError: If the executable vanished since resolution.
        TranscodeFailedError: On spawn failure, timeout or non-zero exit.
            Carries ffmpeg's stderr when available.
    """
    cmd = build_merge_command(transcode_config, video_path, audio_path, output_path)
    logger.info("Executing ffmpeg merge: %s", " ".join(cmd))

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        logger.error("ffmpeg not found at %s", transcode_config.ffmpeg_path)
        raise TranscodeExecutableMissingError(transcode_config.ffmpeg_path) from e
    except OSError as e:
        logger.error("ffmpeg execution failed: %s", e)
        raise TranscodeFailedError(f"failed to start ({e.strerror or 'unknown error'})") from e

    stderr_buffer = bytearray()
    reader = asyncio.create_task(_collect_stderr(proc.stderr, stderr_buffer))

    try:
        await asyncio.wait_for(proc.wait(), timeout=transcode_config.timeout_seconds)
    except TimeoutError:
        await _kill(proc)
        await _finish_reader(reader)
        stderr_text = _stderr_tail(bytes(stderr_buffer))
        logger.error(
            "ffmpeg timed out after %s seconds. STDERR: %s",
            transcode_config.timeout_seconds,
            stderr_text,
        )
        raise TranscodeFailedError(
            f"timed out after {transcode_config.timeout_seconds} seconds",
            stderr=stderr_text,
        ) from None
    except asyncio.CancelledError:
        # Client went away; do not leave ffmpeg writing into a path about to be removed
        await _kill(proc)
        reader.cancel()
        raise

    await _finish_reader(reader)
    stderr_text = _stderr_tail(bytes(stderr_buffer))

    if proc.returncode != 0:
        logger.error("ffmpeg exited with status %d. STDERR: %s", proc.returncode, stderr_text)
        raise TranscodeFailedError(
            f"exited with status {proc.returncode}",
            stderr=stderr_text,
            returncode=proc.returncode,
        )

    logger.info("ffmpeg merge complete: %s", output_path)
