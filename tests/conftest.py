"""Shared pytest fixtures for merge service tests.

This module contains common fixtures used across multiple test files:
an isolated temp directory and base video, stub ffmpeg executables
(shell scripts) and a TestClient wired to them.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from services.merge_api.main import app, override_transcode_config
from services.merge_api.transcode import TranscodeConfig

# Text written by the successful ffmpeg stub
STUB_OUTPUT_TEXT = "stub merged webm output"


@dataclass
class MergeEnv:
    """Isolated filesystem layout for one test."""

    root: Path
    temp_dir: Path
    base_video: Path


def _write_stub_executable(path: Path, body: str) -> Path:
    """Write an executable /bin/sh script.

    Args:
        path: Destination path.
        body: Script body (without shebang).

    Returns:
        The script path.
    """
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


@pytest.fixture
def merge_env():
    """Create an isolated temp directory and base video.

    Patches app.config so uploads and outputs land in a private
    directory whose contents can be asserted after each request.

    Yields:
        MergeEnv: Paths of the test layout.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        temp_dir = root / "merge_tmp"
        temp_dir.mkdir()
        base_video = root / "video_base.webm"
        base_video.write_bytes(b"\x1a\x45\xdf\xa3 fake base video")

        with (
            patch("app.config.TEMP_DIR", temp_dir),
            patch("app.config.BASE_VIDEO_PATH", base_video),
        ):
            yield MergeEnv(root=root, temp_dir=temp_dir, base_video=base_video)


@pytest.fixture
def stub_dir():
    """Directory for stub executables (requires a POSIX shell)."""
    if os.name == "nt":
        pytest.skip("stub ffmpeg scripts require /bin/sh")
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_ffmpeg(stub_dir):
    """Stub ffmpeg that writes STUB_OUTPUT_TEXT to its last argument."""
    return _write_stub_executable(
        stub_dir / "ffmpeg",
        'for last; do :; done\nprintf "%s" "' + STUB_OUTPUT_TEXT + '" > "$last"\n',
    )


@pytest.fixture
def failing_ffmpeg(stub_dir):
    """Stub ffmpeg that writes a partial output, complains on stderr and exits 1."""
    return _write_stub_executable(
        stub_dir / "ffmpeg-failing",
        'for last; do :; done\nprintf "partial" > "$last"\n'
        'echo "Invalid data found when processing input" >&2\nexit 1\n',
    )


@pytest.fixture
def client(merge_env, fake_ffmpeg):
    """Create a FastAPI test client using the stub ffmpeg.

    The transcoder override is cleared after the test completes.

    Yields:
        TestClient: Client with lifespan started.
    """
    with TestClient(app) as test_client:
        override_transcode_config(TranscodeConfig(ffmpeg_path=str(fake_ffmpeg)))
        yield test_client

    override_transcode_config(None)


@pytest.fixture
def sample_audio_bytes():
    """Arbitrary audio payload (not a real MP3; the stub never decodes it)."""
    return b"ID3" + b"fake mp3 content " * 100


@pytest.fixture
def make_stub(stub_dir):
    """Factory for extra stub executables: make_stub(name, body) -> Path."""

    def _make(name: str, body: str) -> Path:
        return _write_stub_executable(stub_dir / name, body)

    return _make


@pytest.fixture
def stub_output():
    """Bytes the successful ffmpeg stub writes as merged output."""
    return STUB_OUTPUT_TEXT.encode()
