"""Tests for the ffmpeg invocation (services/merge_api/transcode.py).

Stub executables stand in for ffmpeg, so these run without ffmpeg installed.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from pathlib import Path
from unittest import mock

import pytest

from services.merge_api.errors import (
    MergeErrorCode,
    TranscodeExecutableMissingError,
    TranscodeFailedError,
)
from services.merge_api.transcode import (
    TranscodeConfig,
    build_merge_command,
    load_transcode_config,
    resolve_ffmpeg_binary,
    run_merge,
)


class TestBuildMergeCommand:
    """Tests for build_merge_command."""

    def test_command_layout(self):
        """Base video is input 0, audio input 1, output last."""
        cmd = build_merge_command(
            TranscodeConfig(ffmpeg_path="/usr/bin/ffmpeg"),
            Path("/srv/video_base.webm"),
            Path("/tmp/merge-audio-abc.mp3"),
            Path("/tmp/merge-output-abc.webm"),
        )

        assert cmd[0] == "/usr/bin/ffmpeg"
        assert cmd[-1] == "/tmp/merge-output-abc.webm"
        inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
        assert inputs == ["/srv/video_base.webm", "/tmp/merge-audio-abc.mp3"]

    def test_stream_mapping_and_codecs(self):
        """Video copied from input 0, audio from input 1 re-encoded to Vorbis."""
        transcode_config = TranscodeConfig(ffmpeg_path="ffmpeg")
        cmd = build_merge_command(transcode_config, "v.webm", "a.mp3", "o.webm")
        joined = " ".join(cmd)

        assert "-map 0:v:0" in joined
        assert "-map 1:a:0" in joined
        assert "-c:v copy" in joined
        assert "-c:a libvorbis" in joined

    def test_overwrites_without_prompt(self):
        """ffmpeg must never wait on stdin for an overwrite prompt."""
        cmd = build_merge_command(TranscodeConfig(ffmpeg_path="ffmpeg"), "v", "a", "o")

        assert "-y" in cmd
        assert "-nostdin" in cmd


class TestResolveFfmpegBinary:
    """Tests for resolve_ffmpeg_binary and load_transcode_config."""

    def test_missing_binary_raises(self):
        """Unknown executables fail fast."""
        with pytest.raises(TranscodeExecutableMissingError) as exc_info:
            resolve_ffmpeg_binary("ffmpeg-definitely-not-installed")

        assert exc_info.value.error_code == MergeErrorCode.TRANSCODER_NOT_FOUND
        assert exc_info.value.binary == "ffmpeg-definitely-not-installed"

    def test_explicit_path(self, fake_ffmpeg):
        """An executable path resolves to itself."""
        assert Path(resolve_ffmpeg_binary(str(fake_ffmpeg))) == fake_ffmpeg

    def test_uses_configured_binary(self, fake_ffmpeg):
        """Without an argument, app.config.FFMPEG_BINARY is used."""
        with mock.patch("app.config.FFMPEG_BINARY", str(fake_ffmpeg)):
            assert Path(resolve_ffmpeg_binary()) == fake_ffmpeg

    def test_load_transcode_config(self, fake_ffmpeg):
        """Config carries the resolved path and configured timeout."""
        with (
            mock.patch("app.config.FFMPEG_BINARY", str(fake_ffmpeg)),
            mock.patch("app.config.FFMPEG_TIMEOUT_SECONDS", 30.0),
        ):
            transcode_config = load_transcode_config()

        assert Path(transcode_config.ffmpeg_path) == fake_ffmpeg
        assert transcode_config.timeout_seconds == 30.0

    def test_config_is_immutable(self):
        """Configs are values; they cannot be mutated between calls."""
        transcode_config = TranscodeConfig(ffmpeg_path="ffmpeg")

        with pytest.raises(AttributeError):
            transcode_config.ffmpeg_path = "other"  # type: ignore[misc]


class TestRunMerge:
    """Tests for run_merge against stub executables."""

    def test_success_writes_output(self, fake_ffmpeg, stub_output, stub_dir):
        """Exit 0 resolves and leaves the output in place."""
        output = stub_dir / "out.webm"

        asyncio.run(
            run_merge(TranscodeConfig(ffmpeg_path=str(fake_ffmpeg)), "v.webm", "a.mp3", output)
        )

        assert output.read_bytes() == stub_output

    def test_non_zero_exit_carries_stderr(self, failing_ffmpeg, stub_dir):
        """Non-zero exit raises with ffmpeg's stderr."""
        with pytest.raises(TranscodeFailedError) as exc_info:
            asyncio.run(
                run_merge(
                    TranscodeConfig(ffmpeg_path=str(failing_ffmpeg)),
                    "v.webm",
                    "a.mp3",
                    stub_dir / "out.webm",
                )
            )

        error = exc_info.value
        assert error.returncode == 1
        assert "Invalid data found when processing input" in error.stderr
        assert "Invalid data found when processing input" in error.details
        assert error.error_code == MergeErrorCode.TRANSCODE_FAILED

    def test_stderr_is_truncated(self, make_stub, stub_dir):
        """Only the tail of a long stderr is kept."""
        noisy = make_stub(
            "ffmpeg-noisy",
            'i=0\nwhile [ $i -lt 500 ]; do echo "line $i of noise" >&2; i=$((i+1)); done\n'
            'echo "final reason" >&2\nexit 1\n',
        )

        with mock.patch("app.config.STDERR_TAIL_CHARS", 100):
            with pytest.raises(TranscodeFailedError) as exc_info:
                asyncio.run(
                    run_merge(TranscodeConfig(ffmpeg_path=str(noisy)), "v", "a", stub_dir / "o")
                )

        assert len(exc_info.value.stderr) <= 100
        assert exc_info.value.stderr.endswith("final reason")

    def test_missing_executable(self, stub_dir):
        """An executable removed after resolution raises the missing error."""
        with pytest.raises(TranscodeExecutableMissingError):
            asyncio.run(
                run_merge(
                    TranscodeConfig(ffmpeg_path=str(stub_dir / "gone")),
                    "v",
                    "a",
                    stub_dir / "o",
                )
            )

    def test_not_executable(self, stub_dir):
        """A file without execute permission fails to start."""
        not_exec = stub_dir / "ffmpeg-noexec"
        not_exec.write_text("#!/bin/sh\nexit 0\n")
        not_exec.chmod(0o644)

        with pytest.raises(TranscodeFailedError) as exc_info:
            asyncio.run(
                run_merge(TranscodeConfig(ffmpeg_path=str(not_exec)), "v", "a", stub_dir / "o")
            )

        assert "failed to start" in exc_info.value.details

    def test_timeout_kills_process(self, make_stub, stub_dir):
        """A hung ffmpeg is killed once the timeout expires."""
        if shutil.which("sleep") is None:
            pytest.skip("sleep not available")
        hung = make_stub("ffmpeg-hung", "exec sleep 30\n")

        started = time.monotonic()
        with pytest.raises(TranscodeFailedError) as exc_info:
            asyncio.run(
                run_merge(
                    TranscodeConfig(ffmpeg_path=str(hung), timeout_seconds=0.5),
                    "v",
                    "a",
                    stub_dir / "o",
                )
            )

        assert "timed out" in exc_info.value.details
        assert time.monotonic() - started < 10

    def test_timeout_keeps_stderr_so_far(self, make_stub, stub_dir):
        """Output written before the timeout is carried in the error details."""
        if shutil.which("sleep") is None:
            pytest.skip("sleep not available")
        stalled = make_stub(
            "ffmpeg-stalled",
            'echo "Input #0, matroska,webm, from v.webm" >&2\nexec sleep 30\n',
        )

        with pytest.raises(TranscodeFailedError) as exc_info:
            asyncio.run(
                run_merge(
                    TranscodeConfig(ffmpeg_path=str(stalled), timeout_seconds=0.5),
                    "v",
                    "a",
                    stub_dir / "o",
                )
            )

        error = exc_info.value
        assert "timed out" in error.details
        assert "Input #0, matroska,webm" in error.stderr
        assert "Input #0, matroska,webm" in error.details

    def test_cancellation_kills_process(self, make_stub, stub_dir):
        """Cancelling the merge (client disconnect) leaves no ffmpeg running."""
        if shutil.which("sleep") is None:
            pytest.skip("sleep not available")
        pid_file = stub_dir / "ffmpeg.pid"
        hung = make_stub("ffmpeg-hung", f'echo $$ > "{pid_file}"\nexec sleep 30\n')

        async def cancel_midway():
            task = asyncio.create_task(
                run_merge(TranscodeConfig(ffmpeg_path=str(hung)), "v", "a", stub_dir / "o")
            )
            deadline = time.monotonic() + 5
            while not (pid_file.exists() and pid_file.read_text().strip()):
                if time.monotonic() > deadline:
                    task.cancel()
                    pytest.fail("stub ffmpeg never started")
                await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return int(pid_file.read_text())

        started = time.monotonic()
        pid = asyncio.run(cancel_midway())

        assert time.monotonic() - started < 10
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    def test_independent_configs_run_concurrently(self, fake_ffmpeg, failing_ffmpeg, stub_dir):
        """Two invocations with different configs do not affect each other."""

        async def run_both():
            return await asyncio.gather(
                run_merge(TranscodeConfig(ffmpeg_path=str(fake_ffmpeg)), "v", "a", stub_dir / "1"),
                run_merge(
                    TranscodeConfig(ffmpeg_path=str(failing_ffmpeg)), "v", "a", stub_dir / "2"
                ),
                return_exceptions=True,
            )

        first, second = asyncio.run(run_both())

        assert first is None
        assert isinstance(second, TranscodeFailedError)
        assert (stub_dir / "1").exists()
