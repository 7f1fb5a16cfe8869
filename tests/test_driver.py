"""Unit tests for screenreel.render.driver.

subprocess.Popen is mocked throughout; progress output is fed from canned
``-progress pipe:1`` blocks.
"""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest

from screenreel.errors import ExportCancelled, FfmpegError
from screenreel.progress import CancelToken, ExportStage
from screenreel.render.driver import FfmpegJob, StderrTail, elapsed_ms_from, parse_progress_line

PROGRESS_OUTPUT = (
    "frame=30\n"
    "out_time_us=1000000\n"
    "out_time=00:00:01.000000\n"
    "progress=continue\n"
    "frame=60\n"
    "out_time_ms=2000000\n"
    "progress=continue\n"
    "frame=120\n"
    "out_time_us=4500000\n"
    "progress=end\n"
)


def _fake_process(stdout: str = PROGRESS_OUTPUT, stderr: str = "", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.stdout = io.StringIO(stdout)
    process.stderr = io.StringIO(stderr)
    process.wait.return_value = returncode
    process.poll.return_value = returncode
    process.pid = 4242
    return process


class TestProgressParsing:
    def test_parse_line(self):
        assert parse_progress_line("out_time_us=1500\n") == ("out_time_us", "1500")
        assert parse_progress_line("\n") is None
        assert parse_progress_line("garbage") is None

    def test_elapsed_from_microsecond_keys(self):
        assert elapsed_ms_from("out_time_us", "2500000") == pytest.approx(2500.0)
        assert elapsed_ms_from("out_time_ms", "2500000") == pytest.approx(2500.0)

    def test_elapsed_from_clock(self):
        assert elapsed_ms_from("out_time", "00:01:02.500000") == pytest.approx(62500.0)

    def test_elapsed_unknown(self):
        assert elapsed_ms_from("out_time_us", "N/A") is None
        assert elapsed_ms_from("frame", "30") is None
        assert elapsed_ms_from("out_time", "bogus") is None


class TestStderrTail:
    def test_keeps_last_lines(self):
        stream = io.BytesIO(b"".join(f"line {i}\n".encode() for i in range(10)))
        tail = StderrTail(stream, maxlen=3)
        tail.join()
        assert tail.text == "line 7\nline 8\nline 9\n"


class TestFfmpegJob:
    def test_reports_encoding_progress(self):
        updates = []
        with patch("screenreel.render.driver.subprocess.Popen", return_value=_fake_process()):
            with FfmpegJob(["ffmpeg"], 4000.0, updates.append) as job:
                job.run()

        assert [u.stage for u in updates] == [ExportStage.ENCODING] * 3
        assert [u.current_unit for u in updates] == [1000, 2000, 4000]
        assert all(u.total_units == 4000 for u in updates)
        assert updates[0].percent == pytest.approx(10.0 + 0.25 * 85.0)
        assert updates[-1].percent == pytest.approx(95.0)
        assert job.elapsed_ms == pytest.approx(4500.0)

    def test_nonzero_exit_raises_with_stderr(self):
        process = _fake_process(stderr="Invalid argument\n", returncode=1)
        with patch("screenreel.render.driver.subprocess.Popen", return_value=process):
            with pytest.raises(FfmpegError) as exc_info:
                with FfmpegJob(["ffmpeg"], 1000.0) as job:
                    job.run()
        assert "status 1" in str(exc_info.value)
        assert "Invalid argument" in str(exc_info.value)

    def test_missing_binary(self):
        with patch("screenreel.render.driver.subprocess.Popen", side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(FfmpegError) as exc_info:
                FfmpegJob(["ffmpeg"], 1000.0).run()
        assert "Failed to start FFmpeg" in str(exc_info.value)

    def test_cancel_before_start_kills(self):
        process = _fake_process()
        process.poll.return_value = None
        token = CancelToken()
        token.cancel()
        with patch("screenreel.render.driver.subprocess.Popen", return_value=process):
            with pytest.raises(ExportCancelled):
                FfmpegJob(["ffmpeg"], 1000.0, cancel_token=token).run()
        process.kill.assert_called_once()

    def test_cancel_between_progress_lines(self):
        process = _fake_process()
        process.poll.return_value = None
        token = CancelToken()
        updates = []

        def sink(update):
            updates.append(update)
            token.cancel()

        with patch("screenreel.render.driver.subprocess.Popen", return_value=process):
            with pytest.raises(ExportCancelled):
                FfmpegJob(["ffmpeg"], 4000.0, sink, token).run()

        assert len(updates) == 1
        process.kill.assert_called()

    def test_context_exit_kills_running_child(self):
        process = _fake_process()
        process.poll.return_value = None
        with patch("screenreel.render.driver.subprocess.Popen", return_value=process):
            with FfmpegJob(["ffmpeg"], 1000.0):
                pass
        process.kill.assert_called_once()
