"""Run FFmpeg as a child process and translate its progress stream.

The command must carry ``-progress pipe:1``: FFmpeg then writes blocks of
``key=value`` lines to stdout, each block closed by ``progress=continue`` (or
``progress=end``). stderr is drained on a background thread so a chatty
encoder can never fill the pipe and stall.
"""

from __future__ import annotations

import collections
import logging
import subprocess
import threading
from typing import Optional

from screenreel.errors import ExportCancelled, FfmpegError
from screenreel.progress import CancelToken, ExportProgress, ProgressSink, discard_progress

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES: int = 200


class StderrTail:
    """Drain a child's stderr on a daemon thread, keeping the last lines."""

    def __init__(self, stream, maxlen: int = STDERR_TAIL_LINES) -> None:
        self._lines: collections.deque[str] = collections.deque(maxlen=maxlen)
        self._thread = threading.Thread(target=self._drain, args=(stream,), name="ffmpeg-stderr", daemon=True)
        self._thread.start()

    def _drain(self, stream) -> None:
        for line in stream:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            self._lines.append(line)

    def join(self, timeout: float = 5.0) -> None:
        self._thread.join(timeout=timeout)

    @property
    def text(self) -> str:
        return "".join(self._lines)


def parse_progress_line(line: str) -> Optional[tuple[str, str]]:
    """Split one ``key=value`` progress line; None for blank or malformed lines."""
    key, sep, value = line.strip().partition("=")
    if not sep or not key:
        return None
    return key, value.strip()


def elapsed_ms_from(key: str, value: str) -> Optional[float]:
    """Return elapsed output time in ms for a time-carrying progress key, else None."""
    if value in ("", "N/A"):
        return None
    try:
        if key in ("out_time_us", "out_time_ms"):
            # FFmpeg reports out_time_ms in microseconds too.
            return int(value) / 1000.0
        if key == "out_time":
            hours, minutes, seconds = value.split(":")
            return (int(hours) * 3600 + int(minutes) * 60 + float(seconds)) * 1000.0
    except ValueError:
        return None
    return None


class FfmpegJob:
    """One FFmpeg invocation whose lifetime is bound to this object.

    Usage::

        with FfmpegJob(cmd, total_ms, sink, token) as job:
            job.run()

    Leaving the ``with`` block always kills a still-running child, so error
    and cancellation paths never leak the process.
    """

    def __init__(
        self,
        cmd: list[str],
        total_output_ms: float,
        progress_sink: ProgressSink | None = None,
        cancel_token: CancelToken | None = None,
    ) -> None:
        self.cmd = cmd
        self.total_output_ms = total_output_ms
        self.progress_sink = progress_sink or discard_progress
        self.cancel_token = cancel_token or CancelToken()
        self._process: subprocess.Popen | None = None
        self._stderr: StderrTail | None = None
        self.elapsed_ms: float = 0.0

    def __enter__(self) -> "FfmpegJob":
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.kill()

    @property
    def stderr_text(self) -> str:
        return self._stderr.text if self._stderr is not None else ""

    def start(self) -> None:
        if self._process is not None:
            return
        logger.info("Starting FFmpeg: %s", " ".join(self.cmd))
        try:
            self._process = subprocess.Popen(
                self.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise FfmpegError(f"Failed to start FFmpeg: {exc}") from exc

        self._stderr = StderrTail(self._process.stderr)

    def run(self) -> None:
        """Block until FFmpeg exits, pushing encoding progress to the sink.

        Raises
        ------
        ExportCancelled
            If the cancel token was set; the child is killed first.
        FfmpegError
            If FFmpeg could not start or exited with a non-zero status.
        """
        self.start()
        assert self._process is not None and self._process.stdout is not None

        if self.cancel_token.is_cancelled:
            self.kill()
            raise ExportCancelled()

        total = int(self.total_output_ms)
        for line in self._process.stdout:
            if self.cancel_token.is_cancelled:
                logger.info("Cancel requested; killing FFmpeg (pid %s)", self._process.pid)
                self.kill()
                raise ExportCancelled()

            parsed = parse_progress_line(line)
            if parsed is None:
                continue
            key, value = parsed
            elapsed = elapsed_ms_from(key, value)
            if elapsed is not None:
                self.elapsed_ms = elapsed
            elif key == "progress":
                self.progress_sink(ExportProgress.encoding(min(int(self.elapsed_ms), total), total))

        returncode = self._process.wait()
        if self._stderr is not None:
            self._stderr.join()

        if returncode != 0:
            raise FfmpegError(f"FFmpeg exited with status {returncode}", self.stderr_text)
        logger.info("FFmpeg finished: %.0f ms of output", self.elapsed_ms)

    def kill(self) -> None:
        """Terminate the child if it is still running. Safe to call repeatedly."""
        if self._process is None or self._process.poll() is not None:
            return
        self._process.kill()
        self._process.wait()
