"""Raw RGBA frame source backed by an FFmpeg decode subprocess."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

import numpy as np

from screenreel.errors import DecodingError, FfmpegError
from screenreel.frames.probe import probe_video
from screenreel.models import VideoInfo
from screenreel.render.binaries import get_ffmpeg_binary
from screenreel.render.driver import StderrTail

logger = logging.getLogger(__name__)


def build_decoder_command(ffmpeg: str, source: Path, info: VideoInfo) -> list[str]:
    # -s pins the output to the probed size; without it FFmpeg may pad rows.
    return [
        ffmpeg,
        "-v", "error",
        "-i", str(source),
        "-f", "rawvideo",
        "-pix_fmt", "rgba",
        "-s", f"{info.width}x{info.height}",
        "-",
    ]


class VideoDecoder:
    """Sequential frame reader. Frames come out in decode order, one at a time.

    Usage::

        with VideoDecoder.open(path) as decoder:
            while (frame := decoder.read_frame()) is not None:
                ...

    Closing (or leaving the ``with`` block) kills the decode process.
    """

    def __init__(self, source: Path, info: VideoInfo, process: subprocess.Popen) -> None:
        self.source = source
        self.info = info
        self._process = process
        self._stderr = StderrTail(process.stderr) if process.stderr is not None else None
        self.frames_read = 0

    @classmethod
    def open(cls, source: Path, info: Optional[VideoInfo] = None) -> "VideoDecoder":
        """Probe *source* (unless *info* is given) and start decoding it to raw RGBA.

        Raises
        ------
        FfmpegError
            If probing fails or the decoder cannot be started.
        """
        if info is None:
            info = probe_video(source)
        logger.info(
            "Opening video decoder for %s: %dx%d, %d frames @ %.3ffps",
            source, info.width, info.height, info.total_frames, info.fps,
        )
        cmd = build_decoder_command(get_ffmpeg_binary(), source, info)
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=info.frame_size * 2,
            )
        except OSError as exc:
            raise FfmpegError(f"Failed to start FFmpeg decoder: {exc}") from exc
        return cls(source, info, process)

    def __enter__(self) -> "VideoDecoder":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.info.width, self.info.height

    @property
    def fps(self) -> float:
        return self.info.fps

    @property
    def frame_count(self) -> int:
        return self.info.total_frames

    def read_frame(self) -> Optional[np.ndarray]:
        """Return the next frame as a writable (height, width, 4) uint8 array.

        Returns None on a clean end of stream.

        Raises
        ------
        DecodingError
            If the stream ends part-way through a frame, the pipe fails, or
            the decoder exits with a non-zero status.
        """
        stdout = self._process.stdout
        size = self.info.frame_size
        buffer = bytearray(size)
        view = memoryview(buffer)
        filled = 0
        try:
            while filled < size:
                n = stdout.readinto(view[filled:])
                if not n:
                    break
                filled += n
        except OSError as exc:
            raise DecodingError(self.source, f"Failed to read frame: {exc}") from exc

        if filled == 0:
            self._check_exit_status()
            return None
        if filled < size:
            raise DecodingError(
                self.source,
                f"Truncated frame {self.frames_read}: got {filled} of {size} bytes",
            )

        self.frames_read += 1
        return np.frombuffer(buffer, dtype=np.uint8).reshape(self.info.height, self.info.width, 4)

    def _check_exit_status(self) -> None:
        """Raise DecodingError if the decoder exited non-zero once stdout hit EOF."""
        returncode = self._process.wait()
        if self._stderr is not None:
            self._stderr.join()
        if returncode != 0:
            tail = self._stderr.text.strip()[-500:] if self._stderr is not None else ""
            raise DecodingError(
                self.source,
                f"FFmpeg decoder exited with status {returncode} after {self.frames_read} frames: {tail}",
            )

    def close(self) -> None:
        if self._process.poll() is None:
            self._process.kill()
            self._process.wait()
