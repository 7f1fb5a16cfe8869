"""Raw RGBA frame sink backed by an FFmpeg encode subprocess."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

import numpy as np

from screenreel.edits.schema import ExportFormat, ExportOptions
from screenreel.errors import EncodingError, FfmpegError
from screenreel.render.binaries import get_ffmpeg_binary
from screenreel.render.codec import (
    audio_codec_args,
    gif_palette_filter,
    scale_pad_filter,
    video_codec_args,
)
from screenreel.render.driver import StderrTail

logger = logging.getLogger(__name__)


def _format_fps(fps: float) -> str:
    return str(int(fps)) if fps == int(fps) else repr(fps)


def _output_video_filter(options: ExportOptions, width: int, height: int, source_fps: float) -> Optional[str]:
    out_w, out_h = options.output_size(width, height)
    out_fps = options.output_fps(source_fps)
    filters: list[str] = []
    if (out_w, out_h) != (width, height):
        filters.append(scale_pad_filter(out_w, out_h))

    if options.format is ExportFormat.GIF:
        pre, palette = gif_palette_filter(out_fps, out_w)
        filters += [pre, palette]
    elif options.fps is not None and abs(out_fps - source_fps) > 0.01:
        filters.append(f"fps={out_fps}")
    return ",".join(filters) if filters else None


def build_encoder_command(
    ffmpeg: str,
    options: ExportOptions,
    width: int,
    height: int,
    source_fps: float,
    mic_audio: Optional[Path] = None,
    system_audio: Optional[Path] = None,
) -> list[str]:
    """Return the argv for an encoder reading raw RGBA frames on stdin.

    The input rate is always *source_fps*, the rate frames are actually fed
    at; a different output rate is produced with an ``fps`` filter. GIF
    output ignores both audio paths.
    """
    args = [
        ffmpeg, "-y",
        "-v", "error",
        "-f", "rawvideo",
        "-pix_fmt", "rgba",
        "-s", f"{width}x{height}",
        "-r", _format_fps(source_fps),
        "-i", "-",
    ]

    audio_inputs: list[int] = []
    if options.format is not ExportFormat.GIF:
        if mic_audio is not None and options.mic_audio_enabled:
            args += ["-i", str(mic_audio)]
            audio_inputs.append(len(audio_inputs) + 1)
        if system_audio is not None and options.system_audio_enabled:
            args += ["-i", str(system_audio)]
            audio_inputs.append(len(audio_inputs) + 1)

    if len(audio_inputs) > 1:
        refs = "".join(f"[{i}:a]" for i in audio_inputs)
        args += ["-filter_complex", f"{refs}amix=inputs={len(audio_inputs)}:duration=longest[aout]"]

    video_filter = _output_video_filter(options, width, height, source_fps)
    if video_filter is not None:
        args += ["-vf", video_filter]

    args += video_codec_args(options.format, options.quality)

    if len(audio_inputs) > 1:
        args += ["-map", "0:v", "-map", "[aout]"]
    elif audio_inputs:
        args += ["-map", "0:v", "-map", f"{audio_inputs[0]}:a"]
    if audio_inputs:
        args += audio_codec_args()

    args.append(str(options.output_path))
    return args


class VideoEncoder:
    """Writes frames to an FFmpeg encoder through its stdin.

    A full stdin pipe blocks :meth:`write_frame`, so a slow encoder throttles
    the decode loop. Closing (or leaving the ``with`` block) without
    :meth:`finish` kills the encoder.
    """

    def __init__(self, cmd: list[str], output_path: Path, width: int, height: int) -> None:
        self.output_path = output_path
        self.frame_size = width * height * 4
        self.frame_count = 0
        logger.info("Starting FFmpeg encoder: %s", " ".join(cmd))
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise FfmpegError(f"Failed to start FFmpeg encoder: {exc}") from exc
        self._stderr = StderrTail(self._process.stderr) if self._process.stderr is not None else None

    @classmethod
    def video_only(
        cls,
        options: ExportOptions,
        width: int,
        height: int,
        source_fps: float,
    ) -> "VideoEncoder":
        cmd = build_encoder_command(get_ffmpeg_binary(), options, width, height, source_fps)
        return cls(cmd, options.output_path, width, height)

    @classmethod
    def with_audio(
        cls,
        options: ExportOptions,
        width: int,
        height: int,
        source_fps: float,
        mic_audio: Optional[Path] = None,
        system_audio: Optional[Path] = None,
    ) -> "VideoEncoder":
        """Encoder that also muxes up to two audio files; GIF degrades to video-only."""
        if options.format is ExportFormat.GIF:
            return cls.video_only(options, width, height, source_fps)
        cmd = build_encoder_command(
            get_ffmpeg_binary(), options, width, height, source_fps, mic_audio, system_audio
        )
        return cls(cmd, options.output_path, width, height)

    def __enter__(self) -> "VideoEncoder":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _stderr_text(self) -> str:
        return self._stderr.text if self._stderr is not None else ""

    def write_frame(self, frame: np.ndarray) -> None:
        """Write exactly one frame (width * height * 4 bytes) to the encoder.

        Raises
        ------
        EncodingError
            If the frame has the wrong size or the encoder pipe is gone.
        """
        if frame.nbytes != self.frame_size:
            raise EncodingError(
                self.output_path,
                f"Frame {self.frame_count} has {frame.nbytes} bytes, expected {self.frame_size}",
            )
        try:
            self._process.stdin.write(np.ascontiguousarray(frame, dtype=np.uint8).data)
        except (BrokenPipeError, OSError) as exc:
            raise EncodingError(
                self.output_path,
                f"Failed to write frame {self.frame_count}: {exc}. {self._stderr_text().strip()[-300:]}",
            ) from exc
        self.frame_count += 1

    def finish(self) -> None:
        """Close stdin (end of stream) and wait for FFmpeg to exit.

        Raises
        ------
        FfmpegError
            If FFmpeg exits with a non-zero status.
        """
        try:
            self._process.stdin.close()
        except OSError as exc:
            logger.debug("Encoder stdin already closed: %s", exc)
        returncode = self._process.wait()
        if self._stderr is not None:
            self._stderr.join()
        if returncode != 0:
            raise FfmpegError(f"FFmpeg encoder exited with status {returncode}", self._stderr_text())
        logger.info("FFmpeg encoder finished: %d frames written", self.frame_count)

    def close(self) -> None:
        if self._process.poll() is None:
            self._process.kill()
            self._process.wait()
