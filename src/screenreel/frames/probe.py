"""ffprobe metadata for the frame-accurate path."""

from __future__ import annotations

import subprocess
from pathlib import Path

from screenreel.errors import FfmpegError
from screenreel.models import VideoInfo
from screenreel.render.binaries import get_ffprobe_binary

DEFAULT_FPS: float = 30.0


def parse_frame_rate(text: str) -> float:
    """Parse ``"30/1"``, ``"30000/1001"`` or ``"29.97"``; DEFAULT_FPS if unusable."""
    try:
        if "/" in text:
            num, den = text.split("/", 1)
            fps = float(num) / float(den)
        else:
            fps = float(text)
    except (ValueError, ZeroDivisionError):
        return DEFAULT_FPS
    return fps if fps > 0 else DEFAULT_FPS


def probe_video(source: Path) -> VideoInfo:
    """Return width, height, packet-counted frame total, and fps of *source*.

    Raises
    ------
    FfmpegError
        If ffprobe is missing, fails, or prints something unparseable.
    """
    cmd = [
        get_ffprobe_binary(),
        "-v", "error",
        "-select_streams", "v:0",
        "-count_packets",
        "-show_entries", "stream=width,height,r_frame_rate,nb_read_packets",
        "-of", "csv=p=0",
        str(source),
    ]
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as exc:
        raise FfmpegError(f"ffprobe failed on '{source.name}'", exc.stderr or "") from exc
    except OSError as exc:
        raise FfmpegError(f"Failed to run ffprobe: {exc}") from exc

    output = result.stdout.strip()
    parts = [p.strip() for p in output.splitlines()[0].split(",")] if output else []
    if len(parts) < 4:
        raise FfmpegError(f"Unexpected ffprobe output for '{source.name}': {output!r}")

    try:
        width = int(parts[0])
        height = int(parts[1])
    except ValueError as exc:
        raise FfmpegError(f"Invalid dimensions in ffprobe output: {output!r}") from exc
    if width <= 0 or height <= 0:
        raise FfmpegError(f"Invalid dimensions in ffprobe output: {output!r}")

    try:
        total_frames = int(parts[3])
    except ValueError:
        total_frames = 0

    return VideoInfo(width=width, height=height, total_frames=total_frames, fps=parse_frame_rate(parts[2]))
