"""Encoder argument fragments shared by the edit-only and frame-accurate paths."""

from __future__ import annotations

from screenreel.edits.schema import ExportFormat, ExportQuality

GIF_MAX_FPS: int = 15
GIF_MAX_WIDTH: int = 800
AUDIO_BITRATE: str = "192k"


def video_codec_args(fmt: ExportFormat, quality: ExportQuality) -> list[str]:
    """Return ``-c:v ...`` arguments for *fmt* at *quality*."""
    if fmt is ExportFormat.MP4:
        return [
            "-c:v", "libx264",
            "-preset", quality.h264_preset,
            "-crf", str(quality.crf),
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
        ]
    if fmt is ExportFormat.WEBM:
        return [
            "-c:v", "libvpx-vp9",
            "-crf", str(quality.crf),
            "-b:v", "0",
        ]
    # Palette generation happens in the filter graph; the muxer does the rest.
    return ["-f", "gif"]


def audio_codec_args() -> list[str]:
    return ["-c:a", "aac", "-b:a", AUDIO_BITRATE]


def scale_pad_filter(width: int, height: int) -> str:
    """Scale into a width x height box preserving aspect ratio, pad with black."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:black"
    )


def gif_palette_filter(fps: int, width: int) -> tuple[str, str]:
    """Return the (pre-split, palette) halves of the GIF two-pass sub-graph.

    The caller wires ``<input><pre>,split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse``.
    """
    pre = f"fps={min(fps, GIF_MAX_FPS)},scale={min(width, GIF_MAX_WIDTH)}:-1:flags=lanczos"
    palette = "split[s0][s1];[s0]palettegen[p];[s1][p]paletteuse"
    return pre, palette
