"""Resolve the FFmpeg / ffprobe executables."""
import os


def get_ffmpeg_binary() -> str:
    """Return the ffmpeg executable. Respects SCREENREEL_FFMPEG; falls back to PATH lookup."""
    return os.environ.get("SCREENREEL_FFMPEG") or "ffmpeg"


def get_ffprobe_binary() -> str:
    """Return the ffprobe executable. Respects SCREENREEL_FFPROBE; falls back to PATH lookup."""
    return os.environ.get("SCREENREEL_FFPROBE") or "ffprobe"
