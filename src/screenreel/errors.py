from pathlib import Path


class ScreenReelError(Exception):
    """Base class for all screenreel errors."""


class ExportError(ScreenReelError):
    """Base class for export failures (everything except a requested cancel)."""


class ExportIoError(ExportError):
    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(
            f"Cannot access '{path}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Does the path exist and is it readable/writable by this user?"
        )
        self.path = path
        self.detail = detail


class FfmpegError(ExportError):
    def __init__(self, detail: str, stderr: str = "") -> None:
        message = (
            f"FFmpeg failed.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is FFmpeg installed and in PATH? Set SCREENREEL_FFMPEG / SCREENREEL_FFPROBE to override.\n"
            f"  Tip: Install or repair FFmpeg, then start the export again."
        )
        if stderr:
            message += f"\n  FFmpeg said: {stderr.strip()[-500:]}"
        super().__init__(message)
        self.detail = detail
        self.stderr = stderr


class BundleNotFoundError(ExportError):
    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(
            f"Recording bundle is incomplete at '{path}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Does the project contain a recording/ directory with recording-0.mp4?"
        )
        self.path = path
        self.detail = detail


class InvalidConfigError(ExportError):
    def __init__(self, detail: str, path: Path | None = None) -> None:
        where = f" in '{path.name}'" if path is not None else ""
        super().__init__(
            f"Invalid export configuration{where}.\n"
            f"  Cause: {detail}\n"
            f"  Check: Are the export options valid JSON matching the ExportOptions schema?"
        )
        self.path = path
        self.detail = detail


class DecodingError(ExportError):
    def __init__(self, source: Path, detail: str) -> None:
        super().__init__(
            f"Failed to decode frames from '{source.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is the recording complete? A truncated or corrupt stream cannot be exported.\n"
            f"  Tip: Run `ffprobe '{source}' -v error -show_streams` to verify the file is readable."
        )
        self.source = source
        self.detail = detail


class EncodingError(ExportError):
    def __init__(self, output_path: Path, detail: str) -> None:
        super().__init__(
            f"Failed to encode frames into '{output_path.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is there sufficient disk space? Did the encoder exit early?"
        )
        self.output_path = output_path
        self.detail = detail


class ExportCancelled(ScreenReelError):
    """Raised when the caller asked the export to stop. Not a failure."""

    def __init__(self) -> None:
        super().__init__("Export cancelled")
