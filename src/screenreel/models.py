from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CursorSample:
    """One point of the smoothed cursor timeline, in source-capture pixels."""

    process_time_ms: float  # ms since recording start; timeline is sorted on this
    x: float
    y: float
    cursor_id: str


@dataclass(frozen=True)
class CursorImage:
    """Decoded cursor sprite. Loaded once per export, read-only afterwards."""

    pixels: np.ndarray  # (height, width, 4) uint8 RGBA
    hotspot_x: int
    hotspot_y: int

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class VideoInfo:
    """Probed metadata for the first video stream of a file."""

    width: int
    height: int
    total_frames: int   # packet count; 0 when ffprobe could not count
    fps: float

    @property
    def frame_size(self) -> int:
        """Bytes in one raw RGBA frame."""
        return self.width * self.height * 4

    @property
    def duration_ms(self) -> int:
        """Source length derived from the packet count; 0 when it is unknown."""
        if self.total_frames <= 0 or self.fps <= 0:
            return 0
        return int(self.total_frames / self.fps * 1000)
