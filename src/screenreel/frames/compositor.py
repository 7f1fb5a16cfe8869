"""Per-frame RGBA compositing for the frame-accurate export path.

Frames are ``(height, width, 4)`` uint8 arrays modified in place. The webcam
picture-in-picture is drawn first and the cursor sprite last, so the cursor
always sits on top.
"""

from __future__ import annotations

import bisect
import logging
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

import numpy as np

from screenreel.errors import DecodingError
from screenreel.layout import (
    DEFAULT_WEBCAM_MARGIN_PX,
    WEBCAM_SCALE,
    corner_radius,
    webcam_overlay_size,
)
from screenreel.models import CursorImage, CursorSample

logger = logging.getLogger(__name__)

MIN_VISIBLE_ALPHA: int = 1  # sprite alpha byte; fully transparent pixels are skipped


class FrameSource(Protocol):
    def read_frame(self) -> Optional[np.ndarray]: ...


def is_inside_rounded_rect(x: int, y: int, width: int, height: int, radius: int) -> bool:
    """True if pixel (x, y) of a width x height box survives rounded-corner masking.

    Each corner region is a radius x radius square tested against a circle
    of *radius*; everything outside the four corner squares is inside.
    """
    if x < radius and y < radius:
        dx = radius - x
        dy = radius - y
        return dx * dx + dy * dy <= radius * radius
    if x >= width - radius and y < radius:
        dx = x - (width - radius - 1)
        dy = radius - y
        return dx * dx + dy * dy <= radius * radius
    if x < radius and y >= height - radius:
        dx = radius - x
        dy = y - (height - radius - 1)
        return dx * dx + dy * dy <= radius * radius
    if x >= width - radius and y >= height - radius:
        dx = x - (width - radius - 1)
        dy = y - (height - radius - 1)
        return dx * dx + dy * dy <= radius * radius
    return True


def rounded_rect_mask(width: int, height: int, radius: int) -> np.ndarray:
    """Boolean (height, width) mask, pixel-for-pixel equal to is_inside_rounded_rect."""
    xs = np.arange(width)[np.newaxis, :]
    ys = np.arange(height)[:, np.newaxis]
    left = xs < radius
    right = xs >= width - radius
    top = ys < radius
    bottom = ys >= height - radius

    # Left and top win ties, matching the check order of the scalar predicate.
    dx = np.where(left, radius - xs, xs - (width - radius - 1))
    dy = np.where(top, radius - ys, ys - (height - radius - 1))
    in_corner = (left | right) & (top | bottom)
    return ~in_corner | (dx * dx + dy * dy <= radius * radius)


def scale_nearest(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resize of an (h, w, C) array to (height, width, C)."""
    src_h, src_w = image.shape[:2]
    src_x = np.minimum((np.arange(width) * src_w / width).astype(np.intp), src_w - 1)
    src_y = np.minimum((np.arange(height) * src_h / height).astype(np.intp), src_h - 1)
    return image[src_y[:, np.newaxis], src_x[np.newaxis, :]]


def _clip_region(frame_w: int, frame_h: int, left: int, top: int, w: int, h: int):
    """Intersect a w x h box at (left, top) with the frame.

    Returns ``(frame_slices, patch_slices)`` or None when nothing is visible.
    """
    x0, y0 = max(left, 0), max(top, 0)
    x1, y1 = min(left + w, frame_w), min(top + h, frame_h)
    if x0 >= x1 or y0 >= y1:
        return None
    frame_slices = (slice(y0, y1), slice(x0, x1))
    patch_slices = (slice(y0 - top, y1 - top), slice(x0 - left, x1 - left))
    return frame_slices, patch_slices


def draw_webcam_overlay(
    frame: np.ndarray,
    webcam: np.ndarray,
    scale: float = WEBCAM_SCALE,
    margin: int = DEFAULT_WEBCAM_MARGIN_PX,
) -> None:
    """Paste *webcam* bottom-right on *frame* with rounded corners, fully opaque.

    Pixels outside the rounded corners leave the frame untouched; pixels that
    would land outside the frame are dropped.
    """
    frame_h, frame_w = frame.shape[:2]
    cam_h, cam_w = webcam.shape[:2]
    width, height = webcam_overlay_size(frame_w, cam_w, cam_h, scale)

    region = _clip_region(frame_w, frame_h, frame_w - width - margin, frame_h - height - margin, width, height)
    if region is None:
        return
    frame_slices, patch_slices = region

    patch = scale_nearest(webcam, width, height)[patch_slices]
    mask = rounded_rect_mask(width, height, corner_radius(width, height))[patch_slices]

    target = frame[frame_slices]
    target[mask, :3] = patch[mask, :3]
    target[mask, 3] = 255


def find_cursor_at_time(
    timeline: Sequence[CursorSample],
    times: Sequence[float],
    time_ms: float,
) -> Optional[CursorSample]:
    """Return the last sample at or before *time_ms*, clamped to the timeline ends.

    *times* is the precomputed, sorted list of ``process_time_ms`` values.
    """
    if not timeline:
        return None
    index = bisect.bisect_right(times, time_ms) - 1
    return timeline[min(max(index, 0), len(timeline) - 1)]


def blend_cursor(frame: np.ndarray, sprite: CursorImage, x: float, y: float) -> None:
    """Alpha-blend *sprite* so its hotspot lands on (x, y); frame alpha is left as is."""
    left = int(x) - sprite.hotspot_x
    top = int(y) - sprite.hotspot_y
    frame_h, frame_w = frame.shape[:2]

    region = _clip_region(frame_w, frame_h, left, top, sprite.width, sprite.height)
    if region is None:
        return
    frame_slices, patch_slices = region

    patch = sprite.pixels[patch_slices]
    visible = patch[..., 3] >= MIN_VISIBLE_ALPHA
    if not visible.any():
        return

    src = patch.astype(np.float32)
    alpha = src[..., 3] / 255.0
    target = frame[frame_slices]
    dst = target[..., :3].astype(np.float32)
    a = alpha[..., np.newaxis]
    blended = np.clip(src[..., :3] * a + dst * (1.0 - a), 0.0, 255.0).astype(np.uint8)
    target[..., :3][visible] = blended[visible]


class FrameCompositor:
    """Applies the webcam overlay and the cursor to each screen frame in order.

    The compositor owns the frame counter; frame *i* is shown at
    ``i / fps * 1000`` ms of source time. A webcam that runs out of frames or
    fails to decode is counted as missed and the screen frame passes through.
    """

    def __init__(
        self,
        width: int,
        height: int,
        fps: float,
        cursor_timeline: Sequence[CursorSample] = (),
        cursor_images: Optional[Mapping[str, CursorImage]] = None,
        webcam: Optional[FrameSource] = None,
        webcam_margin: int = DEFAULT_WEBCAM_MARGIN_PX,
        source: Path = Path("recording-0.mp4"),
    ) -> None:
        self.source = source
        self.width = width
        self.height = height
        self.fps = fps
        self.cursor_timeline = list(cursor_timeline)
        self._cursor_times = [sample.process_time_ms for sample in self.cursor_timeline]
        self.cursor_images = dict(cursor_images or {})
        self.webcam = webcam
        self.webcam_margin = webcam_margin
        self.frame_index = 0
        self.webcam_frames_drawn = 0
        self.webcam_frames_missed = 0

    @property
    def frame_time_ms(self) -> float:
        return self.frame_index / self.fps * 1000.0

    def _validate_first_frame(self, frame: np.ndarray) -> None:
        expected = (self.height, self.width, 4)
        if frame.shape != expected or frame.dtype != np.uint8:
            raise DecodingError(
                self.source,
                f"Frame size mismatch: got {frame.shape} {frame.dtype}, expected {expected} uint8",
            )
        logger.info("First frame validated: %dx%dx4 RGBA", self.width, self.height)

    def _draw_webcam(self, frame: np.ndarray) -> None:
        try:
            webcam_frame = self.webcam.read_frame()
        except DecodingError as exc:
            self.webcam_frames_missed += 1
            if self.webcam_frames_missed == 1:
                logger.error("Error reading webcam frame at frame %d: %s", self.frame_index, exc)
            return
        if webcam_frame is None:
            self.webcam_frames_missed += 1
            if self.webcam_frames_missed == 1:
                logger.warning("Webcam ran out of frames at frame %d", self.frame_index)
            return
        draw_webcam_overlay(frame, webcam_frame, margin=self.webcam_margin)
        self.webcam_frames_drawn += 1

    def _draw_cursor(self, frame: np.ndarray) -> None:
        sample = find_cursor_at_time(self.cursor_timeline, self._cursor_times, self.frame_time_ms)
        if sample is None:
            return
        sprite = self.cursor_images.get(sample.cursor_id)
        if sprite is None:
            return
        blend_cursor(frame, sprite, sample.x, sample.y)

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """Composite the next frame in place and return it."""
        if self.frame_index == 0:
            self._validate_first_frame(frame)
        if self.webcam is not None:
            self._draw_webcam(frame)
        if self.cursor_timeline:
            self._draw_cursor(frame)
        self.frame_index += 1
        return frame
