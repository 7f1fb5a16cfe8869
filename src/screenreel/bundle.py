"""Recording bundle discovery: media files, mouse moves, and cursor sprites.

Layout under ``<project>/recording/``::

    recording-0.mp4               required screen capture
    recording-0-webcam.mp4        optional
    recording-0-mic.m4a           optional
    recording-0-system.m4a        optional
    recording-0-mouse-moves.json  optional, list of MouseMove
    recording-0-cursors.json      optional, cursor id -> CursorInfo
    recording-0-cursors/          sprite images named by CursorInfo.image_path
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import cv2
import numpy as np
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from screenreel.errors import BundleNotFoundError
from screenreel.models import CursorImage

logger = logging.getLogger(__name__)

RECORDING_DIR = "recording"
SESSION_PREFIX = "recording-0"


class _BundleModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class MouseMove(_BundleModel):
    """One raw cursor position captured during recording."""
    x: float
    y: float
    cursor_id: str
    process_time_ms: float


class CursorInfo(_BundleModel):
    image_path: str
    hotspot_x: float = 0.0
    hotspot_y: float = 0.0
    width: int = 0
    height: int = 0


_MOUSE_MOVES = TypeAdapter(list[MouseMove])
_CURSORS = TypeAdapter(dict[str, CursorInfo])


@dataclass
class RecordingBundle:
    screen_video: Path
    webcam_video: Optional[Path] = None
    mic_audio: Optional[Path] = None
    system_audio: Optional[Path] = None
    mouse_moves: list[MouseMove] = field(default_factory=list)
    cursor_info: dict[str, CursorInfo] = field(default_factory=dict)
    cursor_images: dict[str, CursorImage] = field(default_factory=dict)


def _optional(path: Path) -> Optional[Path]:
    return path if path.is_file() else None


def _read_json(path: Path, adapter: TypeAdapter, what: str):
    try:
        return adapter.validate_json(path.read_bytes())
    except ValidationError as e:
        raise BundleNotFoundError(path, f"Failed to parse {what}: {e}") from e
    except OSError as e:
        raise BundleNotFoundError(path, f"Failed to read {what}: {e}") from e


def _to_rgba(img: np.ndarray) -> np.ndarray:
    if img.dtype == np.uint16:
        img = (img >> 8).astype(np.uint8)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    channels = img.shape[2]
    if channels == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
    raise ValueError(f"unsupported channel count {channels}")


def load_cursor_image(path: Path, info: CursorInfo) -> Optional[CursorImage]:
    """Decode one sprite to RGBA. Returns None (after logging) if it cannot be used."""
    img = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if img is None:
        logger.warning("Failed to load cursor image %s: not a decodable image", path)
        return None
    try:
        pixels = _to_rgba(img)
    except (ValueError, cv2.error) as e:
        logger.warning("Failed to load cursor image %s: %s", path, e)
        return None
    return CursorImage(
        pixels=np.ascontiguousarray(pixels),
        hotspot_x=int(info.hotspot_x),
        hotspot_y=int(info.hotspot_y),
    )


def load_bundle(project_dir: Path) -> RecordingBundle:
    """Locate every recording artifact of *project_dir*.

    Raises BundleNotFoundError if the screen capture is missing or a JSON
    sidecar is malformed. Missing optional files are logged and skipped.
    """
    recording_dir = project_dir / RECORDING_DIR
    if not recording_dir.is_dir():
        raise BundleNotFoundError(recording_dir, "Recording directory not found")

    screen_video = recording_dir / f"{SESSION_PREFIX}.mp4"
    if not screen_video.is_file():
        raise BundleNotFoundError(screen_video, "Screen video not found")

    bundle = RecordingBundle(
        screen_video=screen_video,
        webcam_video=_optional(recording_dir / f"{SESSION_PREFIX}-webcam.mp4"),
        mic_audio=_optional(recording_dir / f"{SESSION_PREFIX}-mic.m4a"),
        system_audio=_optional(recording_dir / f"{SESSION_PREFIX}-system.m4a"),
    )

    moves_path = recording_dir / f"{SESSION_PREFIX}-mouse-moves.json"
    if moves_path.is_file():
        bundle.mouse_moves = _read_json(moves_path, _MOUSE_MOVES, "mouse moves")
    else:
        logger.warning("Mouse moves file not found: %s", moves_path)

    cursors_path = recording_dir / f"{SESSION_PREFIX}-cursors.json"
    if cursors_path.is_file():
        bundle.cursor_info = _read_json(cursors_path, _CURSORS, "cursors")
        sprites_dir = recording_dir / f"{SESSION_PREFIX}-cursors"
        for cursor_id, info in bundle.cursor_info.items():
            image_path = sprites_dir / info.image_path
            if not image_path.is_file():
                logger.warning("Cursor image missing for '%s': %s", cursor_id, image_path)
                continue
            image = load_cursor_image(image_path, info)
            if image is not None:
                bundle.cursor_images[cursor_id] = image
    else:
        logger.warning("Cursors metadata file not found: %s", cursors_path)

    logger.info(
        "Loaded recording bundle: video=%s, mic=%s, system=%s, webcam=%s, mouse_moves=%d, cursors=%d",
        bundle.screen_video,
        bundle.mic_audio,
        bundle.system_audio,
        bundle.webcam_video,
        len(bundle.mouse_moves),
        len(bundle.cursor_images),
    )
    return bundle
