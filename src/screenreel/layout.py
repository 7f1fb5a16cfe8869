"""Webcam overlay geometry shared by the filter graph and the frame compositor."""

WEBCAM_SCALE: float = 0.125          # overlay width as a fraction of output width
DEFAULT_WEBCAM_MARGIN_PX: int = 20   # gap to the bottom and right frame edges
CORNER_RADIUS_FRACTION: float = 0.1  # of the smaller overlay dimension


def webcam_overlay_width(output_width: int, scale: float = WEBCAM_SCALE) -> int:
    return max(int(round(output_width * scale)), 1)


def webcam_overlay_size(
    output_width: int,
    webcam_width: int,
    webcam_height: int,
    scale: float = WEBCAM_SCALE,
) -> tuple[int, int]:
    """Return (width, height) of the overlay, keeping the webcam aspect ratio."""
    width = webcam_overlay_width(output_width, scale)
    height = max(int(width * webcam_height / webcam_width), 1)
    return width, height


def corner_radius(width: int, height: int) -> int:
    return int(min(width, height) * CORNER_RADIUS_FRACTION)
