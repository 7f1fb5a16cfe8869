"""Frame-accurate export path: raw RGBA decode, compositing, and encode."""
from screenreel.frames.compositor import FrameCompositor, blend_cursor, draw_webcam_overlay
from screenreel.frames.decoder import VideoDecoder
from screenreel.frames.encoder import VideoEncoder
from screenreel.frames.probe import probe_video

__all__ = [
    "FrameCompositor",
    "VideoDecoder",
    "VideoEncoder",
    "blend_cursor",
    "draw_webcam_overlay",
    "probe_video",
]
