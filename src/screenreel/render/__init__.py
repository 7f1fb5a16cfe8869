"""Edit-only export path: tempo chains, filter graphs, and the FFmpeg driver."""
from screenreel.render.driver import FfmpegJob
from screenreel.render.filtergraph import (
    FilterGraph,
    GraphInputs,
    build_audio_filter,
    build_edit_command,
    build_filter_graph,
    build_video_filter,
    build_webcam_filter,
)
from screenreel.render.tempo import build_tempo_chain, format_tempo_chain

__all__ = [
    "FfmpegJob",
    "FilterGraph",
    "GraphInputs",
    "build_audio_filter",
    "build_edit_command",
    "build_filter_graph",
    "build_tempo_chain",
    "build_video_filter",
    "build_webcam_filter",
    "format_tempo_chain",
]
