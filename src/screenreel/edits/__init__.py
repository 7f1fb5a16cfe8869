"""Edit model and export options."""
from screenreel.edits.schema import (
    ExportFormat,
    ExportOptions,
    ExportQuality,
    Segment,
    SpringConfig,
    TrackEdits,
)
from screenreel.edits.loader import build_options, load_options

__all__ = [
    "ExportFormat",
    "ExportOptions",
    "ExportQuality",
    "Segment",
    "SpringConfig",
    "TrackEdits",
    "build_options",
    "load_options",
]
