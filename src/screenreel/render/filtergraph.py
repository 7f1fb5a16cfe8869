"""FFmpeg filter_complex construction for the edit-only export path.

Every function here is pure: identical inputs always produce byte-identical
graph text, which keeps exports reproducible and the builder testable without
FFmpeg. Node labels:

- ``v<i>`` / ``wc<i>`` / ``mic<i>`` / ``sys<i>``: per-segment trims
- ``vconcat`` / ``wcconcat`` / ``micconcat`` / ``sysconcat``: n-way concat (N > 1)
- ``vscaled``, ``wc_scaled``, ``vcomposed``: intermediate video nodes
- ``vout`` / ``aout``: final mapped outputs
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from screenreel.edits.schema import ExportFormat, ExportOptions, Segment, TrackEdits
from screenreel.layout import DEFAULT_WEBCAM_MARGIN_PX, webcam_overlay_width
from screenreel.models import VideoInfo
from screenreel.render.codec import (
    audio_codec_args,
    gif_palette_filter,
    scale_pad_filter,
    video_codec_args,
)
from screenreel.render.tempo import tempo_filter

VIDEO_OUT: str = "vout"
AUDIO_OUT: str = "aout"


@dataclass(frozen=True)
class GraphInputs:
    """FFmpeg input indices of the tracks present in this export (None = absent)."""

    screen: int = 0
    webcam: Optional[int] = None
    mic: Optional[int] = None
    system: Optional[int] = None

    @property
    def audio(self) -> list[tuple[int, str]]:
        """(input index, label prefix) for each present audio track, mic first."""
        tracks = []
        if self.mic is not None:
            tracks.append((self.mic, "mic"))
        if self.system is not None:
            tracks.append((self.system, "sys"))
        return tracks


@dataclass(frozen=True)
class FilterGraph:
    text: str
    video_label: str
    audio_label: Optional[str]  # None when the output has no audio stream

    def map_args(self) -> list[str]:
        args = ["-map", f"[{self.video_label}]"]
        if self.audio_label is not None:
            args += ["-map", f"[{self.audio_label}]"]
        return args


def _fmt_number(value: float) -> str:
    """Shortest fixed-point text for *value*: 1.0 -> "1", 1.5 -> "1.5"."""
    text = format(value, "f").rstrip("0").rstrip(".")
    return text or "0"


def _setpts(seg: Segment) -> str:
    if seg.is_normal_speed:
        return "setpts=PTS-STARTPTS"
    return f"setpts=(PTS-STARTPTS)/{_fmt_number(seg.time_scale)}"


def _concat(labels: list[str], out_label: str, video: bool) -> str:
    v, a = (1, 0) if video else (0, 1)
    inputs = "".join(f"[{label}]" for label in labels)
    return f"{inputs}concat=n={len(labels)}:v={v}:a={a}[{out_label}]"


def build_video_filter(segments: list[Segment], input_index: int, prefix: str = "v") -> tuple[str, str]:
    """Trim each segment from ``[input_index:v]`` and concatenate in list order.

    Returns ``(filter_text, output_label)``.
    """
    filters: list[str] = []
    labels: list[str] = []
    for i, seg in enumerate(segments):
        label = f"{prefix}{i}"
        filters.append(
            f"[{input_index}:v]trim=start={_fmt_number(seg.source_start_s)}"
            f":end={_fmt_number(seg.source_end_s)},{_setpts(seg)}[{label}]"
        )
        labels.append(label)

    if len(labels) > 1:
        out_label = f"{prefix}concat"
        filters.append(_concat(labels, out_label, video=True))
    else:
        out_label = labels[0]
    return ";".join(filters), out_label


def build_audio_filter(segments: list[Segment], input_index: int, prefix: str) -> tuple[str, str]:
    """Trim each segment from ``[input_index:a]``, apply its tempo chain, concatenate."""
    filters: list[str] = []
    labels: list[str] = []
    for i, seg in enumerate(segments):
        label = f"{prefix}{i}"
        filters.append(
            f"[{input_index}:a]atrim=start={_fmt_number(seg.source_start_s)}"
            f":end={_fmt_number(seg.source_end_s)},asetpts=PTS-STARTPTS,"
            f"{tempo_filter(seg.time_scale)}[{label}]"
        )
        labels.append(label)

    if len(labels) > 1:
        out_label = f"{prefix}concat"
        filters.append(_concat(labels, out_label, video=False))
    else:
        out_label = labels[0]
    return ";".join(filters), out_label


def build_webcam_filter(segments: list[Segment], input_index: int, output_width: int) -> tuple[str, str]:
    """Cut the webcam with the screen's edit list, then scale it to overlay size."""
    text, label = build_video_filter(segments, input_index, prefix="wc")
    width = webcam_overlay_width(output_width)
    return f"{text};[{label}]scale={width}:-1[wc_scaled]", "wc_scaled"


def build_filter_graph(
    edits: TrackEdits,
    inputs: GraphInputs,
    source_size: tuple[int, int],
    output_size: tuple[int, int],
    fps: int,
    fmt: ExportFormat = ExportFormat.MP4,
    webcam_margin: int = DEFAULT_WEBCAM_MARGIN_PX,
) -> FilterGraph:
    """Build the complete filter_complex for one export.

    Scaling and padding to *output_size* happen once, after concatenation.
    GIF output drops every audio track and ends in a palettegen/paletteuse
    sub-graph.
    """
    is_gif = fmt is ExportFormat.GIF
    has_webcam = inputs.webcam is not None
    parts: list[str] = []

    video_text, video_label = build_video_filter(edits.segments, inputs.screen)
    parts.append(video_text)

    post: list[str] = []
    if source_size != output_size:
        post.append(scale_pad_filter(*output_size))
    if not is_gif:
        post.append(f"fps={fps}")

    if has_webcam or is_gif:
        base_label = "vscaled"
    else:
        base_label = VIDEO_OUT
    if post:
        parts.append(f"[{video_label}]{','.join(post)}[{base_label}]")
    else:
        parts.append(f"[{video_label}]null[{base_label}]")

    current = base_label
    if has_webcam:
        webcam_text, webcam_label = build_webcam_filter(edits.segments, inputs.webcam, output_size[0])
        parts.append(webcam_text)
        composed = "vcomposed" if is_gif else VIDEO_OUT
        parts.append(
            f"[{current}][{webcam_label}]overlay=W-w-{webcam_margin}:H-h-{webcam_margin}"
            f":shortest=1[{composed}]"
        )
        current = composed

    if is_gif:
        pre, palette = gif_palette_filter(fps, output_size[0])
        parts.append(f"[{current}]{pre},{palette}[{VIDEO_OUT}]")
        return FilterGraph(text=";".join(parts), video_label=VIDEO_OUT, audio_label=None)

    audio_labels: list[str] = []
    for index, prefix in inputs.audio:
        audio_text, audio_label = build_audio_filter(edits.segments, index, prefix)
        parts.append(audio_text)
        audio_labels.append(audio_label)

    if len(audio_labels) > 1:
        mix_inputs = "".join(f"[{label}]" for label in audio_labels)
        parts.append(f"{mix_inputs}amix=inputs={len(audio_labels)}:duration=longest[{AUDIO_OUT}]")
        final_audio: Optional[str] = AUDIO_OUT
    elif audio_labels:
        final_audio = audio_labels[0]
    else:
        final_audio = None

    return FilterGraph(text=";".join(parts), video_label=VIDEO_OUT, audio_label=final_audio)


def build_edit_command(
    ffmpeg: str,
    screen_path: Path,
    source: VideoInfo,
    options: ExportOptions,
    edits: TrackEdits,
    webcam_path: Optional[Path] = None,
    mic_path: Optional[Path] = None,
    system_path: Optional[Path] = None,
) -> list[str]:
    """Return the full FFmpeg argv for an edit-only export.

    Optional tracks are included only when a path is given and the matching
    ``include_*`` option is set; audio is never included for GIF.

    Raises
    ------
    InvalidConfigError
        If any segment is zero-length.
    """
    edits.reject_zero_length()

    args = [ffmpeg, "-y", "-i", str(screen_path)]
    next_index = 1

    webcam_index = None
    if webcam_path is not None and options.include_webcam:
        args += ["-i", str(webcam_path)]
        webcam_index = next_index
        next_index += 1

    mic_index = None
    if mic_path is not None and options.mic_audio_enabled:
        args += ["-i", str(mic_path)]
        mic_index = next_index
        next_index += 1

    system_index = None
    if system_path is not None and options.system_audio_enabled:
        args += ["-i", str(system_path)]
        system_index = next_index
        next_index += 1

    inputs = GraphInputs(screen=0, webcam=webcam_index, mic=mic_index, system=system_index)
    output_size = options.output_size(source.width, source.height)
    graph = build_filter_graph(
        edits,
        inputs,
        source_size=(source.width, source.height),
        output_size=output_size,
        fps=options.output_fps(source.fps),
        fmt=options.format,
        webcam_margin=options.webcam_margin_px,
    )

    args += ["-filter_complex", graph.text]
    args += graph.map_args()
    args += video_codec_args(options.format, options.quality)
    if graph.audio_label is not None:
        args += audio_codec_args()
    args += ["-progress", "pipe:1", "-nostats"]
    args.append(str(options.output_path))
    return args
