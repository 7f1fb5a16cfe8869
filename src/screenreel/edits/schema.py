from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from screenreel.errors import InvalidConfigError

# Tolerances shared by the edit model and the graph builder.
TIME_SCALE_EPSILON: float = 0.01
FULL_SOURCE_TOLERANCE_MS: int = 100


class _Frozen(BaseModel):
    """Immutable model that accepts both snake_case and camelCase JSON keys.

    The recording app serialises camelCase; Python callers use field names.
    Infinity and NaN are rejected for every float field.
    """
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel, allow_inf_nan=False
    )


class Segment(_Frozen):
    """A contiguous source range played back at ``time_scale`` speed."""
    source_start_ms: int = Field(ge=0)
    source_end_ms: int = Field(ge=0)
    time_scale: float = Field(default=1.0, gt=0.0)

    @model_validator(mode="after")
    def end_not_before_start(self) -> "Segment":
        if self.source_end_ms < self.source_start_ms:
            raise ValueError(
                f"source_end_ms ({self.source_end_ms}) must be >= source_start_ms ({self.source_start_ms})"
            )
        return self

    @property
    def source_duration_ms(self) -> int:
        return self.source_end_ms - self.source_start_ms

    @property
    def output_duration_ms(self) -> float:
        return self.source_duration_ms / self.time_scale

    @property
    def source_start_s(self) -> float:
        return self.source_start_ms / 1000.0

    @property
    def source_end_s(self) -> float:
        return self.source_end_ms / 1000.0

    @property
    def is_zero_length(self) -> bool:
        return self.source_duration_ms == 0

    @property
    def is_normal_speed(self) -> bool:
        return abs(self.time_scale - 1.0) < TIME_SCALE_EPSILON


class TrackEdits(_Frozen):
    """Ordered segments defining one track's output timeline (order = output order)."""
    segments: list[Segment] = Field(min_length=1)

    @property
    def total_output_duration_ms(self) -> float:
        return sum(seg.output_duration_ms for seg in self.segments)

    def is_full_source(self, source_duration_ms: int) -> bool:
        """True when the edits are the "no edits" identity for a source of this length."""
        if len(self.segments) != 1:
            return False
        seg = self.segments[0]
        return (
            seg.source_start_ms == 0
            and seg.source_end_ms >= max(source_duration_ms - FULL_SOURCE_TOLERANCE_MS, 0)
            and seg.is_normal_speed
        )

    def reject_zero_length(self) -> None:
        """Raise InvalidConfigError if any segment covers no source time."""
        for i, seg in enumerate(self.segments):
            if seg.is_zero_length:
                raise InvalidConfigError(
                    f"segment {i} is zero-length ({seg.source_start_ms}ms..{seg.source_end_ms}ms)"
                )

    @classmethod
    def full_source(cls, source_duration_ms: int) -> "TrackEdits":
        return cls(segments=[Segment(source_start_ms=0, source_end_ms=source_duration_ms)])


class ExportFormat(str, Enum):
    MP4 = "mp4"
    WEBM = "webm"
    GIF = "gif"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def video_codec(self) -> str:
        return {"mp4": "libx264", "webm": "libvpx-vp9", "gif": "gif"}[self.value]


class ExportQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    LOSSLESS = "lossless"

    @property
    def crf(self) -> int:
        # CRF 1 rather than 0: true lossless breaks scaling and yuv420p output.
        return {"low": 28, "medium": 23, "high": 18, "lossless": 1}[self.value]

    @property
    def h264_preset(self) -> str:
        return {"low": "faster", "medium": "medium", "high": "slow", "lossless": "veryslow"}[self.value]


class SpringConfig(_Frozen):
    """Spring parameters handed to the cursor-smoothing collaborator."""
    stiffness: float = Field(default=470.0, gt=0.0)
    damping: float = Field(default=70.0, ge=0.0)
    mass: float = Field(default=3.0, gt=0.0)


class ExportOptions(_Frozen):
    format: ExportFormat = ExportFormat.MP4
    quality: ExportQuality = ExportQuality.HIGH
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    fps: Optional[int] = Field(default=None, gt=0)
    output_path: Path
    include_cursor: bool = True
    include_webcam: bool = True
    include_mic_audio: bool = True
    include_system_audio: bool = True
    screen_edits: Optional[TrackEdits] = None
    camera_edits: Optional[TrackEdits] = None

    # "auto" picks the edit-only path when screen_edits change the timeline.
    mode: Literal["auto", "edit", "frame"] = "auto"
    spring: SpringConfig = SpringConfig()
    webcam_margin_px: int = Field(default=20, ge=0)

    @model_validator(mode="after")
    def dimensions_together(self) -> "ExportOptions":
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must be given together")
        return self

    @property
    def mic_audio_enabled(self) -> bool:
        # GIF has no audio stream: the request degrades to video-only.
        return self.include_mic_audio and self.format is not ExportFormat.GIF

    @property
    def system_audio_enabled(self) -> bool:
        return self.include_system_audio and self.format is not ExportFormat.GIF

    def output_size(self, source_width: int, source_height: int) -> tuple[int, int]:
        if self.width is None or self.height is None:
            return source_width, source_height
        return self.width, self.height

    def output_fps(self, source_fps: float) -> int:
        return self.fps if self.fps is not None else int(source_fps)
