"""Export orchestrator: bundle -> (edit-only | frame-accurate) -> output file.

The edit-only path hands the whole job to one FFmpeg filter_complex run and
is the only path that applies cuts and speed changes. The frame-accurate path
decodes the uncut screen recording, composites the smoothed cursor and the
webcam onto every frame, and re-encodes.
"""

import logging
import threading
from contextlib import ExitStack
from pathlib import Path
from typing import Literal, Optional

from screenreel.bundle import RecordingBundle, load_bundle
from screenreel.cursor.smoothing import CursorSmoother, smooth_cursor_data
from screenreel.edits.schema import ExportOptions, TrackEdits
from screenreel.errors import ExportCancelled, FfmpegError
from screenreel.frames.compositor import FrameCompositor
from screenreel.frames.decoder import VideoDecoder
from screenreel.frames.encoder import VideoEncoder
from screenreel.frames.probe import probe_video
from screenreel.models import VideoInfo
from screenreel.progress import (
    CancelToken,
    ExportProgress,
    ProgressChannel,
    ProgressSink,
    discard_progress,
)
from screenreel.render.binaries import get_ffmpeg_binary
from screenreel.render.driver import FfmpegJob
from screenreel.render.filtergraph import build_edit_command

_logger = logging.getLogger("screenreel")

PROGRESS_EVERY_FRAMES = 10

ExportMode = Literal["edit", "frame"]


def resolve_mode(options: ExportOptions, source_duration_ms: int) -> ExportMode:
    """Pick the export path for *options*.

    ``auto`` uses the edit-only path exactly when screen edits exist and are
    not the full-source identity; everything else goes frame-accurate.
    """
    if options.mode != "auto":
        return options.mode
    edits = options.screen_edits
    if edits is not None and not edits.is_full_source(source_duration_ms):
        return "edit"
    return "frame"


class ExportPipeline:
    """One export run. Call :meth:`run` on the thread that should do the work."""

    def __init__(
        self,
        project_dir: Path,
        options: ExportOptions,
        cancel_token: Optional[CancelToken] = None,
        smoother: CursorSmoother = smooth_cursor_data,
    ) -> None:
        self.project_dir = project_dir
        self.options = options
        self.cancel_token = cancel_token or CancelToken()
        self.smoother = smoother

    def _check_cancelled(self) -> None:
        if self.cancel_token.is_cancelled:
            raise ExportCancelled()

    def run(self, progress_sink: Optional[ProgressSink] = None) -> Path:
        """Export and return the output path.

        Failures are pushed to *progress_sink* as an error value and re-raised.
        Cancellation raises ExportCancelled without an error value.
        """
        sink = progress_sink or discard_progress
        _logger.info("Starting export for %s -> %s", self.project_dir, self.options.output_path)
        try:
            self._run(sink)
        except ExportCancelled:
            _logger.info("Export cancelled: %s", self.options.output_path)
            raise
        except Exception as e:
            _logger.error("Export failed: %s", e)
            sink(ExportProgress.error(str(e)))
            raise
        return self.options.output_path

    def _run(self, sink: ProgressSink) -> None:
        sink(ExportProgress.preparing())
        self._check_cancelled()
        bundle = load_bundle(self.project_dir)
        self._check_cancelled()

        info: Optional[VideoInfo] = None
        if self.options.mode == "auto" and self.options.screen_edits is not None:
            info = probe_video(bundle.screen_video)
        mode = resolve_mode(self.options, info.duration_ms if info is not None else 0)
        _logger.info("Export mode: %s (requested %s)", mode, self.options.mode)

        if mode == "edit":
            self._run_edit(bundle, info or probe_video(bundle.screen_video), sink)
        else:
            self._run_frames(bundle, info, sink)

        sink(ExportProgress.complete())
        _logger.info("Export complete: %s", self.options.output_path)

    def _run_edit(self, bundle: RecordingBundle, info: VideoInfo, sink: ProgressSink) -> None:
        edits = self.options.screen_edits or TrackEdits.full_source(info.duration_ms)
        if self.options.camera_edits is not None:
            _logger.info("camera_edits ignored: the webcam follows the screen edits")
        if self.options.include_cursor and bundle.mouse_moves:
            _logger.warning("Cursor overlay is not drawn on the edit-only path")

        cmd = build_edit_command(
            get_ffmpeg_binary(),
            bundle.screen_video,
            info,
            self.options,
            edits,
            webcam_path=bundle.webcam_video,
            mic_path=bundle.mic_audio,
            system_path=bundle.system_audio,
        )
        total_ms = edits.total_output_duration_ms
        sink(ExportProgress.encoding(0, int(total_ms)))
        with FfmpegJob(cmd, total_ms, sink, self.cancel_token) as job:
            job.run()
        sink(ExportProgress.finalizing())

    def _open_webcam(self, bundle: RecordingBundle) -> Optional[VideoDecoder]:
        if not self.options.include_webcam:
            _logger.info("Webcam disabled in export options")
            return None
        if bundle.webcam_video is None:
            _logger.warning("include_webcam is set but the bundle has no webcam video")
            return None
        try:
            return VideoDecoder.open(bundle.webcam_video)
        except FfmpegError as e:
            _logger.error("Failed to open webcam video, exporting without it: %s", e)
            return None

    def _run_frames(self, bundle: RecordingBundle, info: Optional[VideoInfo], sink: ProgressSink) -> None:
        with ExitStack() as stack:
            decoder = stack.enter_context(VideoDecoder.open(bundle.screen_video, info))
            width, height = decoder.dimensions
            fps = decoder.fps
            total_frames = decoder.frame_count

            sink(ExportProgress.smoothing_cursor(5.0))
            timeline = []
            if self.options.include_cursor and bundle.mouse_moves:
                timeline = self.smoother(bundle.mouse_moves, self.options.spring, fps)
            sink(ExportProgress.smoothing_cursor(10.0))
            self._check_cancelled()

            webcam = self._open_webcam(bundle)
            if webcam is not None:
                stack.enter_context(webcam)

            encoder = stack.enter_context(
                VideoEncoder.with_audio(
                    self.options, width, height, fps, bundle.mic_audio, bundle.system_audio
                )
            )
            compositor = FrameCompositor(
                width,
                height,
                fps,
                cursor_timeline=timeline,
                cursor_images=bundle.cursor_images,
                webcam=webcam,
                webcam_margin=self.options.webcam_margin_px,
                source=bundle.screen_video,
            )

            frames_written = 0
            while True:
                self._check_cancelled()
                frame = decoder.read_frame()
                if frame is None:
                    break
                encoder.write_frame(compositor.composite(frame))
                frames_written += 1
                if frames_written % PROGRESS_EVERY_FRAMES == 0:
                    sink(ExportProgress.encoding(frames_written, total_frames))

            sink(ExportProgress.finalizing())
            if webcam is not None:
                _logger.info(
                    "Webcam overlay stats: %d frames drawn, %d frames missed",
                    compositor.webcam_frames_drawn,
                    compositor.webcam_frames_missed,
                )
            encoder.finish()
            _logger.info("%d frames written to %s", frames_written, self.options.output_path)


class ExportJob:
    """Runs an :class:`ExportPipeline` on a worker thread.

    Progress arrives on :attr:`progress`; :meth:`result` re-raises whatever
    ended the run (including ExportCancelled).
    """

    def __init__(self, pipeline: ExportPipeline, channel: Optional[ProgressChannel] = None) -> None:
        self.pipeline = pipeline
        self.progress = channel or ProgressChannel()
        self._error: Optional[BaseException] = None
        self._output: Optional[Path] = None
        self._thread = threading.Thread(target=self._work, name="screenreel-export", daemon=True)

    def _work(self) -> None:
        try:
            self._output = self.pipeline.run(self.progress)
        except Exception as e:
            self._error = e

    def start(self) -> "ExportJob":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self.pipeline.cancel_token.cancel()

    @property
    def done(self) -> bool:
        return self._thread.ident is not None and not self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker exits; False if *timeout* elapsed first."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def result(self) -> Path:
        self._thread.join()
        if self._error is not None:
            raise self._error
        assert self._output is not None
        return self._output


def start_export(
    project_dir: Path,
    options: ExportOptions,
    cancel_token: Optional[CancelToken] = None,
    smoother: CursorSmoother = smooth_cursor_data,
) -> ExportJob:
    """Start exporting *project_dir* in the background and return the running job."""
    pipeline = ExportPipeline(project_dir, options, cancel_token, smoother)
    return ExportJob(pipeline).start()
