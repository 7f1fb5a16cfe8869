"""Tests for the screenreel CLI.

The export itself is replaced with a finished fake job so these tests cover
input validation, option merging, and how each outcome is rendered.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from screenreel.cli import EXIT_CANCELLED, app
from screenreel.edits.schema import ExportFormat, ExportQuality
from screenreel.errors import ExportCancelled, FfmpegError
from screenreel.progress import ExportProgress, ProgressChannel

runner = CliRunner()

FIXTURES = Path(__file__).parent / "fixtures"


class _FinishedJob:
    """Stands in for ExportJob: progress already queued, outcome fixed."""

    def __init__(self, outcome, updates=()):
        self.progress = ProgressChannel()
        for update in updates:
            self.progress.push(update)
        self.done = True
        self.cancelled = False
        self._outcome = outcome

    def result(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    def cancel(self):
        self.cancelled = True

    def wait(self, timeout=None):
        return True


@pytest.fixture
def project(tmp_path):
    (tmp_path / "recording").mkdir()
    return tmp_path


def test_missing_project_dir(tmp_path):
    result = runner.invoke(app, [str(tmp_path / "nope"), "--output", str(tmp_path / "out.mp4")])
    assert result.exit_code == 1
    assert "Project not found" in result.output


def test_options_must_be_json(project):
    result = runner.invoke(app, [str(project), "--options", str(project / "options.yaml")])
    assert result.exit_code == 1
    assert "Unsupported options format" in result.output


def test_options_file_missing(project):
    result = runner.invoke(app, [str(project), "--options", str(project / "options.json")])
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_output_required_without_options(project):
    result = runner.invoke(app, [str(project)])
    assert result.exit_code == 1
    assert "Either --options or --output is required" in result.output


def test_flags_only_export(project, tmp_path):
    out = tmp_path / "out.gif"
    job = _FinishedJob(out, [ExportProgress.preparing(), ExportProgress.complete()])
    with patch("screenreel.cli.start_export", return_value=job) as mock_start:
        result = runner.invoke(
            app, [str(project), "--output", str(out), "--format", "GIF", "-q", "low", "--mode", "frame"]
        )

    assert result.exit_code == 0, result.output
    assert "Export Ready" in result.output
    options = mock_start.call_args[0][1]
    assert options.format is ExportFormat.GIF
    assert options.quality is ExportQuality.LOW
    assert options.mode == "frame"
    assert options.output_path == out


def test_options_file_with_output_override(project, tmp_path):
    out = tmp_path / "final.webm"
    job = _FinishedJob(out, [ExportProgress.encoding(10, 20), ExportProgress.complete()])
    with patch("screenreel.cli.start_export", return_value=job) as mock_start:
        result = runner.invoke(
            app, [str(project), "--options", str(FIXTURES / "export_options.json"), "--output", str(out)]
        )

    assert result.exit_code == 0, result.output
    options = mock_start.call_args[0][1]
    assert options.output_path == out
    assert options.format is ExportFormat.WEBM
    assert len(options.screen_edits.segments) == 2
    assert options.include_webcam is False


def test_invalid_mode_is_reported(project, tmp_path):
    with patch("screenreel.cli.start_export") as mock_start:
        result = runner.invoke(app, [str(project), "--output", str(tmp_path / "o.mp4"), "--mode", "sideways"])
    assert result.exit_code == 1
    assert "Export Error" in result.output
    mock_start.assert_not_called()


def test_export_failure_panel(project, tmp_path):
    job = _FinishedJob(FfmpegError("exited with status 1"), [ExportProgress.error("exited with status 1")])
    with patch("screenreel.cli.start_export", return_value=job):
        result = runner.invoke(app, [str(project), "--output", str(tmp_path / "o.mp4")])
    assert result.exit_code == 1
    assert "Export Error" in result.output
    assert "exited with status 1" in result.output


def test_cancelled_export(project, tmp_path):
    job = _FinishedJob(ExportCancelled())
    with patch("screenreel.cli.start_export", return_value=job):
        result = runner.invoke(app, [str(project), "--output", str(tmp_path / "o.mp4")])
    assert result.exit_code == EXIT_CANCELLED
    assert "Export cancelled" in result.output


def test_interrupt_cancels_running_job(project, tmp_path):
    job = _FinishedJob(KeyboardInterrupt())
    with patch("screenreel.cli.start_export", return_value=job):
        result = runner.invoke(app, [str(project), "--output", str(tmp_path / "o.mp4")])
    assert result.exit_code == EXIT_CANCELLED
    assert job.cancelled
    assert "Export cancelled" in result.output
