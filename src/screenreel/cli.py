"""ScreenReel CLI entry point.

Exports one recording project to a single video file. Options come from an
ExportOptions JSON file, individual flags, or both (flags win). The export
runs on a worker thread; this command only renders its progress, so Ctrl-C
stays responsive and cancels the running FFmpeg process cleanly.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from screenreel.edits.loader import build_options, load_options
from screenreel.edits.schema import ExportFormat, ExportQuality
from screenreel.errors import ExportCancelled, ScreenReelError
from screenreel.pipeline import ExportJob, start_export
from screenreel.progress import ExportProgress, ExportStage

app = typer.Typer(
    name="screenreel",
    help="ScreenReel: export a screen recording with cursor, webcam, and audio to MP4, WebM, or GIF.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

EXIT_CANCELLED = 130

_STAGE_LABELS = {
    ExportStage.PREPARING: "Loading recording bundle...",
    ExportStage.SMOOTHING_CURSOR: "Smoothing cursor...",
    ExportStage.ENCODING: "Encoding...",
    ExportStage.FINALIZING: "Finalizing...",
    ExportStage.COMPLETE: "Export complete",
    ExportStage.ERROR: "Export failed",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=verbose)],
        force=True,
    )


def _describe(update: ExportProgress) -> str:
    label = _STAGE_LABELS[update.stage]
    if update.stage is ExportStage.ENCODING and update.total_units:
        return f"{label} {update.current_unit}/{update.total_units}"
    return label


def _input_error(message: str) -> None:
    err_console.print(Panel(message, title="[red]Input Error[/red]", border_style="red"))
    raise typer.Exit(1)


def _cancelled() -> None:
    err_console.print(Panel(
        "Export cancelled. A partially written output file may remain.",
        title="[yellow]Export cancelled[/yellow]",
        border_style="yellow",
    ))
    raise typer.Exit(EXIT_CANCELLED)


def _follow(job: ExportJob) -> Path:
    """Render the job's progress until it ends, then return its result."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(_STAGE_LABELS[ExportStage.PREPARING], total=100)
        while True:
            update = job.progress.get(timeout=0.1)
            if update is None:
                if job.done:
                    break
                continue
            progress.update(task, completed=update.percent, description=_describe(update))
        for update in job.progress.drain():
            progress.update(task, completed=update.percent, description=_describe(update))
    return job.result()


@app.command()
def main(
    project_dir: Annotated[
        Path,
        typer.Argument(
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Recording project directory (contains recording/recording-0.mp4).",
        ),
    ],
    options_file: Annotated[
        Optional[Path],
        typer.Option(
            "--options", "-o",
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
            help="ExportOptions JSON file (camelCase or snake_case keys).",
        ),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", help="Output file path. Overrides outputPath from --options."),
    ] = None,
    fmt: Annotated[
        Optional[ExportFormat],
        typer.Option("--format", "-f", case_sensitive=False, help="Output format."),
    ] = None,
    quality: Annotated[
        Optional[ExportQuality],
        typer.Option("--quality", "-q", case_sensitive=False, help="Quality tier."),
    ] = None,
    mode: Annotated[
        Optional[str],
        typer.Option("--mode", help="Export path: auto, edit (filter graph only) or frame (cursor/webcam overlay)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log FFmpeg commands and pipeline details."),
    ] = False,
) -> None:
    """Export a recording project to a finished video."""
    _configure_logging(verbose)

    # --- Input validation ---
    if not project_dir.is_dir():
        _input_error(
            f"Project not found: [bold]{project_dir}[/bold]\n"
            f"Check that the path is correct and points at a recording project directory."
        )

    if options_file is not None:
        if options_file.suffix.lower() != ".json":
            _input_error(
                f"Unsupported options format: [bold]{options_file.suffix}[/bold]\n"
                f"Export options must be a .json file."
            )
        if not options_file.exists():
            _input_error(
                f"File not found: [bold]{options_file}[/bold]\n"
                f"Check that the path is correct and the file is accessible."
            )
    elif output is None:
        _input_error("Either --options or --output is required to know where to write the export.")

    job: Optional[ExportJob] = None
    try:
        overrides = dict(output_path=output, format=fmt, quality=quality, mode=mode)
        if options_file is not None:
            options = load_options(options_file, **overrides)
        else:
            options = build_options(**overrides)

        console.print(
            f"\n[bold cyan]ScreenReel[/bold cyan] - [dim]{project_dir.name}[/dim]  "
            f"format=[bold]{options.format.value}[/bold] quality=[bold]{options.quality.value}[/bold] "
            f"mode=[bold]{options.mode}[/bold]\n"
        )

        job = start_export(project_dir, options)
        output_path = _follow(job)

        console.print(Panel(
            f"[bold green]Export complete[/bold green]\n\n"
            f"  Output:  [dim]{output_path}[/dim]\n"
            f"  Format:  {options.format.value}\n"
            f"  Quality: {options.quality.value}",
            title="[green]Export Ready[/green]",
            border_style="green",
        ))

    except KeyboardInterrupt:
        if job is not None:
            job.cancel()
            job.wait()
        _cancelled()
    except ExportCancelled:
        _cancelled()
    except ScreenReelError as e:
        err_console.print(Panel(
            str(e),
            title="[red]Export Error[/red]",
            border_style="red",
        ))
        raise typer.Exit(1)
