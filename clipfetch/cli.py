from __future__ import annotations

import json
import logging
import signal
from pathlib import Path
from typing import Any

import typer

from clipfetch.cancellation import CancelToken
from clipfetch.config import Settings, load_settings
from clipfetch.logging_config import configure_logging
from clipfetch.models import FailureKind, PipelineOutcome
from clipfetch.pipeline import FetchRequest, run_pipeline
from clipfetch.source.youtube import YouTubeSource

app = typer.Typer(help="Download a YouTube video as a single mp4, optionally trimmed.")
config_app = typer.Typer(help="Configuration commands.")

app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".mp4"
CANCELLED_EXIT_CODE = 130


class _ProgressPrinter:
    """Single-line percentage display, one line per download label."""

    def __init__(self) -> None:
        self._last: dict[str, int] = {}

    def __call__(self, label: str, fraction: float) -> None:
        percent = int(round(fraction * 100))
        if self._last.get(label) == percent:
            return
        self._last[label] = percent
        typer.echo(f"\r{label}... {percent}%    ", nl=percent >= 100, err=True)


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def normalize_output_path(raw_output: str) -> Path:
    if not raw_output.lower().endswith(OUTPUT_EXTENSION):
        raw_output += OUTPUT_EXTENSION
    return Path(raw_output)


def unique_file_name(path: Path) -> Path:
    """Return the first free ``name(N).ext`` next to ``path``."""

    count = 1
    while True:
        candidate = path.with_name(f"{path.stem}({count}){path.suffix}")
        if not candidate.exists():
            return candidate
        count += 1


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="CLIPFETCH_CONFIG",
        help="Path to YAML configuration file.",
    )
) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@app.command("fetch")
def fetch(
    url: str = typer.Argument(..., help="YouTube video URL or id."),
    output: str | None = typer.Argument(None, help="Output file; '.mp4' is appended when missing."),
    start: str | None = typer.Argument(None, help="Trim start, MM:SS or HH:MM:SS."),
    end: str | None = typer.Argument(None, help="Trim end, MM:SS or HH:MM:SS."),
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="CLIPFETCH_CONFIG",
        help="Path to YAML configuration file.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite an existing output file without asking."),
) -> None:
    """Download, merge, and optionally trim a video into one mp4 file."""

    settings = _bootstrap(config_path)
    output_path = normalize_output_path(output or settings.download.default_output)

    if output_path.exists() and not yes:
        if not typer.confirm(f"File '{output_path}' already exists. Overwrite?", default=False):
            output_path = unique_file_name(output_path)
            typer.echo(f"New file will be saved as: {output_path}", err=True)

    cancel_token = CancelToken()

    def _on_interrupt(signum: int, frame: Any) -> None:
        typer.echo("\nOperation cancelled by user.", err=True)
        cancel_token.cancel()

    previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        outcome = run_pipeline(
            FetchRequest(url=url, output_path=output_path, raw_start=start, raw_end=end),
            source=YouTubeSource(user_agent=settings.download.user_agent),
            tool_path=settings.tools.ffmpeg_path,
            temp_dir=settings.download.temp_dir,
            cancel_token=cancel_token,
            on_progress=_ProgressPrinter(),
        )
    except (RuntimeError, ValueError, OSError) as exc:
        logger.error("Pipeline failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _report(outcome)


def _report(outcome: PipelineOutcome) -> None:
    if not outcome.ok:
        logger.error("Pipeline failed (%s): %s", outcome.failure, outcome.message)
        typer.echo(f"Error: {outcome.message}", err=True)
        code = CANCELLED_EXIT_CODE if outcome.failure is FailureKind.CANCELLED else 1
        raise typer.Exit(code=code)

    if outcome.warning:
        typer.echo(f"Warning: {outcome.warning}", err=True)

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "output_path": str(outcome.output_path),
                "message": outcome.message,
                "trimmed": outcome.trimmed,
                "merged": outcome.merge_plan is not None,
                "audio_transcode": outcome.merge_plan.audio_transcode if outcome.merge_plan else None,
                "warning": outcome.warning,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    app()
