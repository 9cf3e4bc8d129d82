from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import clipfetch.cli as cli
from clipfetch.config import Settings
from clipfetch.models import FailureKind, MergePlan, PipelineOutcome


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> dict[str, object]:
    calls: dict[str, object] = {"outcome": None}

    def _run_pipeline(request, **kwargs):
        calls["request"] = request
        calls["kwargs"] = kwargs
        outcome = calls["outcome"] or PipelineOutcome(
            ok=True,
            output_path=request.output_path,
            message=f"Final video saved as: {request.output_path}",
        )
        return outcome

    monkeypatch.setattr(cli, "_bootstrap", lambda _: Settings())
    monkeypatch.setattr(cli, "run_pipeline", _run_pipeline)
    return calls


def test_fetch_appends_mp4_and_passes_trim_bounds(tmp_path: Path, captured: dict[str, object]) -> None:
    output = tmp_path / "clip"

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(output), "0:10", "1:00"])

    assert result.exit_code == 0
    request = captured["request"]
    assert request.output_path == tmp_path / "clip.mp4"
    assert (request.raw_start, request.raw_end) == ("0:10", "1:00")
    assert captured["kwargs"]["tool_path"] == "ffmpeg"
    assert '"status": "ok"' in result.output


def test_fetch_keeps_uppercase_extension(tmp_path: Path, captured: dict[str, object]) -> None:
    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(tmp_path / "CLIP.MP4")])

    assert result.exit_code == 0
    assert captured["request"].output_path == tmp_path / "CLIP.MP4"


def test_fetch_prints_clean_error_for_failed_run(tmp_path: Path, captured: dict[str, object]) -> None:
    captured["outcome"] = PipelineOutcome.failed(FailureKind.MERGE_FAILURE, "Failed to merge video and audio.")

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(tmp_path / "out.mp4")])

    assert result.exit_code == 1
    assert "Error: Failed to merge video and audio." in result.output
    assert "Traceback" not in result.output


def test_fetch_prints_clean_error_for_unexpected_exception(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: Settings())
    monkeypatch.setattr(
        cli,
        "run_pipeline",
        lambda *_, **__: (_ for _ in ()).throw(PermissionError(13, "Permission denied")),
    )

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(tmp_path / "out.mp4")])

    assert result.exit_code == 1
    assert "Error: [Errno 13] Permission denied" in result.output
    assert "Traceback" not in result.output
    assert isinstance(result.exception, SystemExit)


def test_fetch_uses_distinct_exit_code_when_cancelled(tmp_path: Path, captured: dict[str, object]) -> None:
    captured["outcome"] = PipelineOutcome.failed(FailureKind.CANCELLED, "Download cancelled.")

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(tmp_path / "out.mp4")])

    assert result.exit_code == cli.CANCELLED_EXIT_CODE
    assert "Error: Download cancelled." in result.output


def test_fetch_reports_trim_warning_as_success(tmp_path: Path, captured: dict[str, object]) -> None:
    output = tmp_path / "out.mp4"
    captured["outcome"] = PipelineOutcome(
        ok=True,
        output_path=output,
        message=f"Final video saved as: {output}",
        warning="Trimming failed (ffmpeg exited with code 1); kept untrimmed output.",
        merge_plan=MergePlan(
            video_path=Path("temp_video.mp4"),
            audio_path=Path("temp_audio.webm"),
            output_path=output,
            audio_transcode=True,
        ),
    )

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(output), "0:10", "1:00"])

    assert result.exit_code == 0
    assert "Warning: Trimming failed" in result.output
    payload = json.loads(result.output[result.output.index("{") :])
    assert payload["audio_transcode"] is True
    assert payload["trimmed"] is False


def test_fetch_declined_overwrite_picks_unique_name(tmp_path: Path, captured: dict[str, object]) -> None:
    output = tmp_path / "out.mp4"
    output.write_bytes(b"existing")
    (tmp_path / "out(1).mp4").write_bytes(b"existing too")

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(output)], input="n\n")

    assert result.exit_code == 0
    assert captured["request"].output_path == tmp_path / "out(2).mp4"
    assert "New file will be saved as" in result.output


def test_fetch_accepted_overwrite_keeps_name(tmp_path: Path, captured: dict[str, object]) -> None:
    output = tmp_path / "out.mp4"
    output.write_bytes(b"existing")

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(output)], input="y\n")

    assert result.exit_code == 0
    assert captured["request"].output_path == output


def test_fetch_yes_flag_skips_prompt(tmp_path: Path, captured: dict[str, object]) -> None:
    output = tmp_path / "out.mp4"
    output.write_bytes(b"existing")

    result = CliRunner().invoke(cli.app, ["fetch", "abc123def45", str(output), "--yes"])

    assert result.exit_code == 0
    assert captured["request"].output_path == output
    assert "Overwrite?" not in result.output


def test_unique_file_name_counts_up(tmp_path: Path) -> None:
    target = tmp_path / "video.mp4"
    assert cli.unique_file_name(target) == tmp_path / "video(1).mp4"


def test_progress_printer_skips_repeated_percentages(capsys: pytest.CaptureFixture[str]) -> None:
    printer = cli._ProgressPrinter()

    printer("Downloading", 0.101)
    printer("Downloading", 0.104)
    printer("Downloading", 1.0)

    err = capsys.readouterr().err
    assert err.count("Downloading... 10%") == 1
    assert "Downloading... 100%" in err


def test_config_show_prints_resolved_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda _: Settings())

    result = CliRunner().invoke(cli.app, ["config", "show"])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["tools"]["ffmpeg_path"] == "ffmpeg"
