from __future__ import annotations

import subprocess
import sys

import pytest

from clipfetch.media.process import MISSING_EXECUTABLE_RETURNCODE, probe_tool, run_tool


def test_run_tool_drains_large_stdout_and_stderr() -> None:
    script = (
        "import sys\n"
        "for _ in range(200):\n"
        "    sys.stdout.write('o' * 5000)\n"
        "    sys.stderr.write('e' * 5000)\n"
    )

    result = run_tool(sys.executable, ["-c", script])

    assert result.success
    assert len(result.stdout) == 1_000_000
    assert len(result.stderr) == 1_000_000


def test_run_tool_reports_non_zero_exit_without_raising() -> None:
    result = run_tool(sys.executable, ["-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])

    assert not result.success
    assert result.returncode == 3
    assert result.stderr == "boom"


def test_run_tool_reports_missing_executable(tmp_path) -> None:
    result = run_tool(str(tmp_path / "no-such-ffmpeg"), ["-version"])

    assert not result.success
    assert result.returncode == MISSING_EXECUTABLE_RETURNCODE


def test_probe_tool_requires_zero_exit() -> None:
    calls: list[list[str]] = []

    def _fake_run(command: list[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        calls.append(command)
        return subprocess.CompletedProcess(command, 1, "", "")

    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(subprocess, "run", _fake_run)
        assert probe_tool("/opt/ffmpeg/bin/ffmpeg") is False

    assert calls == [["/opt/ffmpeg/bin/ffmpeg", "-version"]]


def test_probe_tool_accepts_working_tool() -> None:
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(
            subprocess,
            "run",
            lambda command, **_: subprocess.CompletedProcess(command, 0, "ffmpeg version 6.1", ""),
        )
        assert probe_tool("ffmpeg") is True


def test_probe_tool_returns_false_for_missing_binary(tmp_path) -> None:
    assert probe_tool(str(tmp_path / "missing-ffmpeg")) is False
