from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Callable, Sequence

from clipfetch.models import ProcessResult

logger = logging.getLogger(__name__)

MISSING_EXECUTABLE_RETURNCODE = 127
STDERR_TAIL_LINES = 5

ToolRunner = Callable[[str, Sequence[str]], ProcessResult]


def run_tool(tool_path: str, arguments: Sequence[str]) -> ProcessResult:
    """Run an external tool to completion and report its exit status.

    stdout and stderr are drained concurrently with the wait so a tool that
    writes heavily to either pipe cannot block on a full buffer. A non-zero
    exit is returned, not raised.
    """

    command = [tool_path, *arguments]
    logger.debug("Running: %s", shlex.join(command))

    try:
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        logger.warning("%s executable was not found.", tool_path)
        return ProcessResult(
            returncode=MISSING_EXECUTABLE_RETURNCODE,
            stderr=f"{tool_path} executable was not found.",
        )

    stdout, stderr = process.communicate()
    result = ProcessResult(returncode=process.returncode, stdout=stdout or "", stderr=stderr or "")

    if not result.success:
        logger.warning(
            "%s exited with code %s: %s",
            tool_path,
            result.returncode,
            _stderr_tail(result.stderr),
        )
    return result


def probe_tool(tool_path: str) -> bool:
    """Check that the tool starts and answers ``-version`` with exit code 0."""

    try:
        completed = subprocess.run(
            [tool_path, "-version"],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        logger.debug("Availability probe for %s failed: %s", tool_path, exc)
        return False
    return completed.returncode == 0


def _stderr_tail(stderr: str) -> str:
    lines = [line for line in stderr.strip().splitlines() if line.strip()]
    if not lines:
        return "(no stderr output)"
    return " | ".join(lines[-STDERR_TAIL_LINES:])
