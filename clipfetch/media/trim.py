from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from clipfetch.media.process import ToolRunner, run_tool
from clipfetch.models import FailureKind, TrimWindow

logger = logging.getLogger(__name__)

_MINUTES_SECONDS = re.compile(r"^(\d+):(\d+)$")
_HOURS_MINUTES_SECONDS = re.compile(r"^(\d+):(\d+):(\d+)$")
TRIMMED_SUFFIX = "_trimmed"
TRIMMED_EXTENSION = ".mp4"


@dataclass(frozen=True, slots=True)
class TrimPlan:
    """Outcome of trim planning: a window, a fatal failure, or neither (skip)."""

    window: TrimWindow | None = None
    failure: FailureKind | None = None
    message: str = ""

    @property
    def requested(self) -> bool:
        return self.window is not None


@dataclass(frozen=True, slots=True)
class TrimResult:
    success: bool
    output_path: Path
    failure: FailureKind | None = None
    message: str = ""


def normalize_time(raw: str | None) -> str | None:
    """Normalize ``MM:SS`` / ``HH:MM:SS`` into zero-padded ``HH:MM:SS``.

    Blank input is treated as absent. Any other shape, or a minute/second
    component above 59, is logged as an invalid time format and also treated
    as absent.
    """

    if raw is None or not raw.strip():
        return None

    value = raw.strip()
    match = _MINUTES_SECONDS.match(value)
    if match:
        parts = ["0", match.group(1), match.group(2)]
    else:
        match = _HOURS_MINUTES_SECONDS.match(value)
        if not match:
            _warn_invalid(raw)
            return None
        parts = list(match.groups())

    if int(parts[1]) > 59 or int(parts[2]) > 59:
        _warn_invalid(raw)
        return None

    return ":".join(part.zfill(2) for part in parts)


def plan_trim(raw_start: str | None, raw_end: str | None) -> TrimPlan:
    """Validate a requested window. Trimming needs both sides and ``start < end``."""

    start = normalize_time(raw_start)
    end = normalize_time(raw_end)
    if start is None or end is None:
        return TrimPlan()

    window = TrimWindow(start=start, end=end)
    if window.start_delta >= window.end_delta:
        return TrimPlan(
            failure=FailureKind.INVALID_TRIM_WINDOW,
            message=f"Start time {start} must be before end time {end}.",
        )
    return TrimPlan(window=window)


def trim_arguments(window: TrimWindow, source_path: str | Path, destination_path: str | Path) -> list[str]:
    """Generate the ffmpeg stream-copy cut arguments for a window."""

    return [
        "-ss",
        window.start,
        "-to",
        window.end,
        "-i",
        str(source_path),
        "-c",
        "copy",
        "-avoid_negative_ts",
        "make_zero",
        "-y",
        str(destination_path),
    ]


def trimmed_path_for(output_path: str | Path) -> Path:
    path = Path(output_path)
    return path.with_name(f"{path.stem}{TRIMMED_SUFFIX}{TRIMMED_EXTENSION}")


def apply_trim(
    window: TrimWindow,
    output_path: str | Path,
    *,
    tool_path: str,
    runner: ToolRunner | None = None,
) -> TrimResult:
    """Cut ``output_path`` to the window and swap the result into place.

    The output is replaced only when the tool exits 0 and the trimmed file
    exists. Otherwise the output is left as it was and a trim failure is
    returned.
    """

    runner = runner or run_tool
    target = Path(output_path)
    trimmed_path = trimmed_path_for(target)

    logger.info("Trimming %s from %s to %s", target, window.start, window.end)
    result = runner(tool_path, trim_arguments(window, target, trimmed_path))

    if result.success and trimmed_path.exists():
        try:
            os.replace(trimmed_path, target)
        except OSError as exc:
            reason = f"could not replace output: {exc}"
        else:
            logger.info("Trimmed output saved to %s", target)
            return TrimResult(success=True, output_path=target)
    elif result.success:
        reason = "trimmed file was not created"
    else:
        reason = f"ffmpeg exited with code {result.returncode}"

    trimmed_path.unlink(missing_ok=True)
    return TrimResult(
        success=False,
        output_path=target,
        failure=FailureKind.TRIM_FAILURE,
        message=f"Trimming failed ({reason}); kept untrimmed output {target}.",
    )


def _warn_invalid(raw: str) -> None:
    logger.warning(
        "%s: invalid time format %r. Use MM:SS or HH:MM:SS.",
        FailureKind.INVALID_TIME_FORMAT.value,
        raw,
    )
