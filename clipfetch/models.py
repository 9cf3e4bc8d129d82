from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Union


class StreamKind(str, Enum):
    MUXED = "muxed"
    VIDEO = "video"
    AUDIO = "audio"


class FailureKind(str, Enum):
    """Distinguishable failure kinds the pipeline dispatches on."""

    TOOL_UNAVAILABLE = "tool_unavailable"
    NO_SUITABLE_STREAM = "no_suitable_stream"
    INVALID_TIME_FORMAT = "invalid_time_format"
    INVALID_TRIM_WINDOW = "invalid_trim_window"
    DOWNLOAD_FAILURE = "download_failure"
    CANCELLED = "cancelled"
    MERGE_FAILURE = "merge_failure"
    TRIM_FAILURE = "trim_failure"
    INVALID_OUTPUT_PATH = "invalid_output_path"


class DownloadStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class StreamCandidate:
    """One downloadable stream as advertised by the manifest provider.

    ``quality`` is the pixel height for muxed/video streams and the bitrate
    in kbps for audio streams.
    """

    kind: StreamKind
    container: str
    quality: float
    label: str = ""
    format_id: str = ""
    source_url: str = ""


@dataclass(frozen=True, slots=True)
class MuxedSelection:
    muxed: StreamCandidate


@dataclass(frozen=True, slots=True)
class SplitSelection:
    video: StreamCandidate
    audio: StreamCandidate


SelectionResult = Union[MuxedSelection, SplitSelection]


@dataclass(frozen=True, slots=True)
class MergePlan:
    video_path: Path
    audio_path: Path
    output_path: Path
    audio_transcode: bool


@dataclass(frozen=True, slots=True)
class TrimWindow:
    """Normalized ``HH:MM:SS`` cut points, ``start`` strictly before ``end``."""

    start: str
    end: str

    @property
    def start_delta(self) -> timedelta:
        return to_timedelta(self.start)

    @property
    def end_delta(self) -> timedelta:
        return to_timedelta(self.end)


@dataclass(frozen=True, slots=True)
class ProcessResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


@dataclass(frozen=True, slots=True)
class DownloadResult:
    status: DownloadStatus
    message: str | None = None


@dataclass(slots=True)
class VideoHandle:
    """Resolved remote video plus the raw format list it advertised."""

    video_id: str
    title: str
    url: str
    formats: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PipelineOutcome:
    """Terminal result of one pipeline run."""

    ok: bool
    output_path: Path | None = None
    failure: FailureKind | None = None
    message: str = ""
    warning: str | None = None
    trimmed: bool = False
    merge_plan: MergePlan | None = None

    @classmethod
    def failed(cls, kind: FailureKind, message: str) -> PipelineOutcome:
        return cls(ok=False, failure=kind, message=message)


def to_timedelta(normalized: str) -> timedelta:
    hours, minutes, seconds = (int(part) for part in normalized.split(":"))
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)
