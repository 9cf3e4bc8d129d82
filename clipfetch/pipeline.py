from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Protocol

from clipfetch.cancellation import CancelToken
from clipfetch.media.merge import build_merge_plan, merge_arguments
from clipfetch.media.process import probe_tool, run_tool
from clipfetch.media.selector import select_streams
from clipfetch.media.trim import apply_trim, plan_trim
from clipfetch.models import (
    DownloadResult,
    DownloadStatus,
    FailureKind,
    MuxedSelection,
    PipelineOutcome,
    SplitSelection,
    StreamCandidate,
    VideoHandle,
)
from clipfetch.source.youtube import SourceError

logger = logging.getLogger(__name__)

TEMP_VIDEO_NAME = "temp_video.mp4"
TEMP_AUDIO_STEM = "temp_audio"
DOWNLOAD_LEFTOVER_SUFFIXES = (".part", ".ytdl")

ProgressReporter = Callable[[str, float], None]


class StreamSource(Protocol):
    def resolve(self, url_or_id: str) -> VideoHandle: ...

    def list_streams(self, handle: VideoHandle) -> list[StreamCandidate]: ...

    def download(
        self,
        candidate: StreamCandidate,
        destination: str | Path,
        on_progress: Callable[[float], None] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DownloadResult: ...


@dataclass(frozen=True, slots=True)
class FetchRequest:
    url: str
    output_path: Path
    raw_start: str | None = None
    raw_end: str | None = None


def run_pipeline(
    request: FetchRequest,
    *,
    source: StreamSource,
    tool_path: str = "ffmpeg",
    temp_dir: str | Path = ".",
    cancel_token: CancelToken | None = None,
    on_progress: ProgressReporter | None = None,
) -> PipelineOutcome:
    """Fetch, assemble, and optionally trim one video into ``request.output_path``.

    Order: probe tool -> validate trim window -> resolve streams -> select ->
    download (muxed, or video then audio) -> merge -> trim. Temporary files
    are removed on every exit path.
    """

    cancel_token = cancel_token or CancelToken()
    output_path = Path(request.output_path)

    if not probe_tool(tool_path):
        return PipelineOutcome.failed(
            FailureKind.TOOL_UNAVAILABLE,
            f"'{tool_path}' is not installed or not found in your PATH.",
        )

    trim_plan = plan_trim(request.raw_start, request.raw_end)
    if trim_plan.failure is not None:
        return PipelineOutcome.failed(trim_plan.failure, trim_plan.message)

    try:
        handle = source.resolve(request.url)
        candidates = source.list_streams(handle)
    except SourceError as exc:
        return PipelineOutcome.failed(FailureKind.DOWNLOAD_FAILURE, str(exc))

    selection = select_streams(candidates)
    if selection is None:
        return PipelineOutcome.failed(
            FailureKind.NO_SUITABLE_STREAM,
            "Could not find suitable video or audio streams.",
        )

    if isinstance(selection, SplitSelection):
        video_path = Path(temp_dir) / TEMP_VIDEO_NAME
        audio_path = Path(temp_dir) / f"{TEMP_AUDIO_STEM}.{selection.audio.container}"
        if output_path.resolve() in {video_path.resolve(), audio_path.resolve()}:
            return PipelineOutcome.failed(
                FailureKind.INVALID_OUTPUT_PATH,
                f"Output path {output_path} is reserved for a temporary download; choose another name.",
            )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    intermediates: list[Path] = []
    try:
        if isinstance(selection, MuxedSelection):
            logger.info("Downloading (muxed): %s", handle.title)
            intermediates += _leftovers(output_path)
            outcome = _download_muxed(selection, output_path, source, cancel_token, on_progress)
        else:
            logger.info("No muxed stream found. Falling back to separate video/audio streams.")
            for path in (video_path, audio_path):
                intermediates += [path, *_leftovers(path)]
            outcome = _download_and_merge(
                selection,
                video_path=video_path,
                audio_path=audio_path,
                output_path=output_path,
                intermediates=intermediates,
                source=source,
                tool_path=tool_path,
                cancel_token=cancel_token,
                on_progress=on_progress,
            )
    finally:
        _remove_files(intermediates)

    if not outcome.ok or trim_plan.window is None:
        return outcome

    trim_result = apply_trim(trim_plan.window, output_path, tool_path=tool_path, runner=run_tool)
    if not trim_result.success:
        logger.warning(trim_result.message)
        return replace(outcome, warning=trim_result.message)

    return replace(
        outcome,
        trimmed=True,
        message=f"Trimmed video saved as: {output_path}",
    )


def _download_muxed(
    selection: MuxedSelection,
    output_path: Path,
    source: StreamSource,
    cancel_token: CancelToken,
    on_progress: ProgressReporter | None,
) -> PipelineOutcome:
    failure = _download(source, selection.muxed, output_path, "Downloading", cancel_token, on_progress)
    if failure is not None:
        return failure

    logger.info("Download complete.")
    return PipelineOutcome(ok=True, output_path=output_path, message=f"Final video saved as: {output_path}")


def _download_and_merge(
    selection: SplitSelection,
    *,
    video_path: Path,
    audio_path: Path,
    output_path: Path,
    intermediates: list[Path],
    source: StreamSource,
    tool_path: str,
    cancel_token: CancelToken,
    on_progress: ProgressReporter | None,
) -> PipelineOutcome:
    video_label = f"Downloading video ({selection.video.label})"
    failure = _download(source, selection.video, video_path, video_label, cancel_token, on_progress)
    if failure is not None:
        return failure
    logger.info("Video download complete.")

    audio_label = f"Downloading audio ({selection.audio.label})"
    failure = _download(source, selection.audio, audio_path, audio_label, cancel_token, on_progress)
    if failure is not None:
        return failure
    logger.info("Audio download complete.")

    if cancel_token.cancelled:
        return PipelineOutcome.failed(FailureKind.CANCELLED, "Download cancelled.")

    plan = build_merge_plan(selection, video_path=video_path, audio_path=audio_path, output_path=output_path)
    logger.info(
        "Merging video and audio with %s (%s audio)...",
        tool_path,
        "transcoded" if plan.audio_transcode else "copied",
    )
    result = run_tool(tool_path, merge_arguments(plan))

    # intermediates go as soon as the merge has been attempted
    _remove_files(intermediates)

    if not result.success:
        return PipelineOutcome.failed(FailureKind.MERGE_FAILURE, "Failed to merge video and audio.")

    return PipelineOutcome(
        ok=True,
        output_path=output_path,
        message=f"Final video saved as: {output_path}",
        merge_plan=plan,
    )


def _download(
    source: StreamSource,
    candidate: StreamCandidate,
    destination: Path,
    label: str,
    cancel_token: CancelToken,
    on_progress: ProgressReporter | None,
) -> PipelineOutcome | None:
    if cancel_token.cancelled:
        return PipelineOutcome.failed(FailureKind.CANCELLED, "Download cancelled.")

    def report(fraction: float) -> None:
        if on_progress is not None:
            on_progress(label, fraction)

    result = source.download(candidate, destination, on_progress=report, cancel_token=cancel_token)
    if result.status is DownloadStatus.CANCELLED:
        return PipelineOutcome.failed(FailureKind.CANCELLED, "Download cancelled.")
    if result.status is DownloadStatus.FAILED:
        return PipelineOutcome.failed(
            FailureKind.DOWNLOAD_FAILURE,
            f"Could not download the video: {result.message or 'unknown error'}",
        )
    return None


def _leftovers(path: Path) -> list[Path]:
    return [path.with_name(path.name + suffix) for suffix in DOWNLOAD_LEFTOVER_SUFFIXES]


def _remove_files(paths: list[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove temporary file %s (%s)", path, exc)
