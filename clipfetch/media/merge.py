from __future__ import annotations

from pathlib import Path

from clipfetch.media.selector import COMPATIBLE_AUDIO_CONTAINERS
from clipfetch.models import MergePlan, SplitSelection

TRANSCODE_AUDIO_CODEC = "aac"
TRANSCODE_AUDIO_BITRATE = "192k"


def needs_audio_transcode(audio_container: str) -> bool:
    """Audio outside mp4/m4a cannot be stream-copied into an mp4 container."""

    return audio_container.lower() not in COMPATIBLE_AUDIO_CONTAINERS


def build_merge_plan(
    selection: SplitSelection,
    *,
    video_path: str | Path,
    audio_path: str | Path,
    output_path: str | Path,
) -> MergePlan:
    """Build the merge plan for a split selection from container compatibility alone."""

    return MergePlan(
        video_path=Path(video_path),
        audio_path=Path(audio_path),
        output_path=Path(output_path),
        audio_transcode=needs_audio_transcode(selection.audio.container),
    )


def merge_arguments(plan: MergePlan) -> list[str]:
    """Generate the ffmpeg argument vector (without the executable) for a merge plan."""

    arguments = [
        "-i",
        str(plan.video_path),
        "-i",
        str(plan.audio_path),
        "-c:v",
        "copy",
    ]
    if plan.audio_transcode:
        arguments += [
            "-c:a",
            TRANSCODE_AUDIO_CODEC,
            "-b:a",
            TRANSCODE_AUDIO_BITRATE,
            "-async",
            "1",
            "-vsync",
            "1",
        ]
    else:
        arguments += ["-c:a", "copy"]

    arguments += ["-y", str(plan.output_path)]
    return arguments
