from __future__ import annotations

from typing import Callable, Iterable

from clipfetch.models import MuxedSelection, SelectionResult, SplitSelection, StreamCandidate, StreamKind

PREFERRED_CONTAINER = "mp4"
COMPATIBLE_AUDIO_CONTAINERS = frozenset({"mp4", "m4a"})


def select_streams(candidates: list[StreamCandidate]) -> SelectionResult | None:
    """Pick a muxed mp4 stream, or the best split video/audio pair.

    Steps, in order:
    1) best muxed mp4 by height
    2) best mp4 video-only by height
    3) best mp4/m4a audio by bitrate, falling back to any audio container

    Returns ``None`` when no muxed stream exists and either half of the
    split pair is missing.
    """

    muxed = _pick_best(
        _filter(candidates, lambda c: c.kind is StreamKind.MUXED and c.container == PREFERRED_CONTAINER)
    )
    if muxed is not None:
        return MuxedSelection(muxed=muxed)

    video = _pick_best(
        _filter(candidates, lambda c: c.kind is StreamKind.VIDEO and c.container == PREFERRED_CONTAINER)
    )
    audio = _pick_best(
        _filter(
            candidates,
            lambda c: c.kind is StreamKind.AUDIO and c.container in COMPATIBLE_AUDIO_CONTAINERS,
        )
    )
    if audio is None:
        audio = _pick_best(_filter(candidates, lambda c: c.kind is StreamKind.AUDIO))

    if video is None or audio is None:
        return None
    return SplitSelection(video=video, audio=audio)


def _filter(
    candidates: Iterable[StreamCandidate],
    predicate: Callable[[StreamCandidate], bool],
) -> list[StreamCandidate]:
    return [candidate for candidate in candidates if predicate(candidate)]


def _pick_best(candidates: list[StreamCandidate]) -> StreamCandidate | None:
    # strict comparison keeps the earliest candidate on ties (provider order)
    best: StreamCandidate | None = None
    for candidate in candidates:
        if best is None or candidate.quality > best.quality:
            best = candidate
    return best
