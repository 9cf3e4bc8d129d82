from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable

import yt_dlp
from yt_dlp.utils import DownloadCancelled, YoutubeDLError

from clipfetch.cancellation import CancelToken
from clipfetch.config import DEFAULT_USER_AGENT
from clipfetch.models import (
    DownloadResult,
    DownloadStatus,
    StreamCandidate,
    StreamKind,
    VideoHandle,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

_VIDEO_ID = re.compile(r"^[0-9A-Za-z_-]{11}$")
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
SKIPPED_EXTENSIONS = {"mhtml"}


class SourceError(RuntimeError):
    """Raised when the remote service cannot resolve a video or its streams."""


class YouTubeSource:
    def __init__(self, user_agent: str = DEFAULT_USER_AGENT) -> None:
        self.user_agent = user_agent

    def resolve(self, url_or_id: str) -> VideoHandle:
        """Fetch video metadata and the raw format list without downloading."""

        url = normalize_video_url(url_or_id)
        try:
            with yt_dlp.YoutubeDL(self._base_options()) as ydl:
                info = ydl.extract_info(url, download=False)
        except YoutubeDLError as exc:
            raise SourceError(f"Could not resolve video {url_or_id!r}: {exc}") from exc

        if not isinstance(info, dict):
            raise SourceError(f"Could not resolve video {url_or_id!r}: empty metadata.")
        if info.get("_type") == "playlist":
            raise SourceError(f"{url_or_id!r} is a playlist; pass a single video URL.")

        return VideoHandle(
            video_id=str(info.get("id") or url_or_id),
            title=str(info.get("title") or ""),
            url=str(info.get("webpage_url") or url),
            formats=list(info.get("formats") or []),
        )

    def list_streams(self, handle: VideoHandle) -> list[StreamCandidate]:
        candidates = [
            candidate
            for candidate in (candidate_from_format(fmt, source_url=handle.url) for fmt in handle.formats)
            if candidate is not None
        ]
        logger.debug("Resolved %d stream candidates for %s", len(candidates), handle.video_id)
        return candidates

    def download(
        self,
        candidate: StreamCandidate,
        destination: str | Path,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DownloadResult:
        """Download one stream to ``destination``.

        Cancellation is observed from the progress hook, so an in-flight
        download stops at its next progress report.
        """

        destination = Path(destination)
        if cancel_token is not None and cancel_token.cancelled:
            return DownloadResult(status=DownloadStatus.CANCELLED, message="Download cancelled.")

        destination.parent.mkdir(parents=True, exist_ok=True)

        def progress_hook(status: dict[str, Any]) -> None:
            # a finished file is already in place, so only in-flight transfers stop
            if status.get("status") == "downloading" and cancel_token is not None and cancel_token.cancelled:
                raise DownloadCancelled("Download cancelled.")
            if on_progress is None:
                return
            fraction = _progress_fraction(status)
            if fraction is not None:
                on_progress(fraction)

        options = {
            **self._base_options(),
            "format": candidate.format_id,
            # yt-dlp expands %-templates in outtmpl
            "outtmpl": str(destination).replace("%", "%%"),
            "overwrites": True,
            "noplaylist": True,
            "noprogress": True,
            "progress_hooks": [progress_hook],
        }

        logger.debug("Downloading format %s to %s", candidate.format_id, destination)
        try:
            with yt_dlp.YoutubeDL(options) as ydl:
                ydl.download([candidate.source_url])
        except DownloadCancelled:
            return DownloadResult(status=DownloadStatus.CANCELLED, message="Download cancelled.")
        except (YoutubeDLError, OSError) as exc:
            return DownloadResult(status=DownloadStatus.FAILED, message=str(exc))

        if not destination.exists():
            return DownloadResult(
                status=DownloadStatus.FAILED,
                message=f"Download finished but {destination} was not written.",
            )
        return DownloadResult(status=DownloadStatus.COMPLETED)

    def _base_options(self) -> dict[str, Any]:
        return {
            "quiet": True,
            "no_warnings": True,
            "http_headers": {"User-Agent": self.user_agent},
        }


def normalize_video_url(url_or_id: str) -> str:
    value = url_or_id.strip()
    if _VIDEO_ID.match(value):
        return WATCH_URL.format(video_id=value)
    return value


def candidate_from_format(fmt: dict[str, Any], *, source_url: str = "") -> StreamCandidate | None:
    """Map one yt-dlp format dict onto a candidate, or ``None`` for unusable entries."""

    container = str(fmt.get("ext") or "").lower()
    if not container or container in SKIPPED_EXTENSIONS:
        return None

    has_video = _has_codec(fmt.get("vcodec"))
    has_audio = _has_codec(fmt.get("acodec"))

    if has_video:
        height = _to_float(fmt.get("height"))
        kind = StreamKind.MUXED if has_audio else StreamKind.VIDEO
        return StreamCandidate(
            kind=kind,
            container=container,
            quality=height,
            label=str(fmt.get("format_note") or (f"{int(height)}p" if height else "unknown")),
            format_id=str(fmt.get("format_id") or ""),
            source_url=source_url,
        )

    if has_audio:
        bitrate = _to_float(fmt.get("abr")) or _to_float(fmt.get("tbr"))
        return StreamCandidate(
            kind=StreamKind.AUDIO,
            container=container,
            quality=bitrate,
            label=f"{round(bitrate)} kbps, {container}",
            format_id=str(fmt.get("format_id") or ""),
            source_url=source_url,
        )

    return None


def _has_codec(raw_codec: Any) -> bool:
    return raw_codec not in (None, "", "none")


def _to_float(raw_value: Any) -> float:
    if raw_value in (None, "N/A", ""):
        return 0.0
    return float(raw_value)


def _progress_fraction(status: dict[str, Any]) -> float | None:
    if status.get("status") == "finished":
        return 1.0
    if status.get("status") != "downloading":
        return None

    total = status.get("total_bytes") or status.get("total_bytes_estimate")
    downloaded = status.get("downloaded_bytes")
    if not total or downloaded is None:
        return None
    return max(0.0, min(1.0, float(downloaded) / float(total)))
