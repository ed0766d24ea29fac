from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union

from brandguard.adapters.media import MediaFetcher, locator_host
from brandguard.errors import FrameCaptureError, MediaFetchError, UnsupportedSourceError
from brandguard.report.frames import VideoFrameSource
from brandguard.types import Issue, SourceKind, Submission


logger = logging.getLogger(__name__)


class FallbackReason(str, Enum):
    no_evidence = 'NO_EVIDENCE'
    fetch_error = 'FETCH_ERROR'
    capture_forbidden = 'CAPTURE_FORBIDDEN'
    no_timestamp = 'NO_TIMESTAMP'
    unsupported_host = 'UNSUPPORTED_HOST'
    generic_external = 'GENERIC_EXTERNAL'


FALLBACK_MESSAGES: dict[FallbackReason, str] = {
    FallbackReason.no_evidence: '(No visual evidence was attached to this issue.)',
    FallbackReason.fetch_error: '(Source image could not be loaded. Visual evidence unavailable.)',
    FallbackReason.capture_forbidden: (
        '(Frame capture is not permitted for this video source. Please refer to the timestamp.)'
    ),
    FallbackReason.no_timestamp: '(No timestamp was provided for this video issue, so no frame was captured.)',
    FallbackReason.unsupported_host: '(Screenshots unavailable for this host. Please refer to the timestamp.)',
    FallbackReason.generic_external: '(Visual evidence not available for external URLs.)',
}


@dataclass(frozen=True)
class EvidenceImage:
    data: bytes
    width: int
    height: int
    mime_type: str
    captured_at_seconds: float | None = None


@dataclass(frozen=True)
class Fallback:
    reason: FallbackReason
    detail: str | None = None

    @property
    def message(self) -> str:
        return FALLBACK_MESSAGES[self.reason]


Resolution = Union[EvidenceImage, Fallback]


def is_video_host(host: str, video_hosts: Iterable[str]) -> bool:
    host = (host or '').lower()
    if not host:
        return False
    for domain in video_hosts:
        if host == domain or host.endswith('.' + domain):
            return True
    return False


class EvidenceCache:
    """Per-session memo of resolved evidence, keyed by issue id."""

    def __init__(self) -> None:
        self._by_issue: dict[str, Resolution] = {}
        self._base_images: dict[str, Resolution] = {}

    def get(self, issue_id: str) -> Resolution | None:
        return self._by_issue.get(issue_id)

    def put(self, issue_id: str, resolution: Resolution) -> None:
        self._by_issue[issue_id] = resolution

    def base_image(self, locator: str) -> Resolution | None:
        return self._base_images.get(locator)

    def put_base_image(self, locator: str, resolution: Resolution) -> None:
        self._base_images[locator] = resolution

    def __contains__(self, issue_id: object) -> bool:
        return issue_id in self._by_issue

    def __len__(self) -> int:
        return len(self._by_issue)


class EvidenceResolver:
    def __init__(
        self,
        *,
        fetcher: MediaFetcher,
        frame_source: VideoFrameSource | None = None,
        video_hosts: Iterable[str] = (),
        cache: EvidenceCache | None = None,
    ):
        self.fetcher = fetcher
        self.frame_source = frame_source
        self.video_hosts = [str(item).lower() for item in video_hosts]
        self.cache = cache if cache is not None else EvidenceCache()

    def check_capturable(self, submission: Submission) -> None:
        if submission.source_kind != SourceKind.external_url:
            return
        host = locator_host(submission.source_locator)
        video_host = is_video_host(host, self.video_hosts)
        raise UnsupportedSourceError(
            f'no pixel capture for external source {host or submission.source_locator}',
            host=host or None,
            video_host=video_host,
        )

    async def resolve(self, submission: Submission, issue: Issue) -> Resolution:
        cached = self.cache.get(issue.issue_id)
        if cached is not None:
            return cached
        resolution = await self._resolve_uncached(submission, issue)
        self.cache.put(issue.issue_id, resolution)
        return resolution

    async def base_image(self, submission: Submission) -> Resolution:
        """The submission's source image, fetched at most once per session."""
        locator = submission.source_locator
        cached = self.cache.base_image(locator)
        if cached is not None:
            return cached
        try:
            decoded = await self.fetcher.fetch_image(locator)
        except MediaFetchError as exc:
            logger.warning('Evidence image fetch failed for submission %s: %s', submission.id, exc)
            resolution: Resolution = Fallback(FallbackReason.fetch_error, detail=str(exc))
        else:
            resolution = EvidenceImage(
                data=decoded.data,
                width=decoded.width,
                height=decoded.height,
                mime_type=decoded.mime_type,
            )
        self.cache.put_base_image(locator, resolution)
        return resolution

    async def _resolve_uncached(self, submission: Submission, issue: Issue) -> Resolution:
        try:
            self.check_capturable(submission)
        except UnsupportedSourceError as exc:
            logger.debug('Issue %s uses fallback evidence: %s', issue.issue_id, exc)
            reason = FallbackReason.unsupported_host if exc.video_host else FallbackReason.generic_external
            return Fallback(reason, detail=exc.host)

        evidence = issue.evidence
        if evidence is None:
            return Fallback(FallbackReason.no_evidence)

        if submission.source_kind == SourceKind.image:
            return await self.base_image(submission)

        if evidence.timestamp_range is None:
            return Fallback(FallbackReason.no_timestamp)
        return await self._capture(submission, issue, evidence.timestamp_range.start_seconds)

    async def _capture(self, submission: Submission, issue: Issue, seconds: float) -> Resolution:
        if self.frame_source is None:
            logger.warning('No decode surface for video submission %s; issue %s falls back', submission.id, issue.issue_id)
            return Fallback(FallbackReason.capture_forbidden, detail='no decode surface')
        try:
            # Restoration runs inside the worker thread, so it completes even if
            # this await is cancelled.
            frame = await asyncio.to_thread(self.frame_source.capture_frame, seconds)
        except FrameCaptureError as exc:
            logger.warning('Frame capture failed for issue %s at %.3fs: %s', issue.issue_id, seconds, exc)
            detail = 'timeout' if exc.timed_out else str(exc)
            return Fallback(FallbackReason.capture_forbidden, detail=detail)
        return EvidenceImage(
            data=frame.data,
            width=frame.width,
            height=frame.height,
            mime_type=frame.mime_type,
            captured_at_seconds=frame.seconds,
        )
