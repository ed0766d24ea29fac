from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from reportlab.lib.units import mm

from brandguard.adapters.media import MediaFetchConfig, MediaFetcher
from brandguard.adapters.video import OpenCVDecodeSurface
from brandguard.config import Settings, get_settings
from brandguard.errors import RenderNotAllowed
from brandguard.lifecycle import can_render
from brandguard.report.blocks import ReportDocument, compose_report
from brandguard.report.doc_export import render_word_document
from brandguard.report.evidence import EvidenceCache, EvidenceResolver
from brandguard.report.frames import VideoFrameSource
from brandguard.report.paginator import LayoutStyle, Margins, RenderedPage, layout_document
from brandguard.report.pdf_export import render_pdf
from brandguard.storage import write_bytes_atomic
from brandguard.types import Report, SourceKind, Submission


logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = 'application/pdf'
WORD_MEDIA_TYPE = 'application/msword'


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    content: bytes
    media_type: str


def report_filename(product_name: str, submission_id: str, extension: str) -> str:
    return f'{product_name}-Report-{submission_id}.{extension}'


def layout_style_from_settings(settings: Settings) -> LayoutStyle:
    return LayoutStyle(
        margins=Margins.uniform(settings.pdf_page_margin_mm * mm),
        font_name=settings.pdf_font_name,
        title_font_size=settings.pdf_title_font_size,
        body_font_size=settings.pdf_body_font_size,
        evidence_frame_width=settings.evidence_frame_width_mm * mm,
        evidence_frame_height=settings.evidence_frame_height_mm * mm,
    )


class ExportSession:
    """One export invocation context.

    Holds a single evidence resolver and cache, so the base image is fetched
    once and both backends render from the same resolved evidence.
    """

    def __init__(
        self,
        submission: Submission,
        *,
        settings: Settings | None = None,
        fetcher: MediaFetcher | None = None,
        frame_source: VideoFrameSource | None = None,
        cache: EvidenceCache | None = None,
    ):
        if not can_render(submission):
            raise RenderNotAllowed(
                f'submission {submission.id} is not renderable (status={submission.status.value}, '
                f'report={"attached" if submission.report is not None else "missing"})'
            )
        self.submission = submission
        self.report: Report = submission.report
        self.settings = settings or get_settings()
        self.resolver = EvidenceResolver(
            fetcher=fetcher or MediaFetcher(MediaFetchConfig(timeout_seconds=self.settings.image_fetch_timeout_seconds)),
            frame_source=frame_source,
            video_hosts=self.settings.video_hosts(),
            cache=cache,
        )

    @property
    def cache(self) -> EvidenceCache:
        return self.resolver.cache

    @property
    def title(self) -> str:
        return self.settings.report_title

    async def compose(self, *, generated_at: datetime, with_source_image: bool = False) -> ReportDocument:
        return await compose_report(
            self.submission,
            self.report,
            self.resolver,
            title=self.title,
            generated_at=generated_at,
            title_max_chars=self.settings.summary_title_max_chars,
            with_source_image=with_source_image,
        )

    async def paginate(self, *, generated_at: datetime) -> list[RenderedPage]:
        document = await self.compose(generated_at=generated_at)
        return layout_document(document, layout_style_from_settings(self.settings))

    async def export_pdf(self, *, generated_at: datetime | None = None) -> ExportArtifact:
        generated_at = generated_at or datetime.now(timezone.utc)
        style = layout_style_from_settings(self.settings)
        document = await self.compose(generated_at=generated_at)
        pages = layout_document(document, style)
        content = render_pdf(
            pages,
            style=style,
            title=self.title,
            product_name=self.settings.product_name,
            submission_id=self.submission.id,
            generated_at=generated_at,
        )
        logger.info('Rendered PDF report for submission %s: %d pages', self.submission.id, len(pages))
        return ExportArtifact(
            filename=report_filename(self.settings.product_name, self.submission.id, 'pdf'),
            content=content,
            media_type=PDF_MEDIA_TYPE,
        )

    async def export_doc(self, *, generated_at: datetime | None = None) -> ExportArtifact:
        generated_at = generated_at or datetime.now(timezone.utc)
        document = await self.compose(generated_at=generated_at, with_source_image=True)
        content = render_word_document(document, title=self.title)
        logger.info('Rendered Word report for submission %s', self.submission.id)
        return ExportArtifact(
            filename=report_filename(self.settings.product_name, self.submission.id, 'doc'),
            content=content,
            media_type=WORD_MEDIA_TYPE,
        )


async def export_submission(
    submission: Submission,
    *,
    formats: Iterable[str] = ('pdf',),
    output_dir: Path | None = None,
    settings: Settings | None = None,
    generated_at: datetime | None = None,
) -> list[ExportArtifact]:
    """Export ``submission`` in each requested format, opening at most one decode surface."""
    settings = settings or get_settings()
    wanted = [str(item).strip().lower() for item in formats]
    unknown = [item for item in wanted if item not in {'pdf', 'doc'}]
    if unknown:
        raise ValueError(f'unsupported export format(s): {", ".join(unknown)}')

    artifacts: list[ExportArtifact] = []
    with ExitStack() as stack:
        frame_source = None
        if submission.source_kind == SourceKind.video:
            surface = stack.enter_context(OpenCVDecodeSurface(submission.source_locator))
            frame_source = VideoFrameSource(
                surface,
                timeout_seconds=settings.frame_capture_timeout_seconds,
                jpeg_quality=settings.frame_jpeg_quality,
            )
        session = ExportSession(submission, settings=settings, frame_source=frame_source)
        for fmt in wanted:
            if fmt == 'pdf':
                artifacts.append(await session.export_pdf(generated_at=generated_at))
            else:
                artifacts.append(await session.export_doc(generated_at=generated_at))

    if output_dir is not None:
        for artifact in artifacts:
            write_bytes_atomic(Path(output_dir) / artifact.filename, artifact.content)
    return artifacts
