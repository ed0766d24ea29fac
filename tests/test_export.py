from __future__ import annotations

import asyncio
import io
import threading
import time

import cv2
import numpy as np
import pytest
from pypdf import PdfReader

from brandguard.adapters.video import OpenCVDecodeSurface, encode_jpeg
from brandguard.errors import FrameCaptureError, RenderNotAllowed
from brandguard.report.doc_export import WORD_BOM
from brandguard.report.evidence import FALLBACK_MESSAGES, FallbackReason
from brandguard.report.exporter import ExportSession, export_submission, report_filename
from brandguard.report.frames import VideoFrameSource
from brandguard.types import SourceKind, SubmissionStatus

from conftest import GENERATED_AT, FakeFetcher, make_issue, make_report, make_submission, png_bytes


def _issues():
    return [
        make_issue('i1', severity='high', evidence={'coordinates': {'x': 0.1, 'y': 0.2, 'w': 0.3, 'h': 0.1}}),
        make_issue('i2', severity='low', title='Caption uses <Comic Sans> & friends'),
    ]


def _pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    return '\n'.join(page.extract_text() or '' for page in reader.pages)


def test_pdf_export_is_deterministic(settings):
    submission = make_submission(report=make_report(_issues()))

    async def run():
        first = await ExportSession(submission, settings=settings, fetcher=FakeFetcher()).export_pdf(
            generated_at=GENERATED_AT
        )
        second = await ExportSession(submission, settings=settings, fetcher=FakeFetcher()).export_pdf(
            generated_at=GENERATED_AT
        )
        return first, second

    first, second = asyncio.run(run())
    assert first.content == second.content
    assert first.content.startswith(b'%PDF')
    assert first.filename == 'BrandGuard-Report-s-test0001.pdf'
    assert first.media_type == 'application/pdf'


def test_pdf_has_summary_plus_one_page_per_issue(settings):
    submission = make_submission(report=make_report(_issues()))
    fetcher = FakeFetcher()
    session = ExportSession(submission, settings=settings, fetcher=fetcher)
    artifact = asyncio.run(session.export_pdf(generated_at=GENERATED_AT))

    reader = PdfReader(io.BytesIO(artifact.content))
    assert len(reader.pages) == 3
    assert reader.metadata.title == 'BrandGuard Compliance Report'
    text = _pdf_text(artifact.content)
    assert 'Issue: Problem i1' in text
    assert 'Page 3 of 3' in text
    assert len(fetcher.calls) == 1


def test_pdf_and_doc_share_one_fetch(settings):
    submission = make_submission(report=make_report(_issues()))
    fetcher = FakeFetcher()
    session = ExportSession(submission, settings=settings, fetcher=fetcher)

    async def run():
        await session.export_pdf(generated_at=GENERATED_AT)
        await session.export_doc(generated_at=GENERATED_AT)

    asyncio.run(run())
    assert len(fetcher.calls) == 1


def test_word_export_structure(settings):
    submission = make_submission(report=make_report(_issues()))
    artifact = asyncio.run(
        ExportSession(submission, settings=settings, fetcher=FakeFetcher()).export_doc(generated_at=GENERATED_AT)
    )
    text = artifact.content.decode('utf-8')

    assert text.startswith(WORD_BOM)
    assert artifact.filename == 'BrandGuard-Report-s-test0001.doc'
    assert "xmlns:w='urn:schemas-microsoft-com:office:word'" in text
    assert 'data:image/png;base64,' in text
    assert text.index('Submission ID: s-test0001') < text.index('Overall Score') < text.index('Detailed Findings')
    assert text.index('[high] Problem i1') < text.index('[low] Caption')
    assert '&lt;Comic Sans&gt; &amp; friends' in text
    assert '<Comic Sans>' not in text


def test_word_export_is_deterministic(settings):
    submission = make_submission(report=make_report(_issues()))

    async def run():
        return [
            await ExportSession(submission, settings=settings, fetcher=FakeFetcher()).export_doc(
                generated_at=GENERATED_AT
            )
            for _ in range(2)
        ]

    first, second = asyncio.run(run())
    assert first.content == second.content


def test_word_export_for_external_url_lists_fallback(settings):
    submission = make_submission(
        kind=SourceKind.external_url,
        locator='https://brand.example.com/page',
        report=make_report(_issues()),
    )
    fetcher = FakeFetcher()
    artifact = asyncio.run(
        ExportSession(submission, settings=settings, fetcher=fetcher).export_doc(generated_at=GENERATED_AT)
    )
    text = artifact.content.decode('utf-8')
    assert FALLBACK_MESSAGES[FallbackReason.generic_external] in text
    assert '<img' not in text
    assert fetcher.calls == []


@pytest.mark.parametrize('status', [SubmissionStatus.pending_review, SubmissionStatus.processing])
def test_non_terminal_submissions_are_not_renderable(settings, status):
    submission = make_submission(report=make_report(_issues()), status=status)
    with pytest.raises(RenderNotAllowed):
        ExportSession(submission, settings=settings, fetcher=FakeFetcher())


def test_submission_without_report_is_not_renderable(settings):
    with pytest.raises(RenderNotAllowed):
        ExportSession(make_submission(report=None), settings=settings, fetcher=FakeFetcher())


def test_export_submission_writes_files(settings, tmp_path):
    source = tmp_path / 'asset.png'
    source.write_bytes(png_bytes(320, 240))
    submission = make_submission(locator=str(source), report=make_report(_issues()))
    out_dir = tmp_path / 'out'

    artifacts = asyncio.run(
        export_submission(
            submission,
            formats=['pdf', 'doc'],
            output_dir=out_dir,
            settings=settings,
            generated_at=GENERATED_AT,
        )
    )

    assert [item.filename for item in artifacts] == [
        report_filename('BrandGuard', submission.id, 'pdf'),
        report_filename('BrandGuard', submission.id, 'doc'),
    ]
    for item in artifacts:
        assert (out_dir / item.filename).read_bytes() == item.content


def test_export_submission_rejects_unknown_format(settings):
    submission = make_submission(report=make_report(_issues()))
    with pytest.raises(ValueError):
        asyncio.run(export_submission(submission, formats=['docx'], settings=settings))


def test_unreadable_video_falls_back_per_issue(settings, tmp_path):
    issues = [
        make_issue('v1', evidence={'timestamp_range': {'start_ms': 1000, 'end_ms': 2000}}),
        make_issue('v2', evidence=None),
    ]
    submission = make_submission(
        kind=SourceKind.video,
        locator=str(tmp_path / 'missing.mp4'),
        report=make_report(issues),
    )
    [artifact] = asyncio.run(
        export_submission(submission, formats=['doc'], settings=settings, generated_at=GENERATED_AT)
    )
    text = artifact.content.decode('utf-8')
    assert FALLBACK_MESSAGES[FallbackReason.capture_forbidden] in text
    assert FALLBACK_MESSAGES[FallbackReason.no_evidence] in text


def test_encode_jpeg_rejects_empty_frames():
    assert encode_jpeg(np.zeros((8, 8, 3), dtype=np.uint8))[:2] == b'\xff\xd8'
    with pytest.raises(FrameCaptureError):
        encode_jpeg(np.zeros((0, 0, 3), dtype=np.uint8))


def test_opencv_surface_captures_and_restores(tmp_path):
    path = tmp_path / 'clip.avi'
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*'MJPG'), 10.0, (64, 48))
    if not writer.isOpened():
        pytest.skip('MJPG writer unavailable in this OpenCV build')
    for index in range(30):
        frame = np.full((48, 64, 3), index * 8, dtype=np.uint8)
        writer.write(frame)
    writer.release()

    with OpenCVDecodeSurface(path) as surface:
        surface.play()
        source = VideoFrameSource(surface, timeout_seconds=5.0)
        captured = source.capture_frame(1.0)
        assert (captured.width, captured.height) == (64, 48)
        assert surface.current_position() == 0.0
        assert surface.is_playing() is True


class _HangingSurface(OpenCVDecodeSurface):
    """Decoder whose reads block until released, like a stuck demuxer."""

    def __init__(self):
        super().__init__('hanging.avi')
        self.release_reads = threading.Event()

    def _seek_and_read(self, seconds):
        self.release_reads.wait(10.0)
        return np.full((48, 64, 3), 90, dtype=np.uint8)


def test_hung_decoder_is_bounded_by_timeout():
    surface = _HangingSurface()
    try:
        surface.play()
        surface.set_position(3.0)
        source = VideoFrameSource(surface, timeout_seconds=0.1)

        started = time.monotonic()
        with pytest.raises(FrameCaptureError) as excinfo:
            source.capture_frame(1.0)
        assert time.monotonic() - started < 1.0
        assert excinfo.value.timed_out is True
        assert surface.stalled is True
        assert surface.current_position() == 3.0
        assert surface.is_playing() is True

        started = time.monotonic()
        with pytest.raises(FrameCaptureError) as excinfo:
            source.capture_frame(2.0)
        assert time.monotonic() - started < 1.0
        assert excinfo.value.timed_out is True

        surface.release_reads.set()
        deadline = time.monotonic() + 5.0
        while surface.stalled and time.monotonic() < deadline:
            time.sleep(0.01)
        assert surface.stalled is False

        captured = source.capture_frame(2.0)
        assert (captured.width, captured.height) == (64, 48)
        assert surface.current_position() == 3.0
    finally:
        surface.release_reads.set()
        surface.close()


def test_closed_surface_records_position_and_refuses_reads(tmp_path):
    surface = OpenCVDecodeSurface(tmp_path / 'missing.avi')
    surface.close()

    surface.set_position(4.0)
    assert surface.current_position() == 4.0
    with pytest.raises(FrameCaptureError):
        surface.seek_and_wait(1.0, 1.0)
    surface.close()
