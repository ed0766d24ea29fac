from __future__ import annotations

import asyncio

import pytest
from reportlab.lib.units import mm

from brandguard.report.blocks import ViolationTableBlock, compose_report, format_time, truncate_title
from brandguard.report.evidence import FALLBACK_MESSAGES, EvidenceResolver, FallbackReason
from brandguard.report.frames import VideoFrameSource
from brandguard.report.paginator import (
    VIOLATION_MARKER,
    ImageOp,
    LayoutStyle,
    Margins,
    OverlayOp,
    Paginator,
    TextOp,
    layout_document,
)
from brandguard.types import SourceKind

from conftest import GENERATED_AT, FakeFetcher, FakeSurface, make_issue, make_report, make_submission, png_bytes


VIDEO_HOSTS = ['youtube.com', 'youtu.be', 'vimeo.com']


def _flat(page) -> str:
    return page.text().replace('\n', ' ')


def _layout(submission, *, fetcher=None, frame_source=None):
    resolver = EvidenceResolver(
        fetcher=fetcher or FakeFetcher(),
        frame_source=frame_source,
        video_hosts=VIDEO_HOSTS,
    )
    document = asyncio.run(
        compose_report(
            submission,
            submission.report,
            resolver,
            title='BrandGuard Compliance Report',
            generated_at=GENERATED_AT,
        )
    )
    return document, layout_document(document, LayoutStyle())


def test_format_time_and_truncate_title():
    assert format_time(5000) == '0:05'
    assert format_time(65999) == '1:05'
    assert format_time(None) == ''
    assert truncate_title('x' * 40, 40) == 'x' * 40
    assert truncate_title('y' * 41, 40) == 'y' * 37 + '...'


def test_violation_table_mirrors_report_order():
    issues = [
        make_issue('a', severity='low', title='Low priority thing'),
        make_issue('b', severity='blocker', title='B' * 60),
        make_issue('c', severity='medium', title='Medium thing'),
    ]
    submission = make_submission(report=make_report(issues))
    document, pages = _layout(submission)

    table = next(b for b in document.summary_blocks if isinstance(b, ViolationTableBlock))
    assert [row.severity for row in table.rows] == ['LOW', 'BLOCKER', 'MEDIUM']
    assert table.rows[1].title == 'B' * 37 + '...'

    first = pages[0].text()
    assert first.index('LOW') < first.index('BLOCKER') < first.index('MEDIUM')
    assert [page.issue_id for page in pages[1:]] == ['a', 'b', 'c']
    assert pages[1].text().startswith('Issue: Low priority thing')


def test_summary_page_contents():
    submission = make_submission(report=make_report([make_issue('i1')]))
    _, pages = _layout(submission)
    text = pages[0].text()
    assert 'BrandGuard Compliance Report' in text
    assert 'Submission ID: s-test0001' in text
    assert '62/100' in text
    assert 'Decision: NEEDS_CHANGES' in text
    assert 'Executive Summary' in text
    assert 'Violations Summary' in text
    assert text.index('1. Increase logo clear space') < text.index('2. Swap the accent colour')


def test_report_without_issues_has_single_page():
    submission = make_submission(report=make_report([], score=95, decision='pass'))
    _, pages = _layout(submission)
    assert len(pages) == 1
    assert 'No violations found.' in pages[0].text()


def test_image_overlay_is_positioned_relative_to_placed_image():
    issue = make_issue('i1', evidence={'coordinates': {'x': 0.1, 'y': 0.2, 'w': 0.3, 'h': 0.1}})
    submission = make_submission(report=make_report([issue]))
    _, pages = _layout(submission, fetcher=FakeFetcher(png_bytes(400, 200)))

    detail = pages[1]
    [image] = detail.ops_of(ImageOp)
    [overlay] = detail.ops_of(OverlayOp)
    placed = image.rect

    assert placed.width == pytest.approx(120 * mm)
    assert placed.height == pytest.approx(60 * mm)
    assert overlay.rect.x == pytest.approx(placed.x + 0.1 * placed.width)
    assert overlay.rect.y == pytest.approx(placed.y + 0.2 * placed.height)
    assert overlay.rect.width == pytest.approx(0.3 * placed.width)
    assert overlay.rect.height == pytest.approx(0.1 * placed.height)
    assert overlay.label == VIOLATION_MARKER
    assert overlay.label_rect.bottom == pytest.approx(overlay.rect.y)


def test_image_without_coordinates_has_no_overlay():
    issue = make_issue('i1', evidence={'timestamp_range': {'start_ms': 0, 'end_ms': 100}})
    submission = make_submission(report=make_report([issue]))
    _, pages = _layout(submission)
    assert len(pages[1].ops_of(ImageOp)) == 1
    assert pages[1].ops_of(OverlayOp) == []


def test_video_frame_page_shows_time_without_overlay():
    issue = make_issue('i1', category='video', evidence={'timestamp_range': {'start_ms': 5000, 'end_ms': 7000}})
    submission = make_submission(kind=SourceKind.video, locator='/tmp/clip.mp4', report=make_report([issue]))
    surface = FakeSurface(position=40.0)
    _, pages = _layout(submission, frame_source=VideoFrameSource(surface))

    detail = pages[1]
    [image] = detail.ops_of(ImageOp)
    assert image.image.captured_at_seconds == 5.0
    assert detail.ops_of(OverlayOp) == []
    assert 'Time: 0:05' in detail.text()
    assert 'Frame captured at 5.0s' in detail.text()
    assert surface.position == 40.0


def test_external_video_host_never_renders_images():
    issues = [
        make_issue('a', evidence={'coordinates': {'x': 0.1, 'y': 0.1, 'w': 0.1, 'h': 0.1}}),
        make_issue('b', evidence={'timestamp_range': {'start_ms': 1000, 'end_ms': 2000}}),
    ]
    submission = make_submission(
        kind=SourceKind.external_url,
        locator='https://www.youtube.com/watch?v=xyz',
        report=make_report(issues),
    )
    fetcher = FakeFetcher()
    _, pages = _layout(submission, fetcher=fetcher)

    message = FALLBACK_MESSAGES[FallbackReason.unsupported_host]
    for page in pages[1:]:
        assert page.ops_of(ImageOp) == []
        assert message in _flat(page)
    assert fetcher.calls == []


def test_forbidden_capture_only_affects_its_issue():
    issues = [
        make_issue('a', evidence={'timestamp_range': {'start_ms': 1000, 'end_ms': 2000}}),
        make_issue('b', evidence={'timestamp_range': {'start_ms': 3000, 'end_ms': 4000}}),
        make_issue('c', evidence={'timestamp_range': {'start_ms': 5000, 'end_ms': 6000}}),
    ]
    submission = make_submission(kind=SourceKind.video, locator='/tmp/clip.mp4', report=make_report(issues))
    surface = FakeSurface(fail_at={3.0: 'forbidden'})
    _, pages = _layout(submission, frame_source=VideoFrameSource(surface))

    by_issue = {page.issue_id: page for page in pages[1:]}
    assert FALLBACK_MESSAGES[FallbackReason.capture_forbidden] in _flat(by_issue['b'])
    assert by_issue['b'].ops_of(ImageOp) == []
    assert len(by_issue['a'].ops_of(ImageOp)) == 1
    assert len(by_issue['c'].ops_of(ImageOp)) == 1


def test_long_issue_text_flows_onto_continuation_pages():
    issue = make_issue('i1', description='Lorem ipsum dolor sit amet. ' * 400)
    submission = make_submission(report=make_report([issue]))
    _, pages = _layout(submission)

    issue_pages = [page for page in pages if page.issue_id == 'i1']
    assert len(issue_pages) > 1
    bottom = LayoutStyle().page_height - LayoutStyle().margins.bottom
    for page in pages:
        for op in page.ops_of(TextOp):
            assert op.baseline <= bottom + 1


def test_many_violations_repeat_table_header():
    issues = [make_issue(f'i{n}', severity='low') for n in range(40)]
    submission = make_submission(report=make_report(issues))
    _, pages = _layout(submission)
    summary_pages = [page for page in pages if page.issue_id is None]
    assert len(summary_pages) >= 2
    assert 'SEVERITY' in summary_pages[1].text()


def test_paginator_breaks_when_space_runs_out():
    paginator = Paginator(200.0, 100.0, margins=Margins.uniform(10.0))
    paginator.new_page()
    assert paginator.ensure_space(50.0) is False
    paginator.advance(60.0)
    assert paginator.ensure_space(50.0) is True
    assert len(paginator.pages) == 2
    assert paginator.cursor_y == 10.0
