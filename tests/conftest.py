from __future__ import annotations

import io
from datetime import datetime, timezone

import numpy as np
import pytest
from PIL import Image

from brandguard.adapters.media import DecodedImage, decode_image
from brandguard.config import Settings
from brandguard.errors import FrameCaptureError, MediaFetchError
from brandguard.types import Report, SourceKind, Submission, SubmissionStatus


GENERATED_AT = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def png_bytes(width: int = 200, height: int = 100, color=(0, 86, 210)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGB', (width, height), color).save(buf, format='PNG')
    return buf.getvalue()


def make_issue(issue_id: str, *, severity: str = 'medium', title: str | None = None, evidence=None, **extra) -> dict:
    payload = {
        'issue_id': issue_id,
        'rule_id': f'rule-{issue_id}',
        'category': extra.pop('category', 'logo'),
        'severity': severity,
        'confidence': 0.9,
        'title': title or f'Problem {issue_id}',
        'description': f'Description of {issue_id}.',
        'evidence': evidence,
        'recommendation': {'action': f'Fix {issue_id}', 'details': ''},
    }
    payload.update(extra)
    return payload


def make_report(issues: list[dict] | None = None, *, score: int = 62, decision: str = 'needs_changes') -> Report:
    return Report.model_validate(
        {
            'overall': {'score': score, 'decision': decision, 'summary': 'Logo spacing and colours need work.'},
            'category_scores': [{'category': 'logo', 'score': 55, 'notes': 'Clear space too small.'}],
            'issues': issues or [],
            'editor_action_list': [
                {'priority': 2, 'action': 'Swap the accent colour', 'related_issue_ids': []},
                {'priority': 1, 'action': 'Increase logo clear space', 'related_issue_ids': ['i1']},
            ],
        }
    )


def make_submission(
    *,
    kind: SourceKind = SourceKind.image,
    locator: str = 'https://cdn.example.com/asset.png',
    report: Report | None = None,
    status: SubmissionStatus = SubmissionStatus.changes_requested,
) -> Submission:
    return Submission(
        id='s-test0001',
        project_id='p-1',
        editor_id='editor-1',
        version=1,
        source_kind=kind,
        source_locator=locator,
        status=status,
        created_at=GENERATED_AT,
        report=report,
    )


class FakeFetcher:
    """Counts fetches and serves a fixed image (or a fixed error)."""

    def __init__(self, data: bytes | None = None, *, error: str | None = None):
        self.data = data if data is not None else png_bytes()
        self.error = error
        self.calls: list[str] = []

    async def fetch_bytes(self, locator: str) -> bytes:
        self.calls.append(locator)
        if self.error:
            raise MediaFetchError(self.error)
        return self.data

    async def fetch_image(self, locator: str) -> DecodedImage:
        return decode_image(await self.fetch_bytes(locator))


class FakeSurface:
    """In-memory decode surface recording every call."""

    def __init__(self, *, position: float = 12.5, playing: bool = True, fail_at: dict | None = None):
        self.position = position
        self.playing = playing
        self.fail_at = fail_at or {}
        self.calls: list[tuple] = []

    def current_position(self) -> float:
        return self.position

    def is_playing(self) -> bool:
        return self.playing

    def pause(self) -> None:
        self.calls.append(('pause',))
        self.playing = False

    def play(self) -> None:
        self.calls.append(('play',))
        self.playing = True

    def seek_and_wait(self, seconds: float, timeout: float | None) -> np.ndarray:
        self.calls.append(('seek', seconds))
        self.position = seconds
        failure = self.fail_at.get(seconds)
        if failure == 'forbidden':
            raise PermissionError('readback denied')
        if failure == 'timeout':
            raise FrameCaptureError('seek timed out', timed_out=True)
        frame = np.zeros((72, 128, 3), dtype=np.uint8)
        frame[:, :, 2] = 200
        return frame

    def set_position(self, seconds: float) -> None:
        self.calls.append(('set_position', seconds))
        self.position = seconds


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / 'data')
