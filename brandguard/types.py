from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


SYSTEM_ACTOR_ID = 'system'


class SourceKind(str, Enum):
    image = 'IMAGE'
    video = 'VIDEO'
    external_url = 'EXTERNAL_URL'


class SubmissionStatus(str, Enum):
    pending_review = 'PENDING_REVIEW'
    processing = 'PROCESSING'
    approved = 'APPROVED'
    changes_requested = 'CHANGES_REQUESTED'
    rejected = 'REJECTED'


TERMINAL_STATUSES = frozenset(
    {
        SubmissionStatus.approved,
        SubmissionStatus.changes_requested,
        SubmissionStatus.rejected,
    }
)


class Decision(str, Enum):
    passed = 'pass'
    needs_changes = 'needs_changes'


class IssueCategory(str, Enum):
    colors = 'colors'
    typography = 'typography'
    layout = 'layout'
    logo = 'logo'
    audio = 'audio'
    video = 'video'
    other = 'other'


class Severity(str, Enum):
    blocker = 'blocker'
    high = 'high'
    medium = 'medium'
    low = 'low'

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.blocker: 3,
    Severity.high: 2,
    Severity.medium: 1,
    Severity.low: 0,
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Coordinates(_Frozen):
    """Normalized bounding box; w/h are fractions of the source frame."""

    x: float
    y: float
    w: float
    h: float


class TimestampRange(_Frozen):
    start_ms: int = Field(ge=0)
    end_ms: int = Field(ge=0)

    @model_validator(mode='after')
    def _ordered(self) -> 'TimestampRange':
        if self.end_ms < self.start_ms:
            raise ValueError('end_ms must be >= start_ms')
        return self

    @property
    def start_seconds(self) -> float:
        return self.start_ms / 1000.0


class Evidence(_Frozen):
    coordinates: Coordinates | None = None
    timestamp_range: TimestampRange | None = None


class Recommendation(_Frozen):
    action: str
    details: str = ''


class Issue(_Frozen):
    issue_id: str
    rule_id: str
    category: IssueCategory
    severity: Severity
    confidence: float = Field(ge=0.0, le=1.0)
    title: str
    description: str
    evidence: Evidence | None = None
    recommendation: Recommendation | None = None


class OverallAssessment(_Frozen):
    score: int = Field(ge=0, le=100)
    decision: Decision
    summary: str = ''


class CategoryScore(_Frozen):
    category: str
    score: float
    notes: str = ''


class EditorAction(_Frozen):
    priority: int
    action: str
    related_issue_ids: tuple[str, ...] = ()


class Report(_Frozen):
    overall: OverallAssessment
    category_scores: tuple[CategoryScore, ...] = ()
    issues: tuple[Issue, ...] = ()
    editor_action_list: tuple[EditorAction, ...] = ()

    @model_validator(mode='after')
    def _unique_issue_ids(self) -> 'Report':
        seen: set[str] = set()
        for issue in self.issues:
            if issue.issue_id in seen:
                raise ValueError(f'duplicate issue_id: {issue.issue_id}')
            seen.add(issue.issue_id)
        return self


class Comment(_Frozen):
    id: str = Field(default_factory=lambda: f'c-{uuid4().hex[:12]}')
    author_id: str
    body: str
    created_at: datetime = Field(default_factory=utcnow)


class Submission(_Frozen):
    id: str = Field(default_factory=lambda: f's-{uuid4().hex[:12]}')
    project_id: str
    editor_id: str
    version: int = Field(ge=1)
    source_kind: SourceKind
    source_locator: str
    status: SubmissionStatus = SubmissionStatus.pending_review
    created_at: datetime = Field(default_factory=utcnow)
    comments: tuple[Comment, ...] = ()
    report: Report | None = None


# Analysis-service configuration


class AllowedColor(_Frozen):
    name: str
    hex: str = Field(pattern=r'^#[0-9a-fA-F]{6}$')
    tolerance: float = Field(ge=0.0, le=1.0)


class AllowedFont(_Frozen):
    family: str
    weights: tuple[int, ...] = ()


class LogoRules(_Frozen):
    min_size_px: int = Field(ge=0)
    safe_margin_percent: float = Field(ge=0.0)


class VideoRules(_Frozen):
    max_duration_sec: int = Field(ge=0)
    resolution: str


class ScoringRules(_Frozen):
    pass_threshold: int = Field(ge=0, le=100)


class ReviewConfig(_Frozen):
    allowed_colors: tuple[AllowedColor, ...] = ()
    allowed_fonts: tuple[AllowedFont, ...] = ()
    logo_rules: LogoRules
    video_rules: VideoRules
    scoring: ScoringRules
    guidelines: str | None = None


DEFAULT_REVIEW_CONFIG = ReviewConfig(
    allowed_colors=(
        AllowedColor(name='Brand Blue', hex='#0056D2', tolerance=0.1),
        AllowedColor(name='Accent Orange', hex='#FF6B00', tolerance=0.1),
        AllowedColor(name='White', hex='#FFFFFF', tolerance=0.05),
    ),
    allowed_fonts=(
        AllowedFont(family='Inter', weights=(400, 600, 700)),
        AllowedFont(family='Roboto', weights=(400,)),
    ),
    logo_rules=LogoRules(min_size_px=50, safe_margin_percent=5),
    video_rules=VideoRules(max_duration_sec=60, resolution='1080p'),
    scoring=ScoringRules(pass_threshold=80),
)
