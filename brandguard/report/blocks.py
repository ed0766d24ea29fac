from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

from brandguard.report.evidence import EvidenceResolver, Resolution
from brandguard.types import (
    CategoryScore,
    Decision,
    EditorAction,
    Issue,
    Report,
    SourceKind,
    Submission,
)


ELLIPSIS = '...'


def format_time(ms: int | None) -> str:
    if ms is None:
        return ''
    total_seconds = int(ms) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f'{minutes}:{seconds:02d}'


def truncate_title(title: str, max_chars: int) -> str:
    text = str(title or '')
    if len(text) <= max_chars:
        return text
    keep = max(0, max_chars - len(ELLIPSIS))
    return text[:keep] + ELLIPSIS


def format_generated_at(dt: datetime) -> str:
    return dt.strftime('%Y-%m-%d %H:%M:%S %Z').strip()


@dataclass(frozen=True)
class TitleBlock:
    title: str


@dataclass(frozen=True)
class MetadataBlock:
    rows: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class ScoreBlock:
    score: int
    decision: Decision

    @property
    def passed(self) -> bool:
        return self.decision == Decision.passed


@dataclass(frozen=True)
class SummaryBlock:
    heading: str
    text: str


@dataclass(frozen=True)
class ViolationRow:
    severity: str
    category: str
    title: str


@dataclass(frozen=True)
class ViolationTableBlock:
    heading: str
    rows: tuple[ViolationRow, ...]


@dataclass(frozen=True)
class CategoryScoresBlock:
    heading: str
    rows: tuple[CategoryScore, ...]


@dataclass(frozen=True)
class ActionListBlock:
    heading: str
    actions: tuple[EditorAction, ...]


@dataclass(frozen=True)
class IssueBlock:
    issue: Issue
    resolution: Resolution

    @property
    def header(self) -> str:
        return f'Issue: {self.issue.title}'

    @property
    def time_label(self) -> str:
        evidence = self.issue.evidence
        if evidence is None or evidence.timestamp_range is None:
            return ''
        return format_time(evidence.timestamp_range.start_ms)

    @property
    def meta_line(self) -> str:
        text = f'Severity: {self.issue.severity.value.upper()} | Category: {self.issue.category.value}'
        if self.time_label:
            text += f' | Time: {self.time_label}'
        return text

    @property
    def recommendation_line(self) -> str | None:
        if self.issue.recommendation is None:
            return None
        return f'Recommendation: {self.issue.recommendation.action}'


Block = Union[
    TitleBlock,
    MetadataBlock,
    ScoreBlock,
    SummaryBlock,
    ViolationTableBlock,
    CategoryScoresBlock,
    ActionListBlock,
]


@dataclass
class ReportDocument:
    """Ordered content shared by every export backend."""

    submission: Submission
    report: Report
    generated_at: datetime
    summary_blocks: list[Block] = field(default_factory=list)
    issue_blocks: list[IssueBlock] = field(default_factory=list)
    source_image: Resolution | None = None

    @property
    def title(self) -> str:
        for block in self.summary_blocks:
            if isinstance(block, TitleBlock):
                return block.title
        return ''


def build_summary_blocks(
    submission: Submission,
    report: Report,
    *,
    title: str,
    generated_at: datetime,
    title_max_chars: int = 40,
) -> list[Block]:
    blocks: list[Block] = [
        TitleBlock(title=title),
        MetadataBlock(
            rows=(
                ('Submission ID', submission.id),
                ('Version', str(submission.version)),
                ('Generated', format_generated_at(generated_at)),
                ('Status', submission.status.value),
                ('Source', submission.source_kind.value),
            )
        ),
        ScoreBlock(score=report.overall.score, decision=report.overall.decision),
        SummaryBlock(heading='Executive Summary', text=report.overall.summary or 'No summary.'),
        ViolationTableBlock(
            heading='Violations Summary',
            rows=tuple(
                ViolationRow(
                    severity=issue.severity.value.upper(),
                    category=issue.category.value,
                    title=truncate_title(issue.title, title_max_chars),
                )
                for issue in report.issues
            ),
        ),
    ]
    if report.category_scores:
        blocks.append(CategoryScoresBlock(heading='Category Scores', rows=tuple(report.category_scores)))
    if report.editor_action_list:
        ordered = sorted(report.editor_action_list, key=lambda item: item.priority)
        blocks.append(ActionListBlock(heading='Editor Action List', actions=tuple(ordered)))
    return blocks


async def compose_report(
    submission: Submission,
    report: Report,
    resolver: EvidenceResolver,
    *,
    title: str,
    generated_at: datetime,
    title_max_chars: int = 40,
    with_source_image: bool = False,
) -> ReportDocument:
    """Build the block sequence, resolving evidence one issue at a time in report order."""
    document = ReportDocument(
        submission=submission,
        report=report,
        generated_at=generated_at,
        summary_blocks=build_summary_blocks(
            submission,
            report,
            title=title,
            generated_at=generated_at,
            title_max_chars=title_max_chars,
        ),
    )
    if with_source_image and submission.source_kind == SourceKind.image:
        document.source_image = await resolver.base_image(submission)

    for issue in report.issues:
        resolution = await resolver.resolve(submission, issue)
        document.issue_blocks.append(IssueBlock(issue=issue, resolution=resolution))
    return document
