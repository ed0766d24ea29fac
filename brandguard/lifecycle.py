"""Submission status machine.

PENDING_REVIEW -> PROCESSING -> {APPROVED, CHANGES_REQUESTED, REJECTED}

Reviewers may move a submission between APPROVED and CHANGES_REQUESTED.
REJECTED is final; a fix requires a new submission. Every transition returns a
new ``Submission``; nothing is mutated in place.
"""

from __future__ import annotations

from typing import Mapping

from brandguard.errors import InvalidTransition
from brandguard.types import (
    SYSTEM_ACTOR_ID,
    TERMINAL_STATUSES,
    Comment,
    Decision,
    Report,
    Submission,
    SubmissionStatus,
)


_ALLOWED: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.pending_review: frozenset({SubmissionStatus.processing}),
    SubmissionStatus.processing: frozenset(
        {
            SubmissionStatus.approved,
            SubmissionStatus.changes_requested,
            SubmissionStatus.rejected,
        }
    ),
    SubmissionStatus.approved: frozenset({SubmissionStatus.changes_requested}),
    SubmissionStatus.changes_requested: frozenset({SubmissionStatus.approved}),
    SubmissionStatus.rejected: frozenset(),
}


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in _ALLOWED.get(current, frozenset())


def _transition(submission: Submission, target: SubmissionStatus, **updates) -> Submission:
    if not can_transition(submission.status, target):
        raise InvalidTransition(
            f'submission {submission.id}: {submission.status.value} -> {target.value} is not allowed'
        )
    return submission.model_copy(update={'status': target, **updates})


def status_for_decision(decision: Decision) -> SubmissionStatus:
    if decision == Decision.passed:
        return SubmissionStatus.approved
    return SubmissionStatus.changes_requested


def begin_analysis(submission: Submission) -> Submission:
    return _transition(submission, SubmissionStatus.processing)


def complete_analysis(submission: Submission, report: Report) -> Submission:
    return _transition(submission, status_for_decision(report.overall.decision), report=report)


def fail_analysis(submission: Submission, reason: str) -> Submission:
    comment = Comment(
        id=f'err-{submission.id}',
        author_id=SYSTEM_ACTOR_ID,
        body=f'Analysis failed: {reason or "Unknown error"}',
    )
    return _transition(
        submission,
        SubmissionStatus.rejected,
        comments=(*submission.comments, comment),
    )


def approve(submission: Submission) -> Submission:
    if submission.status == SubmissionStatus.approved:
        return submission
    return _transition(submission, SubmissionStatus.approved)


def return_for_changes(submission: Submission) -> Submission:
    if submission.status == SubmissionStatus.changes_requested:
        return submission
    return _transition(submission, SubmissionStatus.changes_requested)


def add_comment(submission: Submission, *, actor_id: str, body: str) -> Submission:
    text = str(body or '').strip()
    if not text:
        raise ValueError('comment body is required')
    actor = str(actor_id or '').strip()
    if not actor:
        raise ValueError('actor_id is required')
    comment = Comment(author_id=actor, body=text)
    return submission.model_copy(update={'comments': (*submission.comments, comment)})


def can_render(submission: Submission) -> bool:
    return submission.report is not None and submission.status in TERMINAL_STATUSES


EDITABLE_ISSUE_FIELDS = frozenset({'title', 'description'})


def revise_report(
    submission: Submission,
    *,
    summary: str | None = None,
    issue_updates: Mapping[str, Mapping[str, str]] | None = None,
) -> Submission:
    """Replace reviewer-editable report text; scores, evidence and status are untouched."""
    report = submission.report
    if report is None:
        raise ValueError(f'submission {submission.id} has no report to edit')
    updates = dict(issue_updates or {})
    known = {issue.issue_id for issue in report.issues}
    unknown = sorted(set(updates) - known)
    if unknown:
        raise ValueError(f'unknown issue id(s): {", ".join(unknown)}')

    issues = []
    for issue in report.issues:
        fields = dict(updates.get(issue.issue_id) or {})
        bad = sorted(set(fields) - EDITABLE_ISSUE_FIELDS)
        if bad:
            raise ValueError(f'issue {issue.issue_id}: fields not editable: {", ".join(bad)}')
        if 'title' in fields and not str(fields['title']).strip():
            raise ValueError(f'issue {issue.issue_id}: title cannot be empty')
        issues.append(issue.model_copy(update={k: str(v) for k, v in fields.items()}) if fields else issue)

    overall = report.overall
    if summary is not None:
        overall = overall.model_copy(update={'summary': str(summary)})
    revised = report.model_copy(update={'overall': overall, 'issues': tuple(issues)})
    return submission.model_copy(update={'report': revised})
