from __future__ import annotations

import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping

from brandguard import lifecycle
from brandguard.analysis import ReportAnalyzer
from brandguard.config import Settings, get_settings
from brandguard.errors import AnalysisFailure
from brandguard.report.exporter import ExportArtifact, export_submission
from brandguard.storage import SubmissionRepository
from brandguard.types import DEFAULT_REVIEW_CONFIG, ReviewConfig, SourceKind, Submission


logger = logging.getLogger(__name__)


class ReviewWorkflow:
    """Owns the repository and drives submissions through analysis and review."""

    def __init__(
        self,
        repository: SubmissionRepository,
        analyzer: ReportAnalyzer,
        *,
        config: ReviewConfig = DEFAULT_REVIEW_CONFIG,
        settings: Settings | None = None,
    ):
        self.repository = repository
        self.analyzer = analyzer
        self.config = config
        self.settings = settings or get_settings()

    def create_submission(
        self,
        *,
        project_id: str,
        editor_id: str,
        source_kind: SourceKind,
        source_locator: str,
    ) -> Submission:
        submission = Submission(
            project_id=project_id,
            editor_id=editor_id,
            version=self.repository.next_version(project_id),
            source_kind=source_kind,
            source_locator=source_locator,
        )
        self.repository.put(submission)
        self.repository.append_event(
            submission.id,
            'created',
            project_id=project_id,
            version=submission.version,
            source_kind=source_kind.value,
            actor=editor_id,
        )
        return submission

    async def analyze(self, submission_id: str) -> Submission:
        submission = lifecycle.begin_analysis(self.repository.require(submission_id))
        self.repository.put(submission)
        self.repository.append_event(submission.id, 'status', status=submission.status.value)

        try:
            report = await self.analyzer.analyze(submission, self.config)
        except AnalysisFailure as exc:
            return self._fail(submission, str(exc))
        except Exception as exc:
            detail = ''.join(traceback.format_exception_only(type(exc), exc)).strip()
            logger.exception('Analysis crashed for submission %s', submission.id)
            return self._fail(submission, detail)

        submission = lifecycle.complete_analysis(submission, report)
        self.repository.put(submission)
        self.repository.append_event(
            submission.id,
            'analysis_completed',
            status=submission.status.value,
            score=report.overall.score,
            issue_count=len(report.issues),
        )
        return submission

    def _fail(self, submission: Submission, reason: str) -> Submission:
        logger.warning('Analysis failed for submission %s: %s', submission.id, reason)
        failed = lifecycle.fail_analysis(submission, reason)
        self.repository.put(failed)
        self.repository.append_event(failed.id, 'analysis_failed', status=failed.status.value, error=reason)
        return failed

    async def submit(
        self,
        *,
        project_id: str,
        editor_id: str,
        source_kind: SourceKind,
        source_locator: str,
    ) -> Submission:
        submission = self.create_submission(
            project_id=project_id,
            editor_id=editor_id,
            source_kind=source_kind,
            source_locator=source_locator,
        )
        return await self.analyze(submission.id)

    def approve(self, submission_id: str, *, actor_id: str) -> Submission:
        submission = lifecycle.approve(self.repository.require(submission_id))
        self.repository.put(submission)
        self.repository.append_event(submission.id, 'approved', actor=actor_id)
        return submission

    def return_for_changes(self, submission_id: str, *, actor_id: str) -> Submission:
        submission = lifecycle.return_for_changes(self.repository.require(submission_id))
        self.repository.put(submission)
        self.repository.append_event(submission.id, 'returned', actor=actor_id)
        return submission

    def comment(self, submission_id: str, *, actor_id: str, body: str) -> Submission:
        submission = lifecycle.add_comment(self.repository.require(submission_id), actor_id=actor_id, body=body)
        self.repository.put(submission)
        self.repository.append_event(submission.id, 'commented', actor=actor_id)
        return submission

    def edit_report(
        self,
        submission_id: str,
        *,
        actor_id: str,
        summary: str | None = None,
        issue_updates: Mapping[str, Mapping[str, str]] | None = None,
    ) -> Submission:
        actor = str(actor_id or '').strip()
        if not actor:
            raise ValueError('actor_id is required')
        submission = lifecycle.revise_report(
            self.repository.require(submission_id),
            summary=summary,
            issue_updates=issue_updates,
        )
        self.repository.put(submission)
        self.repository.append_event(
            submission.id,
            'report_edited',
            actor=actor,
            summary_changed=summary is not None,
            issue_ids=sorted(issue_updates or {}),
        )
        return submission

    async def export(
        self,
        submission_id: str,
        *,
        formats: Iterable[str] = ('pdf',),
        output_dir: Path | None = None,
        generated_at: datetime | None = None,
    ) -> list[ExportArtifact]:
        submission = self.repository.require(submission_id)
        artifacts = await export_submission(
            submission,
            formats=formats,
            output_dir=output_dir,
            settings=self.settings,
            generated_at=generated_at,
        )
        self.repository.append_event(
            submission.id,
            'exported',
            files=[artifact.filename for artifact in artifacts],
        )
        return artifacts
