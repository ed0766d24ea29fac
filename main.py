from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from brandguard.analysis import OpenAIReportAnalyzer, StaticReportAnalyzer
from brandguard.config import get_settings
from brandguard.errors import BrandGuardError
from brandguard.storage import JsonSubmissionRepository
from brandguard.types import SourceKind, Submission
from brandguard.workflow import ReviewWorkflow


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _error(message: str) -> int:
    _print_json({'status': 'error', 'message': message})
    return 2


def _status_snapshot(submission: Submission) -> dict:
    report = submission.report
    return {
        'submission_id': submission.id,
        'project_id': submission.project_id,
        'version': submission.version,
        'status': submission.status.value,
        'source_kind': submission.source_kind.value,
        'source_locator': submission.source_locator,
        'created_at': submission.created_at.isoformat(),
        'score': report.overall.score if report is not None else None,
        'decision': report.overall.decision.value if report is not None else None,
        'issue_count': len(report.issues) if report is not None else 0,
        'comments': [
            {'id': item.id, 'author_id': item.author_id, 'body': item.body} for item in submission.comments
        ],
    }


def _workflow(report_json: str | None = None) -> ReviewWorkflow:
    settings = get_settings()
    if report_json:
        analyzer = StaticReportAnalyzer(Path(report_json).expanduser().read_text(encoding='utf-8'))
    else:
        analyzer = OpenAIReportAnalyzer.from_settings(settings)
    return ReviewWorkflow(JsonSubmissionRepository(), analyzer, settings=settings)


def cmd_submit(args: argparse.Namespace) -> int:
    kind = SourceKind(args.kind.upper())
    locator = str(args.source).strip()
    if not locator:
        return _error('source locator is required')
    if args.report_json and not Path(args.report_json).expanduser().is_file():
        return _error(f'report JSON not found: {args.report_json}')
    workflow = _workflow(args.report_json)
    submission = asyncio.run(
        workflow.submit(
            project_id=args.project_id,
            editor_id=args.editor_id,
            source_kind=kind,
            source_locator=locator,
        )
    )
    _print_json(_status_snapshot(submission))
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    submission = JsonSubmissionRepository().get(args.submission_id)
    if submission is None:
        return _error(f'Submission not found: {args.submission_id}')
    _print_json(_status_snapshot(submission))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    items = JsonSubmissionRepository().list_by_project(args.project_id)
    _print_json({'project_id': args.project_id, 'submissions': [_status_snapshot(item) for item in items]})
    return 0


def cmd_review(args: argparse.Namespace) -> int:
    workflow = _workflow()
    if args.action == 'approve':
        submission = workflow.approve(args.submission_id, actor_id=args.actor_id)
    else:
        submission = workflow.return_for_changes(args.submission_id, actor_id=args.actor_id)
    _print_json(_status_snapshot(submission))
    return 0


def cmd_comment(args: argparse.Namespace) -> int:
    submission = _workflow().comment(args.submission_id, actor_id=args.actor_id, body=args.body)
    _print_json(_status_snapshot(submission))
    return 0


def _issue_updates(args: argparse.Namespace) -> dict[str, dict[str, str]]:
    updates: dict[str, dict[str, str]] = {}
    for field, pairs in (('title', args.issue_title), ('description', args.issue_description)):
        for issue_id, value in pairs or []:
            updates.setdefault(issue_id, {})[field] = value
    return updates


def cmd_edit(args: argparse.Namespace) -> int:
    updates = _issue_updates(args)
    if args.summary is None and not updates:
        return _error('nothing to edit: pass --summary, --issue-title or --issue-description')
    submission = _workflow().edit_report(
        args.submission_id,
        actor_id=args.actor_id,
        summary=args.summary,
        issue_updates=updates,
    )
    _print_json(_status_snapshot(submission))
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    formats = ['pdf', 'doc'] if args.format == 'all' else [args.format]
    out_dir = Path(args.out).expanduser().resolve()
    artifacts = asyncio.run(_workflow().export(args.submission_id, formats=formats, output_dir=out_dir))
    _print_json(
        {
            'submission_id': args.submission_id,
            'files': [
                {'path': str(out_dir / item.filename), 'media_type': item.media_type, 'bytes': len(item.content)}
                for item in artifacts
            ],
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='BrandGuard brand compliance review CLI')
    sub = parser.add_subparsers(dest='command', required=True)

    submit = sub.add_parser('submit', help='Submit an asset for compliance analysis')
    submit.add_argument('--project-id', required=True, help='Project ID')
    submit.add_argument('--editor-id', required=True, help='Submitting editor ID')
    submit.add_argument('--kind', choices=['image', 'video', 'external_url'], required=True)
    submit.add_argument('--source', required=True, help='Image/video path or URL')
    submit.add_argument('--report-json', required=False, help='Use a stored analysis output instead of the model')
    submit.set_defaults(func=cmd_submit)

    status = sub.add_parser('status', help='Get submission status')
    status.add_argument('--submission-id', required=True, help='Submission ID')
    status.set_defaults(func=cmd_status)

    list_cmd = sub.add_parser('list', help='List submissions of a project, newest first')
    list_cmd.add_argument('--project-id', required=True, help='Project ID')
    list_cmd.set_defaults(func=cmd_list)

    review = sub.add_parser('review', help='Approve or return a submission')
    review.add_argument('--submission-id', required=True, help='Submission ID')
    review.add_argument('--actor-id', required=True, help='Reviewer ID')
    review.add_argument('--action', choices=['approve', 'return'], required=True)
    review.set_defaults(func=cmd_review)

    comment = sub.add_parser('comment', help='Add a comment to a submission')
    comment.add_argument('--submission-id', required=True, help='Submission ID')
    comment.add_argument('--actor-id', required=True, help='Comment author ID')
    comment.add_argument('--body', required=True)
    comment.set_defaults(func=cmd_comment)

    edit = sub.add_parser('edit', help='Edit the report summary or issue text before export')
    edit.add_argument('--submission-id', required=True, help='Submission ID')
    edit.add_argument('--actor-id', required=True, help='Reviewer ID')
    edit.add_argument('--summary', help='New overall summary')
    edit.add_argument('--issue-title', nargs=2, action='append', metavar=('ISSUE_ID', 'TITLE'))
    edit.add_argument('--issue-description', nargs=2, action='append', metavar=('ISSUE_ID', 'TEXT'))
    edit.set_defaults(func=cmd_edit)

    export = sub.add_parser('export', help='Export the compliance report')
    export.add_argument('--submission-id', required=True, help='Submission ID')
    export.add_argument('--format', choices=['pdf', 'doc', 'all'], default='pdf')
    export.add_argument('--out', default='.', help='Output directory')
    export.set_defaults(func=cmd_export)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, get_settings().log_level.upper(), logging.WARNING),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        return int(args.func(args))
    except (BrandGuardError, ValueError) as exc:
        return _error(str(exc))


if __name__ == '__main__':
    raise SystemExit(main())
