from __future__ import annotations

import base64
import html
import logging

from brandguard.errors import SerializationError
from brandguard.report.blocks import IssueBlock, ReportDocument, ScoreBlock, format_generated_at
from brandguard.report.evidence import EvidenceImage, Fallback


logger = logging.getLogger(__name__)

WORD_BOM = '\ufeff'

_STYLE = """
  body { font-family: 'Arial', sans-serif; }
  .header { color: #4F46E5; font-size: 24px; font-weight: bold; margin-bottom: 20px; }
  .meta { color: #646464; }
  .score-box { background-color: #f3f4f6; padding: 20px; margin-bottom: 20px; border-radius: 8px; }
  .score-pass { color: #16A34A; }
  .score-fail { color: #DC2626; }
  .issue { border: 1px solid #e5e7eb; padding: 15px; margin-bottom: 10px; border-radius: 4px; }
  .recommendation { color: #16A34A; }
  .fallback { color: #969696; }
"""


def _e(value: object) -> str:
    return html.escape(str(value if value is not None else ''), quote=True)


def _data_uri(image: EvidenceImage) -> str:
    encoded = base64.b64encode(image.data).decode('ascii')
    return f'data:{image.mime_type};base64,{encoded}'


def _score_box(document: ReportDocument) -> str:
    score = next((b for b in document.summary_blocks if isinstance(b, ScoreBlock)), None)
    overall = document.report.overall
    css = 'score-pass' if score is not None and score.passed else 'score-fail'
    return (
        '<div class="score-box">\n'
        f'  <p><strong>Overall Score:</strong> <span class="{css}">{_e(overall.score)}/100</span></p>\n'
        f'  <p><strong>Decision:</strong> {_e(overall.decision.value.upper())}</p>\n'
        f'  <p>{_e(overall.summary or "No summary.")}</p>\n'
        '</div>'
    )


def _issue_block(block: IssueBlock) -> str:
    issue = block.issue
    meta = f'<strong>Category:</strong> {_e(issue.category.value)}'
    if block.time_label:
        meta += f' | <strong>Time:</strong> {_e(block.time_label)}'
    parts = [
        '<div class="issue">',
        f'  <h3>[{_e(issue.severity.value)}] {_e(issue.title)}</h3>',
        f'  <p>{meta}</p>',
        f'  <p>{_e(issue.description)}</p>',
    ]
    if issue.recommendation is not None:
        parts.append(f'  <p class="recommendation"><em>Recommendation: {_e(issue.recommendation.action)}</em></p>')
        if issue.recommendation.details:
            parts.append(f'  <p><em>{_e(issue.recommendation.details)}</em></p>')
    if isinstance(block.resolution, Fallback):
        parts.append(f'  <p class="fallback"><em>{_e(block.resolution.message)}</em></p>')
    parts.append('</div>')
    return '\n'.join(parts)


def render_word_html(document: ReportDocument, *, title: str) -> str:
    submission = document.submission
    image_tag = ''
    if isinstance(document.source_image, EvidenceImage):
        image_tag = f'<br><img src="{_data_uri(document.source_image)}" width="400" /><br>'

    issues = '\n'.join(_issue_block(block) for block in document.issue_blocks)
    if not issues:
        issues = '<p>No violations found.</p>'

    return (
        "<html xmlns:o='urn:schemas-microsoft-com:office:office' "
        "xmlns:w='urn:schemas-microsoft-com:office:word' "
        "xmlns='http://www.w3.org/TR/REC-html40'>\n"
        '<head>\n'
        "<meta charset='utf-8'>\n"
        f'<title>{_e(title)}</title>\n'
        f'<style>{_STYLE}</style>\n'
        '</head>\n'
        '<body>\n'
        f'<div class="header">{_e(title)}</div>\n'
        f'<p class="meta">Submission ID: {_e(submission.id)} | Version: {_e(submission.version)} '
        f'| Status: {_e(submission.status.value)}</p>\n'
        f'<p class="meta">Generated: {_e(format_generated_at(document.generated_at))}</p>\n'
        f'{image_tag}\n'
        f'{_score_box(document)}\n'
        '<h2>Detailed Findings</h2>\n'
        f'{issues}\n'
        '</body>\n'
        '</html>\n'
    )


def render_word_document(document: ReportDocument, *, title: str) -> bytes:
    try:
        return (WORD_BOM + render_word_html(document, title=title)).encode('utf-8')
    except Exception as exc:
        logger.error('Word serialization failed for submission %s: %s', document.submission.id, exc)
        raise SerializationError(f'failed to serialize Word report: {type(exc).__name__}: {exc}') from exc
