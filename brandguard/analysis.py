from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any, Protocol

from pydantic import ValidationError

from brandguard.adapters.llm import AnalysisLLMClient, AnalysisLLMConfig
from brandguard.adapters.media import MediaFetchConfig, MediaFetcher
from brandguard.config import Settings, get_settings
from brandguard.errors import AnalysisFailure, MediaFetchError
from brandguard.types import Report, ReviewConfig, SourceKind, Submission


logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r'```(?:json)?', re.IGNORECASE)

_REPORT_SCHEMA_HINT = """{
  "overall": { "score": 0-100, "decision": "pass|needs_changes", "summary": "string" },
  "category_scores": [ { "category": "string", "score": number, "notes": "string" } ],
  "issues": [
    {
      "issue_id": "string",
      "rule_id": "string (referencing config)",
      "category": "colors|typography|layout|logo|audio|video|other",
      "severity": "blocker|high|medium|low",
      "confidence": 0-1 (float),
      "title": "string",
      "description": "string",
      "evidence": {
         "coordinates": { "x": 0-1, "y": 0-1, "w": 0-1, "h": 0-1 },
         "timestamp_range": { "start_ms": number, "end_ms": number }
      },
      "recommendation": { "action": "string", "details": "string" }
    }
  ],
  "editor_action_list": [ { "priority": number, "action": "string", "related_issue_ids": ["string"] } ]
}"""


def build_system_prompt(config: ReviewConfig) -> str:
    config_json = json.dumps(config.model_dump(mode='json', exclude_none=True), indent=2)
    return (
        'You are a strict brand compliance reviewer. Output valid JSON only.\n'
        'Analyze the provided content against the following Brand Evaluation Configuration:\n'
        f'{config_json}\n\n'
        'For external URLs, analyze the context available for the URL if pixel data is unavailable. '
        'For images and videos, analyze the visual pixels.\n'
        f'The decision must be "pass" exactly when the score is >= {config.scoring.pass_threshold}.\n\n'
        'Output a JSON object matching this schema exactly, without markdown fences:\n'
        f'{_REPORT_SCHEMA_HINT}\n'
    )


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub('', str(text or '')).strip()


def parse_report(raw: str | bytes | dict[str, Any]) -> Report:
    """Validate analysis output once; anything unparseable is an ``AnalysisFailure``."""
    if isinstance(raw, dict):
        payload: Any = raw
    else:
        text = raw.decode('utf-8', errors='replace') if isinstance(raw, bytes) else str(raw)
        cleaned = strip_code_fences(text)
        if not cleaned:
            raise AnalysisFailure('analysis returned an empty response')
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise AnalysisFailure(f'analysis output is not valid JSON: {exc}') from exc
    if not isinstance(payload, dict):
        raise AnalysisFailure('analysis output must be a JSON object')
    try:
        return Report.model_validate(payload)
    except ValidationError as exc:
        raise AnalysisFailure(f'analysis output does not match the report schema: {exc}') from exc


class ReportAnalyzer(Protocol):
    async def analyze(self, submission: Submission, config: ReviewConfig) -> Report: ...


class StaticReportAnalyzer:
    """Replays a stored analysis output instead of calling a model."""

    def __init__(self, raw: str | bytes | dict[str, Any]):
        self.raw = raw

    async def analyze(self, submission: Submission, config: ReviewConfig) -> Report:
        return parse_report(self.raw)


class OpenAIReportAnalyzer:
    def __init__(self, llm: AnalysisLLMClient, *, fetcher: MediaFetcher):
        self.llm = llm
        self.fetcher = fetcher

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> 'OpenAIReportAnalyzer':
        settings = settings or get_settings()
        llm = AnalysisLLMClient(
            AnalysisLLMConfig(
                base_url=settings.openai_base_url,
                api_key=settings.openai_api_key,
                model=settings.analysis_model,
                temperature=settings.analysis_temperature,
                max_tokens=settings.analysis_max_tokens,
                timeout_seconds=settings.analysis_timeout_seconds,
            )
        )
        fetcher = MediaFetcher(MediaFetchConfig(timeout_seconds=settings.image_fetch_timeout_seconds))
        return cls(llm, fetcher=fetcher)

    async def _user_content(self, submission: Submission) -> list[dict[str, Any]]:
        locator = submission.source_locator
        if submission.source_kind == SourceKind.external_url:
            return [{'type': 'text', 'text': f'Please analyze the brand compliance of the content at this URL: {locator}'}]
        if submission.source_kind == SourceKind.video:
            return [{'type': 'text', 'text': f'Please analyze the brand compliance of this video: {locator}'}]
        try:
            image = await self.fetcher.fetch_image(locator)
        except MediaFetchError as exc:
            logger.warning('Image pixels unavailable for analysis of %s: %s', submission.id, exc)
            return [
                {
                    'type': 'text',
                    'text': f'Please analyze the image at this location (pixels could not be fetched): {locator}',
                }
            ]
        encoded = base64.b64encode(image.data).decode('ascii')
        return [
            {'type': 'text', 'text': 'Please analyze the brand compliance of this image.'},
            {'type': 'image_url', 'image_url': {'url': f'data:{image.mime_type};base64,{encoded}'}},
        ]

    async def analyze(self, submission: Submission, config: ReviewConfig) -> Report:
        content = await self._user_content(submission)
        try:
            text = await self.llm.complete_json(system_prompt=build_system_prompt(config), user_content=content)
        except Exception as exc:
            raise AnalysisFailure(f'{type(exc).__name__}: {exc}') from exc
        return parse_report(text)
