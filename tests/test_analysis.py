from __future__ import annotations

import asyncio
import json

import pytest

from brandguard.adapters.llm import AnalysisLLMClient, AnalysisLLMConfig
from brandguard.analysis import OpenAIReportAnalyzer, build_system_prompt, parse_report, strip_code_fences
from brandguard.errors import AnalysisFailure
from brandguard.types import DEFAULT_REVIEW_CONFIG, Decision, SourceKind

from conftest import FakeFetcher, make_issue, make_submission


def _payload() -> dict:
    return {
        'overall': {'score': 72, 'decision': 'needs_changes', 'summary': 'Close, but not yet.'},
        'category_scores': [],
        'issues': [make_issue('i1', evidence={'coordinates': {'x': 0.1, 'y': 0.1, 'w': 0.2, 'h': 0.2}})],
        'editor_action_list': [],
    }


def test_parse_report_accepts_fenced_json():
    raw = '```json\n' + json.dumps(_payload()) + '\n```'
    report = parse_report(raw)
    assert report.overall.decision == Decision.needs_changes
    assert report.issues[0].evidence.coordinates.w == 0.2


def test_strip_code_fences_leaves_plain_text():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


@pytest.mark.parametrize(
    'raw',
    [
        '',
        'not json at all',
        '[1, 2, 3]',
        json.dumps({'overall': {'score': 140, 'decision': 'pass'}}),
        json.dumps({'overall': {'score': 50, 'decision': 'maybe'}}),
    ],
)
def test_parse_report_failures_are_analysis_failures(raw):
    with pytest.raises(AnalysisFailure):
        parse_report(raw)


def test_system_prompt_embeds_config_and_threshold():
    prompt = build_system_prompt(DEFAULT_REVIEW_CONFIG)
    assert '#0056D2' in prompt
    assert '>= 80' in prompt


class _FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(self.content, Exception):
            raise self.content
        message = type('Message', (), {'content': self.content})()
        choice = type('Choice', (), {'message': message})()
        return type('Response', (), {'choices': [choice]})()


class _FakeOpenAI:
    def __init__(self, content):
        self.completions = _FakeCompletions(content)
        self.chat = type('Chat', (), {'completions': self.completions})()


def _analyzer(content, fetcher=None):
    fake = _FakeOpenAI(content)
    llm = AnalysisLLMClient(
        AnalysisLLMConfig(base_url=None, api_key=None, model='gpt-4o', temperature=0.2, max_tokens=512, timeout_seconds=30),
        client=fake,
    )
    return OpenAIReportAnalyzer(llm, fetcher=fetcher or FakeFetcher()), fake.completions


def test_image_submission_sends_pixels():
    analyzer, completions = _analyzer(json.dumps(_payload()))
    report = asyncio.run(analyzer.analyze(make_submission(), DEFAULT_REVIEW_CONFIG))

    assert report.overall.score == 72
    [request] = completions.requests
    assert request['response_format'] == {'type': 'json_object'}
    user_content = request['messages'][1]['content']
    assert user_content[1]['image_url']['url'].startswith('data:image/png;base64,')


def test_external_url_submission_sends_text_only():
    fetcher = FakeFetcher()
    analyzer, completions = _analyzer(json.dumps(_payload()), fetcher)
    submission = make_submission(kind=SourceKind.external_url, locator='https://brand.example.com')
    asyncio.run(analyzer.analyze(submission, DEFAULT_REVIEW_CONFIG))

    [request] = completions.requests
    assert [part['type'] for part in request['messages'][1]['content']] == ['text']
    assert fetcher.calls == []


def test_model_errors_become_analysis_failures():
    analyzer, _ = _analyzer(RuntimeError('rate limited'))
    with pytest.raises(AnalysisFailure, match='rate limited'):
        asyncio.run(analyzer.analyze(make_submission(), DEFAULT_REVIEW_CONFIG))


def test_unconfigured_client_fails_as_analysis_failure():
    llm = AnalysisLLMClient(
        AnalysisLLMConfig(base_url=None, api_key=None, model='gpt-4o', temperature=0.2, max_tokens=512, timeout_seconds=30)
    )
    analyzer = OpenAIReportAnalyzer(llm, fetcher=FakeFetcher())
    with pytest.raises(AnalysisFailure, match='not configured'):
        asyncio.run(analyzer.analyze(make_submission(), DEFAULT_REVIEW_CONFIG))
