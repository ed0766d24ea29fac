from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI


@dataclass
class AnalysisLLMConfig:
    base_url: str | None
    api_key: str | None
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: int


class AnalysisLLMClient:
    """Async OpenAI-compatible client used by the report analyzer."""

    def __init__(self, cfg: AnalysisLLMConfig, *, client: AsyncOpenAI | None = None):
        self.cfg = cfg
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.cfg.api_key) or self._client is not None

    def client(self) -> AsyncOpenAI:
        if not self.configured:
            raise RuntimeError('Analysis LLM client is not configured')
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.cfg.api_key,
                base_url=self.cfg.base_url,
                timeout=max(30, int(self.cfg.timeout_seconds)),
            )
        return self._client

    async def complete_json(self, *, system_prompt: str, user_content: list[dict[str, Any]]) -> str:
        response = await self.client().chat.completions.create(
            model=self.cfg.model,
            temperature=self.cfg.temperature,
            max_tokens=self.cfg.max_tokens,
            response_format={'type': 'json_object'},
            messages=[
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_content},
            ],
        )
        if not response.choices:
            raise RuntimeError('No response from analysis model')
        text = response.choices[0].message.content
        if not text:
            raise RuntimeError('No response from analysis model')
        return text
