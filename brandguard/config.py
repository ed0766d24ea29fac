from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_prefix='BRANDGUARD_',
        case_sensitive=False,
        extra='ignore',
    )

    product_name: str = 'BrandGuard'
    report_title: str = 'BrandGuard Compliance Report'

    data_dir: Path = Field(default=Path('./data'))
    log_level: str = 'WARNING'

    # OpenAI-compatible analysis service
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices('OPENAI_API_KEY', 'API_KEY', 'LLM_API_KEY'),
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices('BASE_URL', 'OPENAI_BASE_URL', 'LLM_BASE_URL'),
    )
    analysis_model: str = 'gpt-4o'
    analysis_temperature: float = 0.2
    analysis_max_tokens: int = 4096
    analysis_timeout_seconds: int = 180

    # Evidence resolution
    image_fetch_timeout_seconds: float = 30.0
    frame_capture_timeout_seconds: float = 10.0
    frame_jpeg_quality: int = 80
    # Comma-separated host suffixes treated as video hosts without pixel access.
    video_host_domains: str = 'youtube.com,youtu.be,vimeo.com'

    # PDF layout
    pdf_font_name: str = 'Helvetica'
    pdf_page_margin_mm: float = 20.0
    pdf_title_font_size: int = 26
    pdf_body_font_size: int = 11
    evidence_frame_width_mm: float = 120.0
    evidence_frame_height_mm: float = 80.0
    summary_title_max_chars: int = 40

    def video_hosts(self) -> list[str]:
        hosts: list[str] = []
        for item in self.video_host_domains.split(','):
            normalized = item.strip().lower()
            if not normalized:
                continue
            hosts.append(normalized)
        return hosts


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / 'submissions').mkdir(parents=True, exist_ok=True)
    return settings
