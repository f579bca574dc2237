from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "TalentScout"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/talentscout.db"
    data_dir: Path = Path("./data")
    storage_dir: Path = Path("./data/storage")

    browser_service_url: str = "http://puppeteer:3000"
    browser_service_timeout_sec: int = 120
    browser_health_timeout_sec: int = 5
    browser_scrape_attempts: int = 2
    browser_retry_delay_sec: float = 5.0
    static_fetch_timeout_sec: int = 30
    # auto, static, rendered, spa or infinite
    scrape_mode: str = "auto"

    document_download_timeout_sec: int = 120
    document_min_bytes: int = 100
    document_max_bytes: int = 50 * 1024 * 1024
    document_regex_ceiling_bytes: int = 10 * 1024 * 1024
    document_tool_timeout_sec: int = 60

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_extractor: str = "gpt-4o-mini"
    openai_model_ranker: str = "gpt-4o-mini"
    openai_model_embedding: str = "text-embedding-3-small"
    openai_timeout_sec: int = 600
    openai_embedding_timeout_sec: int = 120

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 600

    extraction_temperature: float = 0.7
    ranking_temperature: float = 0.1
    ranking_max_tokens: int = 2000
    video_categorization_temperature: float = 0.3
    video_categorization_max_tokens: int = 1000

    youtube_analysis_enabled: bool = True
    youtube_max_videos: int = 20

    embedding_dimensions: int = 1536
    embedding_max_chars: int = 8000
    search_candidate_cap: int = 100
    search_default_page_size: int = 10

    scrape_stage_retries: int = 0
    extract_stage_retries: int = 1
    index_stage_retries: int = 2

    worker_enabled: bool = True
    worker_poll_sec: float = 0.5

    cors_origins: str = "http://127.0.0.1:8787"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("embedding_max_chars", "search_candidate_cap")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def stage_retries(self, stage: str) -> int:
        return {
            "scrape": self.scrape_stage_retries,
            "extract": self.extract_stage_retries,
            "index": self.index_stage_retries,
        }.get(stage, 0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
