from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    env: str = Field(default="dev", alias="APP_ENV")
    debug: bool = Field(default=False, alias="APP_DEBUG")
    service_version: str = Field(default="v1", alias="SERVICE_VERSION")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        alias="CORS_ORIGINS",
    )

    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(default=None, alias="OPENAI_BASE_URL")
    suggestion_model: str = Field(default="gpt-4o-mini", alias="OPENAI_SUGGESTION_MODEL")
    suggestion_temperature: float = Field(default=0.6, alias="OPENAI_TEMPERATURE")
    generation_timeout_seconds: float = Field(default=90.0, alias="GENERATION_TIMEOUT_SECONDS")
    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")

    # LangSmith / LangChain tracing
    langsmith_api_key: str | None = Field(default=None, alias="LANGSMITH_API_KEY")
    langsmith_endpoint: str | None = Field(default=None, alias="LANGSMITH_ENDPOINT")
    langsmith_project: str | None = Field(default=None, alias="LANGSMITH_PROJECT")
    langsmith_tracing_v2: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")

    # Product search provider; missing credentials switch to mock results
    product_search_base_url: str | None = Field(default=None, alias="PRODUCT_SEARCH_BASE_URL")
    product_search_token: str | None = Field(default=None, alias="PRODUCT_SEARCH_TOKEN")
    product_search_max_results: int = Field(default=6, alias="PRODUCT_SEARCH_MAX_RESULTS")
    product_search_cache_ttl_seconds: int = Field(default=600, alias="PRODUCT_SEARCH_CACHE_TTL")
    product_partner_tag: str | None = Field(default=None, alias="PRODUCT_PARTNER_TAG")

    # Multi-pass generation
    min_suggestions: int = Field(default=3, alias="MIN_SUGGESTIONS")
    max_suggestions: int = Field(default=10, alias="MAX_SUGGESTIONS")
    default_suggestions: int = Field(default=5, alias="DEFAULT_SUGGESTIONS")
    max_extra_passes: int = Field(default=3, alias="MAX_EXTRA_PASSES")
    top_up_buffer: int = Field(default=2, alias="TOP_UP_BUFFER")
    exclusion_prompt_cap: int = Field(default=30, alias="EXCLUSION_PROMPT_CAP")

    # Exclusion history
    history_window_days: int = Field(default=90, alias="HISTORY_WINDOW_DAYS")
    history_max_runs: int = Field(default=24, alias="HISTORY_MAX_RUNS")
    history_ideas_per_run: int = Field(default=20, alias="HISTORY_IDEAS_PER_RUN")

    # Prompt context
    notes_max_chars: int = Field(default=280, alias="NOTES_MAX_CHARS")
    recent_gifts_limit: int = Field(default=3, alias="RECENT_GIFTS_LIMIT")

    # Placeholder detection heuristics
    placeholder_title_patterns: List[str] = Field(
        default_factory=lambda: [r"^idea\s*\d+", r"^placeholder$"],
        alias="PLACEHOLDER_TITLE_PATTERNS",
    )
    placeholder_style_patterns: List[str] = Field(
        default_factory=lambda: [r"^(gift\s+)?(idea|suggestion|option)\s*#?\d*$"],
        alias="PLACEHOLDER_STYLE_PATTERNS",
    )
    filler_descriptions: List[str] = Field(
        default_factory=lambda: ["Thoughtful gift idea.", "Gift idea."],
        alias="FILLER_DESCRIPTIONS",
    )

    admin_emails: List[str] = Field(default_factory=list, alias="ADMIN_EMAILS")

    # Rate limiting settings
    suggestion_rate_limit_window_seconds: int = Field(default=60, alias="SUGGESTION_RATE_LIMIT_WINDOW")
    suggestion_rate_limit_max_calls: int = Field(default=10, alias="SUGGESTION_RATE_LIMIT_MAX_CALLS")

    mock_data_path: str | None = Field(default=None, alias="MOCK_DATA_PATH")

    @model_validator(mode="after")
    def _check_suggestion_bounds(self) -> "Settings":
        if not 1 <= self.min_suggestions <= self.default_suggestions <= self.max_suggestions:
            raise ValueError("MIN_SUGGESTIONS <= DEFAULT_SUGGESTIONS <= MAX_SUGGESTIONS must hold")
        if self.max_extra_passes < 0 or self.top_up_buffer < 0:
            raise ValueError("MAX_EXTRA_PASSES and TOP_UP_BUFFER must not be negative")
        return self

    @property
    def product_search_live(self) -> bool:
        return bool(self.product_search_base_url and self.product_search_token)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
