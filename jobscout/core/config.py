"""Configuration models and YAML loader for the job search engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class DatabaseConfig(BaseModel):
    """Key-value store location (cache entries, budget, recent searches)."""

    path: str = "data/jobscout.db"


class BudgetConfig(BaseModel):
    """Monthly ceiling on upstream requests."""

    monthly_limit: int = Field(default=200, ge=1)


class CacheConfig(BaseModel):
    """Result cache validity window and size bound."""

    ttl_hours: float = Field(default=24.0, gt=0)
    max_entries: int = Field(default=50, ge=1)


class UpstreamConfig(BaseModel):
    """JSearch (RapidAPI) endpoint and request pacing."""

    base_url: str = "https://jsearch.p.rapidapi.com"
    host: str = "jsearch.p.rapidapi.com"
    api_key_env: str = "RAPIDAPI_KEY"
    first_page_timeout_s: float = Field(default=10.0, gt=0)
    background_timeout_s: float = Field(default=8.0, gt=0)
    page_delay_s: float = Field(default=0.3, ge=0)
    timeout_retry_delay_s: float = Field(default=1.0, ge=0)
    results_per_page: int = Field(default=10, ge=1)
    date_posted: str = "month"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class SearchDefaults(BaseModel):
    """Defaults applied to searches started from the CLI."""

    default_query: str = "Software Engineer"
    max_pages: int = Field(default=5, ge=1, le=10)
    supersede_previous: bool = True
    progress_buffer: int = Field(default=8, ge=1)


class RecentConfig(BaseModel):
    """Recent searches list bound."""

    max_searches: int = Field(default=10, ge=1)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    recent: RecentConfig = Field(default_factory=RecentConfig)

    @model_validator(mode="after")
    def timeouts_ordered(self) -> "Settings":
        if self.upstream.timeout_retry_delay_s < self.upstream.page_delay_s:
            msg = "upstream.timeout_retry_delay_s must not be shorter than page_delay_s"
            raise ValueError(msg)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
