"""Core data models for the job search engine."""

import hashlib
import json
import re
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

CACHE_PREFIX = "job_cache_"

_KEY_UNSAFE = re.compile(r"[^a-z0-9]+")
_KEY_SLUG_LENGTH = 40


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"


class SearchRequest(BaseModel):
    """A user search: what to look for, where, and how many pages to pull.

    Identity for caching is (query, location, job_type, experience_level),
    case-normalized; max_pages and results_per_page do not affect it.
    """

    model_config = ConfigDict(frozen=True)

    query: str
    location: str | None = None
    job_type: str | None = None
    experience_level: ExperienceLevel | None = None
    max_pages: int = Field(default=5, ge=1, le=10)
    results_per_page: int = Field(default=10, ge=1)

    @field_validator("query")
    @classmethod
    def query_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "query must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("location", "job_type")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def cache_key(self) -> str:
        """Readable slug plus a digest of the normalized identity tuple.

        The slug is only for humans; the digest keeps distinct requests apart
        even when their slugs coincide (non-ASCII queries, "any" as text).
        """
        level = self.experience_level.value if self.experience_level else None
        identity = [
            self.query.lower(),
            self.location.lower() if self.location else None,
            self.job_type.lower() if self.job_type else None,
            level,
        ]
        digest = hashlib.sha256(json.dumps(identity).encode()).hexdigest()[:16]
        parts = [self.query, self.location or "any", self.job_type or "any", level or "any"]
        slug = _KEY_UNSAFE.sub("_", "_".join(parts).lower()).strip("_")[:_KEY_SLUG_LENGTH]
        return f"{CACHE_PREFIX}{slug}_{digest}"


class Job(BaseModel):
    """A normalized job listing.

    Frozen: re-normalization produces new instances instead of mutating.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(min_length=1)
    company: str = Field(min_length=1)
    location: str = "Location not specified"
    salary: str = "Salary not specified"
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str | None = None
    posted_date: str = "Recently posted"
    posted_at: datetime | None = None
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    job_type: str = "full-time"
    experience_level: ExperienceLevel = ExperienceLevel.MID
    remote: bool = False
    apply_url: str | None = None
    match_score: int = Field(default=60, ge=0, le=100)
    employer_logo: str | None = None
    company_type: str | None = None


class SearchProgress(BaseModel):
    """One snapshot of a progressive search. Each snapshot carries every job so far."""

    model_config = ConfigDict(frozen=True)

    jobs_so_far: list[Job]
    is_final: bool = False


class CacheEntry(BaseModel):
    """A stored result set keyed by SearchRequest.cache_key."""

    key: str
    jobs: list[Job]
    stored_at: datetime
    total_at_store_time: int = Field(ge=0)
    request: SearchRequest | None = None


class BudgetState(BaseModel):
    """Persisted request counter for one calendar month."""

    period_key: str
    used_count: int = Field(default=0, ge=0)


class BudgetStats(BaseModel):
    used: int
    remaining: int
    reset_date: date


class CacheStats(BaseModel):
    entry_count: int
    approximate_byte_size: int


class EngineStats(BaseModel):
    """Operator/debug view of the shared budget and cache."""

    budget: BudgetState
    budget_stats: BudgetStats
    cache: CacheStats


class RecentSearch(BaseModel):
    query: str
    location: str | None = None
    searched_at: datetime = Field(default_factory=datetime.now)
