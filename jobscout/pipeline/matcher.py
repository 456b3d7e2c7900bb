"""Client-side filters applied to normalized jobs after every page.

Filter order:
  1. LocationMatcher       — fuzzy locality match with state-name expansion
  2. ExperienceLevelFilter — optional, exact level match

Both are best-effort narrowing, not a guarantee of exact locality.
"""

import logging
import re
from collections.abc import Callable
from datetime import timezone

from jobscout.core.schemas import ExperienceLevel, Job

logger = logging.getLogger(__name__)

# A filter is a callable that takes jobs and returns a subset, order preserved.
Filter = Callable[[list[Job]], list[Job]]

STOP_WORDS = frozenset({"the", "of", "and", "or", "in", "at", "to", "for", "with"})

# Terms shorter than this only match whole words ("ca" must not hit "chicago").
MIN_FUZZY_TERM_LENGTH = 3

STATE_VARIANTS: dict[str, tuple[str, ...]] = {
    "california": ("ca", "calif"),
    "ca": ("california", "calif"),
    "new york": ("ny", "new york state"),
    "ny": ("new york", "new york state"),
    "texas": ("tx", "tex"),
    "tx": ("texas", "tex"),
    "florida": ("fl", "fla"),
    "fl": ("florida", "fla"),
    "illinois": ("il", "ill"),
    "il": ("illinois", "ill"),
    "pennsylvania": ("pa", "penn"),
    "pa": ("pennsylvania", "penn"),
    "ohio": ("oh",),
    "oh": ("ohio",),
    "michigan": ("mi", "mich"),
    "mi": ("michigan", "mich"),
    "georgia": ("ga",),
    "ga": ("georgia",),
    "north carolina": ("nc", "n.c."),
    "nc": ("north carolina", "n.c."),
    "virginia": ("va", "virg"),
    "va": ("virginia", "virg"),
    "washington": ("wa", "wash"),
    "wa": ("washington", "wash"),
    "massachusetts": ("ma", "mass"),
    "ma": ("massachusetts", "mass"),
    "arizona": ("az", "ariz"),
    "az": ("arizona", "ariz"),
    "colorado": ("co", "colo"),
    "co": ("colorado", "colo"),
    "nevada": ("nv", "nev"),
    "nv": ("nevada", "nev"),
}

SORT_ORDERS = ("relevance", "recent", "match")


class LocationMatcher:
    """Keep jobs whose location matches the requested one.

    An empty or blank requested location makes the matcher a no-op.
    """

    def __init__(self, requested_location: str | None) -> None:
        self._requested = (requested_location or "").strip()
        self.search_terms = extract_search_terms(self._requested) if self._requested else []

    def __call__(self, jobs: list[Job]) -> list[Job]:
        if not self.search_terms:
            return jobs
        result = [job for job in jobs if self.matches(job.location)]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug(
                "LocationMatcher: %d -> %d jobs for '%s'",
                len(jobs), len(result), self._requested,
            )
        return result

    def filter(self, jobs: list[Job]) -> list[Job]:
        return self(jobs)

    def matches(self, job_location: str) -> bool:
        location = job_location.lower()
        return any(
            _contains_term(location, term) or _fuzzy_match(location, term)
            for term in self.search_terms
        )


class ExperienceLevelFilter:
    """Keep only jobs at the requested experience level.

    If level is None, the filter is a no-op.
    """

    def __init__(self, level: ExperienceLevel | None) -> None:
        self._level = level

    def __call__(self, jobs: list[Job]) -> list[Job]:
        if self._level is None:
            return jobs
        result = [job for job in jobs if job.experience_level == self._level]
        removed = len(jobs) - len(result)
        if removed:
            logger.debug("ExperienceLevelFilter: removed %d jobs", removed)
        return result


def filter_by_location(jobs: list[Job], requested_location: str | None) -> list[Job]:
    return LocationMatcher(requested_location)(jobs)


def extract_search_terms(location: str) -> list[str]:
    """Full location, its comma-separated parts, and state-name variations, deduplicated."""
    clean = location.lower().strip()
    if not clean:
        return []
    terms = [clean]
    if "," in clean:
        terms.extend(part.strip() for part in clean.split(",") if part.strip())
    terms.extend(location_variations(clean))
    return list(dict.fromkeys(terms))


def location_variations(location: str) -> list[str]:
    """Abbreviation/full-name variants for every state named in location."""
    variations: list[str] = []
    for key, variants in STATE_VARIANTS.items():
        if _contains_word(location, key):
            variations.extend(variants)
    return variations


def run_filter_chain(jobs: list[Job], filters: list[Filter]) -> list[Job]:
    """Apply filters in order, returning the surviving jobs."""
    result = jobs
    for f in filters:
        result = f(result)
    return result


def sort_jobs(jobs: list[Job], order: str = "relevance") -> list[Job]:
    """Order jobs for display.

    ``relevance`` keeps upstream order, ``recent`` puts the newest posting
    first (unknown dates last), ``match`` puts the highest match score first.
    """
    if order == "relevance":
        return list(jobs)
    if order == "recent":
        return sorted(jobs, key=_recency_key)
    if order == "match":
        return sorted(jobs, key=lambda job: job.match_score, reverse=True)
    msg = f"Unknown sort order '{order}'. Available: {', '.join(SORT_ORDERS)}"
    raise ValueError(msg)


# --- Private helpers ---


def _contains_term(location: str, term: str) -> bool:
    if len(term) < MIN_FUZZY_TERM_LENGTH:
        return _contains_word(location, term)
    return term in location


def _fuzzy_match(location: str, term: str) -> bool:
    """Substring match after dropping stop words from both sides."""
    clean_term = _strip_stop_words(term)
    if len(clean_term) < MIN_FUZZY_TERM_LENGTH:
        return False
    return clean_term in _strip_stop_words(location)


def _strip_stop_words(text: str) -> str:
    return " ".join(word for word in text.split() if word not in STOP_WORDS)


def _contains_word(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", text) is not None


def _recency_key(job: Job) -> tuple[bool, float]:
    if job.posted_at is None:
        return (True, 0.0)
    posted = job.posted_at
    if posted.tzinfo is None:
        posted = posted.replace(tzinfo=timezone.utc)
    return (False, -posted.timestamp())
