"""Response normalizer: raw JSearch records -> canonical Job objects.

Every helper is a pure function so each rule can be tested on its own.
Records without a title are dropped silently (not counted as errors).
Already-normalized Job instances pass through unchanged, which keeps
re-normalizing an accumulated page buffer idempotent.
"""

import hashlib
import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from jobscout.core.schemas import ExperienceLevel, Job

logger = logging.getLogger(__name__)

LOCATION_FALLBACK = "Location not specified"
SALARY_FALLBACK = "Salary not specified"
COMPANY_FALLBACK = "Company Name Not Available"
DESCRIPTION_FALLBACK = "No description available"
POSTED_FALLBACK = "Recently posted"

MAX_REQUIREMENTS = 5
GENERIC_REQUIREMENTS = ("Relevant experience required", "Strong communication skills")

# Scanned in this order; the first MAX_REQUIREMENTS hits are kept.
TECH_SKILLS: tuple[str, ...] = (
    "react native", "typescript", "javascript", "react", "node.js", "python", "java",
    "swift", "kotlin", "flutter", "ios", "android", "mobile development",
    "api", "rest api", "graphql", "database", "sql", "nosql", "mongodb",
    "aws", "azure", "git", "agile", "scrum", "ci/cd",
)

# Checked in order; first match wins.
_EXPERIENCE_RULES: tuple[tuple[tuple[str, ...], ExperienceLevel], ...] = (
    (("senior", "lead"), ExperienceLevel.SENIOR),
    (("junior", "entry"), ExperienceLevel.ENTRY),
    (("executive", "director"), ExperienceLevel.EXECUTIVE),
)

EMPLOYMENT_TYPE_MAP: dict[str, str] = {
    "fulltime": "full-time",
    "full-time": "full-time",
    "parttime": "part-time",
    "part-time": "part-time",
    "contractor": "contract",
    "contract": "contract",
    "intern": "internship",
    "internship": "internship",
}

MATCH_BASE = 60
MATCH_CAP = 95
DESCRIPTION_BONUS_MIN_CHARS = 100


def normalize(
    records: Iterable[Mapping[str, Any] | Job],
    now: datetime | None = None,
) -> list[Job]:
    """Normalize raw upstream records into Jobs, preserving order.

    Args:
        records: Raw JSearch ``data`` items (dicts) or already-normalized Jobs.
        now: Reference time for relative posted dates. Defaults to current UTC time.

    Returns:
        Jobs with non-empty title and company. Untitled records are dropped.
    """
    reference = _as_utc(now or datetime.now(timezone.utc))
    jobs: list[Job] = []
    dropped = 0
    for index, record in enumerate(records):
        if isinstance(record, Job):
            jobs.append(record)
            continue
        if not isinstance(record, Mapping):
            logger.debug("Skipping non-object record at index %d", index)
            dropped += 1
            continue
        job = normalize_record(record, index, reference)
        if job is None:
            dropped += 1
        else:
            jobs.append(job)
    if dropped:
        logger.debug("Normalizer dropped %d records without a usable title", dropped)
    return jobs


def normalize_record(
    raw: Mapping[str, Any],
    index: int = 0,
    now: datetime | None = None,
) -> Job | None:
    """Normalize one record. Returns None if the title cannot be determined."""
    title = _text(raw.get("job_title"))
    if not title:
        return None

    company = _text(raw.get("employer_name")) or COMPANY_FALLBACK
    location = format_location(raw)
    description = _text(raw.get("job_description"))
    posted_at = parse_posted_at(raw)
    salary_min = _number(raw.get("job_min_salary"))
    salary_max = _number(raw.get("job_max_salary"))
    has_numbers = salary_min is not None or salary_max is not None

    return Job(
        id=_text(raw.get("job_id")) or synthesize_id(title, company, location, index),
        title=title,
        company=company,
        location=location,
        salary=format_salary(raw),
        salary_min=salary_min,
        salary_max=salary_max,
        salary_currency=(_text(raw.get("job_salary_currency")) or "USD") if has_numbers else None,
        posted_date=format_posted_date(posted_at, now),
        posted_at=posted_at,
        description=description or DESCRIPTION_FALLBACK,
        requirements=extract_requirements(description),
        job_type=normalize_job_type(raw.get("job_employment_type")),
        experience_level=determine_experience_level(title),
        remote=bool(raw.get("job_is_remote")),
        apply_url=_text(raw.get("job_apply_link")) or None,
        match_score=calculate_match_score(raw),
        employer_logo=_text(raw.get("employer_logo")) or None,
        company_type=_text(raw.get("employer_company_type")) or None,
    )


def format_location(raw: Mapping[str, Any]) -> str:
    """City + state when present, else country, else a placeholder."""
    parts = [p for p in (_text(raw.get("job_city")), _text(raw.get("job_state"))) if p]
    if not parts:
        country = _text(raw.get("job_country"))
        if country:
            parts.append(country)
    return ", ".join(parts) if parts else LOCATION_FALLBACK


def format_salary(raw: Mapping[str, Any]) -> str:
    """Explicit salary text, else a range synthesized from the numeric fields."""
    explicit = _text(raw.get("job_salary"))
    if explicit:
        return explicit

    low = _number(raw.get("job_min_salary"))
    high = _number(raw.get("job_max_salary"))
    currency = _text(raw.get("job_salary_currency")) or "USD"
    period = (_text(raw.get("job_salary_period")) or "year").lower()

    if low and high:
        return f"${_money(low)} - ${_money(high)} {currency}/{period}"
    if low:
        return f"From ${_money(low)} {currency}/{period}"
    return SALARY_FALLBACK


def extract_requirements(description: str) -> list[str]:
    """Technology keywords found in the description, or two generic phrases."""
    text = description.lower()
    found = [skill for skill in TECH_SKILLS if skill in text][:MAX_REQUIREMENTS]
    if not found:
        return list(GENERIC_REQUIREMENTS)
    return [_capitalize_words(skill) for skill in found]


def determine_experience_level(title: str) -> ExperienceLevel:
    title_lower = title.lower()
    for keywords, level in _EXPERIENCE_RULES:
        if any(kw in title_lower for kw in keywords):
            return level
    return ExperienceLevel.MID


def normalize_job_type(value: Any) -> str:
    text = _text(value)
    if not text:
        return "full-time"
    # JSearch may send a comma-separated list, e.g. "FULLTIME, CONTRACTOR"
    first = text.split(",")[0].strip().lower()
    return EMPLOYMENT_TYPE_MAP.get(first, first)


def parse_posted_at(raw: Mapping[str, Any]) -> datetime | None:
    """Absolute posting time from the ISO field, falling back to the epoch field."""
    iso = _text(raw.get("job_posted_at_datetime_utc"))
    if iso:
        try:
            return _as_utc(datetime.fromisoformat(iso.replace("Z", "+00:00")))
        except ValueError:
            logger.debug("Unparseable posted date: %r", iso)
    stamp = _number(raw.get("job_posted_at_timestamp"))
    if stamp is not None:
        try:
            return datetime.fromtimestamp(stamp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("Unparseable posted timestamp: %r", stamp)
    return None


def format_posted_date(posted_at: datetime | None, now: datetime | None = None) -> str:
    """Human-relative age: days under a week, weeks under 30 days, then months."""
    if posted_at is None:
        return POSTED_FALLBACK
    reference = _as_utc(now or datetime.now(timezone.utc))
    seconds = abs((reference - _as_utc(posted_at)).total_seconds())
    days = math.ceil(seconds / 86400)

    if days == 0:
        return "Today"
    if days < 7:
        return _plural(days, "day")
    if days < 30:
        return _plural(math.ceil(days / 7), "week")
    return _plural(math.ceil(days / 30), "month")


def calculate_match_score(raw: Mapping[str, Any]) -> int:
    """Heuristic completeness score: 60 base plus bonuses, capped at 95."""
    score = MATCH_BASE
    if len(_text(raw.get("job_description"))) > DESCRIPTION_BONUS_MIN_CHARS:
        score += 10
    if _text(raw.get("job_apply_link")):
        score += 5
    if _text(raw.get("job_salary")) or _number(raw.get("job_min_salary")):
        score += 10
    if _text(raw.get("employer_logo")):
        score += 5
    benefits = raw.get("job_benefits")
    if isinstance(benefits, list) and benefits:
        score += 10
    return min(score, MATCH_CAP)


def synthesize_id(title: str, company: str, location: str, index: int) -> str:
    """Stable id for records the provider did not identify."""
    digest = hashlib.sha1(f"{title}|{company}|{location}|{index}".encode()).hexdigest()
    return f"jsearch-{digest[:12]}"


# --- Private helpers ---


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _money(value: float) -> str:
    if value.is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _capitalize_words(skill: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in skill.split(" "))


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit} ago" if count == 1 else f"{count} {unit}s ago"


def _as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware/naive values compare safely."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
