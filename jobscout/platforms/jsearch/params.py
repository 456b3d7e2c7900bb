"""JSearch query parameter builder and pagination helpers.

Pure functions — zero network dependency.
"""

import logging

from jobscout.core.schemas import SearchRequest

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 10

EMPLOYMENT_TYPE_MAP: dict[str, str] = {
    "full-time": "FULLTIME",
    "fulltime": "FULLTIME",
    "part-time": "PARTTIME",
    "parttime": "PARTTIME",
    "contract": "CONTRACTOR",
    "contractor": "CONTRACTOR",
    "internship": "INTERN",
    "intern": "INTERN",
}


def build_params(
    request: SearchRequest,
    page: int,
    date_posted: str = "month",
) -> dict[str, str]:
    """Build the query string for one JSearch ``/search`` call.

    Args:
        request: The search being paged through.
        page: One-based page number.
        date_posted: JSearch recency window (all, today, 3days, week, month).

    Returns:
        Query parameters; one page per call (``num_pages=1``).
    """
    if page < 1:
        msg = f"page must be >= 1, got {page}"
        raise ValueError(msg)

    params: dict[str, str] = {
        "query": request.query,
        "page": str(page),
        "num_pages": "1",
        "date_posted": date_posted,
    }
    location = format_location_param(request.location)
    if location:
        params["location"] = location

    if request.job_type:
        code = EMPLOYMENT_TYPE_MAP.get(request.job_type.lower().strip())
        if code is None:
            logger.warning("Unknown job_type value '%s' — skipping", request.job_type)
        else:
            params["employment_types"] = code

    return params


def format_location_param(location: str | None) -> str | None:
    """Collapse inner whitespace; "City, State" is passed through as-is."""
    if not location:
        return None
    cleaned = " ".join(location.split())
    return cleaned or None


def should_stop_pagination(records_found: int, per_page: int = RESULTS_PER_PAGE) -> bool:
    """Return True if the page was not full, meaning it was the last one."""
    return records_found < per_page
