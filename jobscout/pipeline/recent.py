"""Recent searches: a short, deduplicated, newest-first history."""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from jobscout.core.schemas import RecentSearch
from jobscout.core.store import KeyValueStore

logger = logging.getLogger(__name__)

RECENT_SEARCHES_KEY = "recent_searches"
DEFAULT_MAX_SEARCHES = 10
QUICK_SUGGESTIONS = 5

_LIST_ADAPTER = TypeAdapter(list[RecentSearch])


class RecentSearches:
    """Persisted list of the user's last searches.

    Two searches are the same if their queries match case-insensitively and
    their locations match exactly.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_searches: int = DEFAULT_MAX_SEARCHES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._max = max_searches
        self._clock = clock

    def entries(self) -> list[RecentSearch]:
        """All recent searches, most recent first."""
        raw = self._store.get(RECENT_SEARCHES_KEY)
        if not raw:
            return []
        try:
            searches = _LIST_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable recent searches")
            return []
        return sorted(searches, key=lambda s: s.searched_at, reverse=True)

    def add(self, query: str, location: str | None = None) -> RecentSearch:
        entry = RecentSearch(
            query=query.strip(),
            location=(location or "").strip() or None,
            searched_at=self._clock(),
        )
        kept = [s for s in self.entries() if not _same(s, entry.query, entry.location)]
        self._save([entry, *kept][: self._max])
        logger.debug("Added recent search: %s", describe(entry))
        return entry

    def remove(self, query: str, location: str | None = None) -> None:
        kept = [s for s in self.entries() if not _same(s, query, location)]
        self._save(kept)

    def clear(self) -> None:
        self._store.remove(RECENT_SEARCHES_KEY)
        logger.info("Cleared recent searches")

    def recent_queries(self, limit: int = QUICK_SUGGESTIONS) -> list[str]:
        """Unique queries, most recent first, for quick suggestions."""
        queries = list(dict.fromkeys(s.query for s in self.entries()))
        return queries[:limit]

    def _save(self, searches: list[RecentSearch]) -> None:
        self._store.set(RECENT_SEARCHES_KEY, _LIST_ADAPTER.dump_json(searches).decode())


def describe(search: RecentSearch) -> str:
    """Display form: ``query in location`` or just the query."""
    if search.location:
        return f"{search.query} in {search.location}"
    return search.query


def time_since(search: RecentSearch, now: datetime | None = None) -> str:
    """Coarse age of a search for display."""
    delta = (now or datetime.now()) - search.searched_at
    hours = int(delta.total_seconds() // 3600)
    days = delta.days
    if hours < 1:
        return "Just now"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days < 7:
        return f"{days} day{'s' if days > 1 else ''} ago"
    return "Over a week ago"


def _same(search: RecentSearch, query: str, location: str | None) -> bool:
    return (
        search.query.lower() == query.strip().lower()
        and (search.location or "") == ((location or "").strip())
    )
