"""Result cache: 24h time-boxed, size-bounded store of prior search results.

Entries are written through to the key-value store (``job_cache_`` prefix) and
reloaded on construction, so a restart keeps still-valid results.
Expiry is lazy: an expired entry is deleted when it is looked up.
Eviction removes the oldest entries by ``stored_at`` once the bound is exceeded.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from pydantic import ValidationError

from jobscout.core.config import CacheConfig
from jobscout.core.schemas import CACHE_PREFIX, CacheEntry, CacheStats, Job, SearchRequest
from jobscout.core.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(hours=24)
DEFAULT_MAX_ENTRIES = 50


class ResultCache:
    """Keyed cache of normalized job lists.

    Usage::

        cache = ResultCache(store)
        jobs = cache.get(request.cache_key)
        if jobs is None:
            ...  # fetch
            cache.put(request.cache_key, jobs, total=len(jobs))
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if max_entries < 1:
            msg = "max_entries must be at least 1"
            raise ValueError(msg)
        self._store = store
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        self._sizes: dict[str, int] = {}
        self._load()

    @classmethod
    def from_config(
        cls,
        store: KeyValueStore,
        config: CacheConfig,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "ResultCache":
        return cls(
            store,
            ttl=timedelta(hours=config.ttl_hours),
            max_entries=config.max_entries,
            clock=clock,
        )

    def get(self, key: str) -> list[Job] | None:
        """Return cached jobs for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                logger.debug("Cache entry expired: %s", key)
                self._delete(key)
                return None
            logger.info("Cache hit: %s (%d jobs)", key, len(entry.jobs))
            return list(entry.jobs)

    def put(
        self,
        key: str,
        jobs: list[Job],
        total: int,
        request: SearchRequest | None = None,
    ) -> None:
        """Insert or refresh an entry, then evict down to the size bound."""
        entry = CacheEntry(
            key=key,
            jobs=list(jobs),
            stored_at=self._clock(),
            total_at_store_time=total,
            request=request,
        )
        payload = entry.model_dump_json()
        with self._lock:
            self._store.set(key, payload)
            # pop first so a refreshed key moves to the end of insertion order
            self._entries.pop(key, None)
            self._entries[key] = entry
            self._sizes[key] = len(payload)
            logger.info("Cached %d jobs under %s", len(jobs), key)
            self._evict()

    def remove(self, key: str) -> None:
        with self._lock:
            self._delete(key)

    def clear(self) -> None:
        with self._lock:
            keys = self._store.list_keys(CACHE_PREFIX)
            self._store.remove_all(keys)
            self._entries.clear()
            self._sizes.clear()
            logger.info("Cleared %d cache entries", len(keys))

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entry_count=len(self._entries),
                approximate_byte_size=sum(self._sizes.values()),
            )

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Private helpers ---

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at >= self._ttl

    def _delete(self, key: str) -> None:
        self._entries.pop(key, None)
        self._sizes.pop(key, None)
        self._store.remove(key)

    def _evict(self) -> None:
        excess = len(self._entries) - self._max_entries
        if excess <= 0:
            return
        # sorted() is stable, so equal timestamps fall back to insertion order
        oldest = sorted(self._entries.values(), key=lambda e: e.stored_at)[:excess]
        for entry in oldest:
            self._delete(entry.key)
        logger.info("Evicted %d old cache entries", len(oldest))

    def _load(self) -> None:
        """Rebuild the in-memory index from the store, dropping expired or corrupt entries."""
        loaded: list[tuple[str, CacheEntry, int]] = []
        for key in self._store.list_keys(CACHE_PREFIX):
            raw = self._store.get(key)
            if raw is None:
                continue
            try:
                entry = CacheEntry.model_validate_json(raw)
            except ValidationError:
                logger.warning("Removing unreadable cache entry: %s", key)
                self._store.remove(key)
                continue
            if self._is_expired(entry):
                self._store.remove(key)
                continue
            loaded.append((key, entry, len(raw)))

        for key, entry, size in sorted(loaded, key=lambda item: item[1].stored_at):
            self._entries[key] = entry
            self._sizes[key] = size
        if loaded:
            logger.debug("Loaded %d cache entries from store", len(loaded))
        self._evict()
