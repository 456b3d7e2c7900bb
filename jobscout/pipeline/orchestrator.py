"""Orchestrator: wires cache, budget, paged upstream fetch, normalizer and filters.

Data flow:
  1. Cache check        — hit returns immediately, no budget touched
  2. Budget check       — refusal returns an empty, flagged result
  3. First page         — short timeout, errors propagate to the caller
  4. Normalize + filter — returned synchronously as the initial result
  5. Background pages   — 2..max_pages, one task per cache key, snapshots
                          streamed through a ProgressChannel
  6. Cache write        — final non-empty set only, never after cancellation
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from jobscout.core.config import Settings
from jobscout.core.schemas import EngineStats, Job, SearchProgress, SearchRequest
from jobscout.core.store import KeyValueStore
from jobscout.pipeline.budget import RequestBudget
from jobscout.pipeline.cache import ResultCache
from jobscout.pipeline.matcher import (
    ExperienceLevelFilter,
    Filter,
    LocationMatcher,
    run_filter_chain,
)
from jobscout.pipeline.normalizer import normalize
from jobscout.pipeline.progress import DEFAULT_BUFFER, ProgressChannel
from jobscout.platforms.base import UpstreamClient
from jobscout.platforms.errors import UpstreamError, UpstreamTimeoutError
from jobscout.platforms.jsearch.params import should_stop_pagination

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SearchProgress], Any]

FIRST_PAGE_TIMEOUT_S = 10.0
BACKGROUND_TIMEOUT_S = 8.0
PAGE_DELAY_S = 0.3
TIMEOUT_RETRY_DELAY_S = 1.0

FIRST_PAGE_TIMEOUT_MESSAGE = (
    "Search request timed out. The job search API might be slow. "
    "Try a more specific query or try again later."
)


class SearchResult:
    """Outcome of one ``SearchOrchestrator.search`` call.

    ``progress`` is set only when a background phase was started; iterate it
    to receive growing snapshots until the final one.
    """

    def __init__(
        self,
        key: str,
        jobs: list[Job],
        *,
        has_more: bool = False,
        budget_exhausted: bool = False,
        from_cache: bool = False,
        progress: ProgressChannel | None = None,
    ) -> None:
        self.key = key
        self.jobs = jobs
        self.total = len(jobs)
        self.has_more = has_more
        self.budget_exhausted = budget_exhausted
        self.from_cache = from_cache
        self.progress = progress

    def __repr__(self) -> str:
        return (
            f"SearchResult(key={self.key!r}, total={self.total}, has_more={self.has_more}, "
            f"budget_exhausted={self.budget_exhausted}, from_cache={self.from_cache})"
        )


@dataclass
class _BackgroundFetch:
    """In-flight search for one cache key, from page 1 through the page loop."""

    key: str
    channel: ProgressChannel
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    task: "asyncio.Task[None] | None" = None
    # size of the last set handed to the caller, starting with the first page
    emitted: int = 0


class SearchOrchestrator:
    """Progressive, budget-aware, cached job search.

    Usage::

        orchestrator = SearchOrchestrator(client, budget, cache)
        result = await orchestrator.search(SearchRequest(query="Python"))
        show(result.jobs)
        if result.progress is not None:
            async for progress in result.progress:
                show(progress.jobs_so_far)
    """

    def __init__(
        self,
        client: UpstreamClient,
        budget: RequestBudget,
        cache: ResultCache,
        *,
        first_page_timeout: float = FIRST_PAGE_TIMEOUT_S,
        background_timeout: float = BACKGROUND_TIMEOUT_S,
        page_delay: float = PAGE_DELAY_S,
        timeout_retry_delay: float = TIMEOUT_RETRY_DELAY_S,
        supersede_previous: bool = True,
        progress_buffer: int = DEFAULT_BUFFER,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._budget = budget
        self._cache = cache
        self._first_page_timeout = first_page_timeout
        self._background_timeout = background_timeout
        self._page_delay = page_delay
        self._timeout_retry_delay = timeout_retry_delay
        self._supersede_previous = supersede_previous
        self._progress_buffer = progress_buffer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._active: dict[str, _BackgroundFetch] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: UpstreamClient,
        store: KeyValueStore,
    ) -> "SearchOrchestrator":
        """Build the process-wide budget and cache from settings and wire them in."""
        budget = RequestBudget.from_config(store, settings.budget)
        cache = ResultCache.from_config(store, settings.cache)
        upstream = settings.upstream
        return cls(
            client,
            budget,
            cache,
            first_page_timeout=upstream.first_page_timeout_s,
            background_timeout=upstream.background_timeout_s,
            page_delay=upstream.page_delay_s,
            timeout_retry_delay=upstream.timeout_retry_delay_s,
            supersede_previous=settings.search.supersede_previous,
            progress_buffer=settings.search.progress_buffer,
        )

    @property
    def budget(self) -> RequestBudget:
        return self._budget

    @property
    def cache(self) -> ResultCache:
        return self._cache

    def active_keys(self) -> list[str]:
        return list(self._active)

    async def search(
        self,
        request: SearchRequest,
        on_progress: ProgressCallback | None = None,
    ) -> SearchResult:
        """Run a search and return the first batch of results.

        Raises:
            UpstreamTimeoutError: Page 1 timed out.
            UpstreamError: Page 1 failed for any other reason.
        """
        key = request.cache_key
        self._stop_superseded(key)

        # Step 1: Cache
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("Returning %d cached jobs for '%s'", len(cached), request.query)
            return SearchResult(key, cached, from_cache=True)

        # Step 2: Budget
        consumed = self._budget.try_consume()
        if not consumed.allowed:
            logger.warning("Request budget exhausted — no results for '%s'", request.query)
            return SearchResult(key, [], budget_exhausted=True)

        # Step 3: First page
        # visible to cancel() and newer searches while page 1 is in flight
        fetch = _BackgroundFetch(key=key, channel=ProgressChannel(self._progress_buffer))
        self._active[key] = fetch
        logger.info(
            "Searching '%s' (location=%s, max_pages=%d, %d requests left)",
            request.query, request.location or "any", request.max_pages, consumed.remaining,
        )
        try:
            raw = await self._fetch_first_page(request)
        except BaseException:
            self._release(fetch)
            raise

        # Step 4: Normalize + filter
        now = self._clock()
        filters = self._build_filters(request)
        buffer: list[dict[str, Any]] = list(raw)
        jobs = self._refine(buffer, filters, now)
        logger.info("Page 1: %d raw records, %d jobs after filtering", len(raw), len(jobs))

        if fetch.stop.is_set():
            logger.info("Search for '%s' superseded during page 1 — not continuing", request.query)
            return SearchResult(key, jobs)

        if request.max_pages == 1 or should_stop_pagination(len(raw), request.results_per_page):
            self._release(fetch)
            self._store_final(request, jobs)
            return SearchResult(key, jobs)

        # Step 5: Background pages
        fetch.emitted = len(jobs)
        fetch.task = asyncio.create_task(
            self._fetch_remaining(request, fetch, buffer, jobs, filters, now, on_progress),
            name=f"jobscout-background:{key}",
        )
        fetch.task.add_done_callback(lambda task: self._forget(fetch, task))
        return SearchResult(key, jobs, has_more=True, progress=fetch.channel)

    def cancel(self, key: str) -> bool:
        """Signal the background fetch for key to stop. Returns False if none was running."""
        fetch = self._active.pop(key, None)
        if fetch is None:
            return False
        fetch.stop.set()
        fetch.channel.close()
        logger.info("Cancelled background fetch for %s", key)
        return True

    async def join(self, key: str) -> SearchProgress | None:
        """Wait for the background fetch for key; return its last snapshot."""
        fetch = self._active.get(key)
        if fetch is None or fetch.task is None:
            return None
        await asyncio.shield(fetch.task)
        return fetch.channel.latest

    def clear_cache(self) -> None:
        """Stop every background fetch and drop all cached results."""
        for key in list(self._active):
            self.cancel(key)
        self._cache.clear()

    def stats(self) -> EngineStats:
        return EngineStats(
            budget=self._budget.state(),
            budget_stats=self._budget.stats(),
            cache=self._cache.stats(),
        )

    async def aclose(self) -> None:
        """Stop all background work (process shutdown)."""
        fetches = list(self._active.values())
        for fetch in fetches:
            self.cancel(fetch.key)
        tasks = [f.task for f in fetches if f.task is not None and not f.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- First page ---

    async def _fetch_first_page(self, request: SearchRequest) -> list[dict[str, Any]]:
        try:
            return await self._client.fetch_page(request, 1, timeout=self._first_page_timeout)
        except UpstreamTimeoutError as e:
            logger.warning("First page timed out for '%s': %s", request.query, e)
            raise UpstreamTimeoutError(FIRST_PAGE_TIMEOUT_MESSAGE) from e
        except UpstreamError:
            logger.exception("First page failed for '%s'", request.query)
            raise

    # --- Background phase ---

    async def _fetch_remaining(
        self,
        request: SearchRequest,
        fetch: _BackgroundFetch,
        buffer: list[dict[str, Any]],
        jobs: list[Job],
        filters: list[Filter],
        now: datetime,
        on_progress: ProgressCallback | None,
    ) -> None:
        """Pages 2..max_pages; emits growing snapshots and a final one on Done.

        A grown snapshot is held until the next page grows the set again, so
        the final snapshot never repeats the last published one.
        """
        logger.info("Background loading started for '%s'", request.query)
        pending: SearchProgress | None = None
        try:
            for page in range(2, request.max_pages + 1):
                if not await self._pause(fetch.stop, self._page_delay):
                    return

                raw = await self._fetch_background_page(request, page, fetch.stop)
                if fetch.stop.is_set():
                    return
                if raw is None:
                    break
                if not raw:
                    logger.info("Page %d empty — background loading complete", page)
                    break

                buffer.extend(raw)
                jobs = self._refine(buffer, filters, now)
                last = page == request.max_pages or should_stop_pagination(
                    len(raw), request.results_per_page,
                )
                logger.info(
                    "Page %d: %d raw records (total %d), %d jobs after filtering",
                    page, len(raw), len(buffer), len(jobs),
                )
                if pending is not None and len(jobs) > len(pending.jobs_so_far):
                    self._emit(fetch, pending, on_progress)
                    pending = None
                if last:
                    break
                if len(jobs) > fetch.emitted:
                    pending = SearchProgress(jobs_so_far=jobs)

            self._emit(fetch, SearchProgress(jobs_so_far=jobs, is_final=True), on_progress)
            self._store_final(request, jobs)
            logger.info("Background loading finished: %d jobs for '%s'", len(jobs), request.query)
        finally:
            fetch.channel.close()

    async def _fetch_background_page(
        self,
        request: SearchRequest,
        page: int,
        stop: asyncio.Event,
    ) -> list[dict[str, Any]] | None:
        """Fetch one background page, retrying once on timeout.

        Returns None when the loop should end (budget refusal, repeated timeout,
        other failure, or stop requested during the retry wait).
        """
        for attempt in (1, 2):
            consumed = self._budget.try_consume()
            if not consumed.allowed:
                logger.warning("Budget exhausted before page %d — stopping", page)
                return None
            try:
                return await self._client.fetch_page(
                    request, page, timeout=self._background_timeout,
                )
            except UpstreamTimeoutError:
                if attempt == 2:
                    logger.warning("Page %d timed out twice — stopping", page)
                    return None
                logger.warning(
                    "Page %d timed out, retrying in %.1fs", page, self._timeout_retry_delay,
                )
                if not await self._pause(stop, self._timeout_retry_delay):
                    return None
            except UpstreamError as e:
                logger.warning("Page %d failed (%s) — keeping results so far", page, e)
                return None
            except Exception:
                logger.exception("Unexpected error on page %d — keeping results so far", page)
                return None
        return None

    def _emit(
        self,
        fetch: _BackgroundFetch,
        progress: SearchProgress,
        on_progress: ProgressCallback | None,
    ) -> None:
        fetch.emitted = len(progress.jobs_so_far)
        fetch.channel.publish(progress)
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception:
            logger.exception("Progress callback failed")

    # --- Helpers ---

    async def _pause(self, stop: asyncio.Event, seconds: float) -> bool:
        """Sleep unless stopped. Returns False if a stop was requested."""
        if stop.is_set():
            return False
        if seconds > 0:
            try:
                await asyncio.wait_for(stop.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        return not stop.is_set()

    def _stop_superseded(self, key: str) -> None:
        for active_key in list(self._active):
            if active_key == key or self._supersede_previous:
                self.cancel(active_key)

    def _release(self, fetch: _BackgroundFetch) -> None:
        if self._active.get(fetch.key) is fetch:
            del self._active[fetch.key]
        fetch.channel.close()

    def _forget(self, fetch: _BackgroundFetch, task: "asyncio.Task[None]") -> None:
        self._release(fetch)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background fetch for %s crashed", fetch.key, exc_info=task.exception())

    def _store_final(self, request: SearchRequest, jobs: list[Job]) -> None:
        if not jobs:
            logger.info("No jobs for '%s' — nothing to cache", request.query)
            return
        self._cache.put(request.cache_key, jobs, total=len(jobs), request=request)

    @staticmethod
    def _build_filters(request: SearchRequest) -> list[Filter]:
        return [
            LocationMatcher(request.location),
            ExperienceLevelFilter(request.experience_level),
        ]

    @staticmethod
    def _refine(
        buffer: list[dict[str, Any]],
        filters: list[Filter],
        now: datetime,
    ) -> list[Job]:
        return run_filter_chain(normalize(buffer, now), filters)
