"""CLI entry point for the job search engine."""

import argparse
import asyncio
import json
import logging
import sys

from jobscout.core.config import Settings
from jobscout.core.db import SQLiteStore
from jobscout.core.schemas import ExperienceLevel, Job, SearchRequest
from jobscout.pipeline.budget import RequestBudget
from jobscout.pipeline.cache import ResultCache
from jobscout.pipeline.matcher import SORT_ORDERS, sort_jobs
from jobscout.pipeline.orchestrator import SearchOrchestrator
from jobscout.pipeline.recent import RecentSearches, describe, time_since
from jobscout.platforms.errors import UpstreamError
from jobscout.platforms.jsearch.client import JSearchClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job search engine - progressive, cached, budget-aware JSearch client",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- search subcommand (default) ---
    search_parser = subparsers.add_parser("search", help="Search for jobs")
    search_parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="What to search for (default: search.default_query from settings)",
    )
    search_parser.add_argument("--location", "-l", default=None, help="City, state or region")
    search_parser.add_argument(
        "--job-type",
        choices=["full-time", "part-time", "contract", "internship"],
        help="Employment type",
    )
    search_parser.add_argument(
        "--experience",
        choices=[level.value for level in ExperienceLevel],
        help="Only keep jobs at this experience level",
    )
    search_parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Page ceiling (default: search.max_pages from settings)",
    )
    search_parser.add_argument(
        "--sort",
        choices=list(SORT_ORDERS),
        default="relevance",
        help="Result order (default: relevance)",
    )
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show cache and budget state for the request without calling the API",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )

    # --- stats subcommand ---
    subparsers.add_parser("stats", help="Show request budget and cache statistics")

    # --- clear-cache subcommand ---
    subparsers.add_parser("clear-cache", help="Drop all cached search results")

    # --- recent subcommand ---
    recent_parser = subparsers.add_parser("recent", help="List recent searches")
    recent_parser.add_argument("--clear", action="store_true", help="Forget all recent searches")

    args = parser.parse_args(argv)

    # Default to search when no subcommand given
    if args.command is None:
        args = parser.parse_args([*(argv if argv is not None else sys.argv[1:]), "search"])

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str | None) -> Settings:
    if path is None:
        return Settings()
    return Settings.from_yaml(path)


def build_request(args: argparse.Namespace, settings: Settings) -> SearchRequest:
    return SearchRequest(
        query=args.query or settings.search.default_query,
        location=args.location,
        job_type=args.job_type,
        experience_level=ExperienceLevel(args.experience) if args.experience else None,
        max_pages=args.max_pages or settings.search.max_pages,
        results_per_page=settings.upstream.results_per_page,
    )


def export_results_json(request: SearchRequest, jobs: list[Job]) -> str:
    """Export search results as a JSON string."""
    data = []
    for job in jobs:
        data.append({
            "query": request.query,
            "id": job.id,
            "title": job.title,
            "company": job.company,
            "location": job.location,
            "salary": job.salary,
            "posted_date": job.posted_date,
            "posted_at": job.posted_at.isoformat() if job.posted_at else None,
            "job_type": job.job_type,
            "experience_level": job.experience_level.value,
            "remote": job.remote,
            "requirements": job.requirements,
            "apply_url": job.apply_url,
            "match_score": job.match_score,
        })
    return json.dumps(data, indent=2)


def dry_run(settings: Settings, request: SearchRequest) -> None:
    """Print what would happen without calling the API."""
    store = SQLiteStore.open(settings.database.path)
    budget = RequestBudget.from_config(store, settings.budget)
    cache = ResultCache.from_config(store, settings.cache)

    cached = cache.get(request.cache_key)
    stats = budget.stats()
    print(f"[DRY RUN] Request: {request.model_dump(exclude_none=True)}")
    print(f"[DRY RUN] Cache key: {request.cache_key}")
    if cached is not None:
        print(f"[DRY RUN] Cache HIT: {len(cached)} jobs, no request would be made")
    elif stats.remaining == 0:
        print(f"[DRY RUN] Cache miss, budget EXHAUSTED until {stats.reset_date}")
    else:
        print(f"[DRY RUN] Cache miss, would request up to {request.max_pages} pages")
        print(f"[DRY RUN] Budget: {stats.used} used, {stats.remaining} remaining")
    store.close()


async def run_search(settings: Settings, request: SearchRequest, sort: str) -> list[Job]:
    """Run one progressive search, printing progress as pages arrive."""
    store = SQLiteStore.open(settings.database.path)
    try:
        async with JSearchClient(settings.upstream) as client:
            orchestrator = SearchOrchestrator.from_settings(settings, client, store)
            try:
                result = await orchestrator.search(request)
                jobs = result.jobs
                if result.budget_exhausted:
                    stats = orchestrator.budget.stats()
                    print(f"Monthly request budget exhausted; resets on {stats.reset_date}.")
                    return []
                source = "cache" if result.from_cache else "page 1"
                print(f"{len(jobs)} jobs from {source}")
                if result.progress is not None:
                    async for progress in result.progress:
                        jobs = progress.jobs_so_far
                        marker = " (done)" if progress.is_final else ""
                        print(f"  ... {len(jobs)} jobs loaded{marker}")
            finally:
                await orchestrator.aclose()
        RecentSearches(store, settings.recent.max_searches).add(request.query, request.location)
    finally:
        store.close()

    jobs = sort_jobs(jobs, sort)
    print(f"\nSearch complete: {len(jobs)} jobs for '{request.query}'")
    for job in jobs:
        print(f"  [{job.match_score:>2}%] {job.title} @ {job.company} ({job.location}), "
              f"{job.salary}, {job.posted_date}")
    return jobs


def cmd_stats(settings: Settings) -> None:
    store = SQLiteStore.open(settings.database.path)
    budget = RequestBudget.from_config(store, settings.budget)
    cache = ResultCache.from_config(store, settings.cache)
    budget_stats = budget.stats()
    cache_stats = cache.stats()
    print(f"Requests: {budget_stats.used} used, {budget_stats.remaining} remaining "
          f"(resets {budget_stats.reset_date})")
    print(f"Cache: {cache_stats.entry_count} entries, "
          f"~{cache_stats.approximate_byte_size} bytes")
    store.close()


def cmd_clear_cache(settings: Settings) -> None:
    store = SQLiteStore.open(settings.database.path)
    ResultCache.from_config(store, settings.cache).clear()
    print("Cache cleared.")
    store.close()


def cmd_recent(settings: Settings, clear: bool) -> None:
    store = SQLiteStore.open(settings.database.path)
    recent = RecentSearches(store, settings.recent.max_searches)
    if clear:
        recent.clear()
        print("Recent searches cleared.")
    else:
        searches = recent.entries()
        if not searches:
            print("No recent searches.")
        for search in searches:
            print(f"  {describe(search)}  ({time_since(search)})")
    store.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "stats":
        cmd_stats(settings)
    elif args.command == "clear-cache":
        cmd_clear_cache(settings)
    elif args.command == "recent":
        cmd_recent(settings, args.clear)
    else:
        # search (default)
        try:
            request = build_request(args, settings)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if args.dry_run:
            dry_run(settings, request)
            return

        try:
            jobs = asyncio.run(run_search(settings, request, args.sort))
        except (UpstreamError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if args.export == "json":
            print(f"\n{export_results_json(request, jobs)}")


if __name__ == "__main__":
    main()
