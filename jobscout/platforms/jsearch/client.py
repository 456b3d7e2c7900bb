"""JSearch (RapidAPI) client: one httpx.AsyncClient per engine instance."""

import asyncio
import logging
import os
from types import TracebackType
from typing import Any

import httpx

from jobscout.core.config import UpstreamConfig
from jobscout.core.schemas import SearchRequest
from jobscout.platforms.base import UpstreamClient
from jobscout.platforms.errors import UpstreamError, UpstreamTimeoutError
from jobscout.platforms.jsearch.params import build_params

logger = logging.getLogger(__name__)


class JSearchClient(UpstreamClient):
    """Paged JSearch ``/search`` client.

    Usage::

        async with JSearchClient(settings.upstream) as client:
            records = await client.fetch_page(request, page=1, timeout=10.0)

    The API key is read from the environment variable named by
    ``config.api_key_env`` unless passed explicitly.
    """

    def __init__(
        self,
        config: UpstreamConfig,
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        key = api_key if api_key is not None else os.environ.get(config.api_key_env, "")
        if not key:
            msg = f"{config.api_key_env} environment variable is required"
            raise ValueError(msg)
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={
                "X-RapidAPI-Key": key,
                "X-RapidAPI-Host": config.host,
                "Accept": "application/json",
            },
            transport=transport,
        )

    @property
    def platform_id(self) -> str:
        return "jsearch"

    async def fetch_page(
        self,
        request: SearchRequest,
        page: int,
        timeout: float,
    ) -> list[dict[str, Any]]:
        params = build_params(request, page, self._config.date_posted)
        logger.debug("GET /search page %d (timeout %.1fs): %s", page, timeout, params)
        try:
            # wait_for bounds the whole exchange; httpx timeouts are per-phase
            response = await asyncio.wait_for(
                self._client.get("/search", params=params, timeout=timeout),
                timeout=timeout,
            )
            response.raise_for_status()
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            msg = f"JSearch page {page} timed out after {timeout:.1f}s"
            raise UpstreamTimeoutError(msg) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            msg = f"JSearch page {page} failed with HTTP {status}"
            raise UpstreamError(msg, status_code=status) from e
        except httpx.HTTPError as e:
            msg = f"JSearch page {page} request failed: {e}"
            raise UpstreamError(msg) from e

        try:
            payload = response.json()
        except ValueError:
            logger.warning("JSearch page %d returned a non-JSON body", page)
            return []
        return extract_records(payload, page)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JSearchClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def extract_records(payload: Any, page: int = 1) -> list[dict[str, Any]]:
    """Pull the ``data`` array out of a response body.

    A missing or non-list ``data`` field counts as zero results, never a crash.
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        logger.warning("JSearch page %d: response has no data array", page)
        return []
    records = [item for item in data if isinstance(item, dict)]
    if len(records) != len(data):
        logger.debug("JSearch page %d: skipped %d non-object items", page, len(data) - len(records))
    return records
