"""Abstract base class for paged job-search providers."""

from abc import ABC, abstractmethod
from typing import Any

from jobscout.core.schemas import SearchRequest


class UpstreamClient(ABC):
    """Base class that every job-search provider client must implement."""

    @property
    @abstractmethod
    def platform_id(self) -> str:
        """Unique identifier for this provider (e.g. 'jsearch')."""

    @abstractmethod
    async def fetch_page(
        self,
        request: SearchRequest,
        page: int,
        timeout: float,
    ) -> list[dict[str, Any]]:
        """Fetch one page (1-based) of raw records.

        A malformed response yields an empty list. Whether more pages exist is
        inferred by the caller from page fullness; no total count is trusted.

        Raises:
            UpstreamTimeoutError: The request exceeded ``timeout`` seconds.
            UpstreamError: Any other transport or HTTP failure.
        """

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
