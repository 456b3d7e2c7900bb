"""Upstream failure types.

The orchestrator tells a timeout apart from any other failure: a timed-out
background page is retried once, while other errors end the background loop.
"""


class UpstreamError(Exception):
    """Non-timeout failure talking to the job-search provider."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeoutError(UpstreamError):
    """The provider did not answer within the page timeout."""
