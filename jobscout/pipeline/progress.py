"""Bounded progress channel between a background fetch and its consumer.

Every update is a full snapshot of the jobs found so far, so when the buffer
is full the oldest pending snapshot is dropped: the consumer only ever needs
the newest one. A final snapshot is always delivered and ends iteration.
Closing the channel (cancellation) also ends iteration, without a final snapshot.
"""

import asyncio
import logging

from jobscout.core.schemas import SearchProgress

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = 8


class ProgressChannel:
    """Single-consumer async stream of SearchProgress snapshots.

    Usage::

        async for progress in result.progress:
            render(progress.jobs_so_far)
            if progress.is_final:
                ...  # loop ends after this item
    """

    def __init__(self, maxsize: int = DEFAULT_BUFFER) -> None:
        if maxsize < 1:
            msg = "maxsize must be at least 1"
            raise ValueError(msg)
        # None is the close sentinel
        self._queue: asyncio.Queue[SearchProgress | None] = asyncio.Queue(maxsize)
        self._closed = False
        self._exhausted = False
        self.latest: SearchProgress | None = None
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, progress: SearchProgress) -> None:
        """Push a snapshot. A final snapshot closes the channel for writing."""
        if self._closed:
            msg = "cannot publish to a closed progress channel"
            raise RuntimeError(msg)
        if self.latest is not None and len(progress.jobs_so_far) < len(self.latest.jobs_so_far):
            msg = "progress snapshots must not shrink"
            raise ValueError(msg)
        self.latest = progress
        self._offer(progress)
        if progress.is_final:
            self._closed = True

    def close(self) -> None:
        """End the stream without a final snapshot. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._offer(None)

    def __aiter__(self) -> "ProgressChannel":
        return self

    async def __anext__(self) -> SearchProgress:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._exhausted = True
            raise StopAsyncIteration
        if item.is_final:
            self._exhausted = True
        return item

    def _offer(self, item: SearchProgress | None) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1
                logger.debug("Progress buffer full, dropped a stale snapshot")
