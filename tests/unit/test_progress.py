"""Tests for ProgressChannel: ordering, bounded buffer, termination."""

import pytest

from jobscout.core.schemas import Job, SearchProgress
from jobscout.pipeline.progress import ProgressChannel


def _snapshot(count: int, *, final: bool = False) -> SearchProgress:
    jobs = [Job(id=str(n), title=f"Engineer {n}", company="Acme") for n in range(count)]
    return SearchProgress(jobs_so_far=jobs, is_final=final)


async def _drain(channel: ProgressChannel) -> list[SearchProgress]:
    return [progress async for progress in channel]


class TestPublish:
    async def test_snapshots_in_order_until_final(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(10))
        channel.publish(_snapshot(20))
        channel.publish(_snapshot(24, final=True))

        received = await _drain(channel)
        assert [len(p.jobs_so_far) for p in received] == [10, 20, 24]
        assert received[-1].is_final is True

    async def test_final_closes_channel(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(1, final=True))
        assert channel.closed is True
        with pytest.raises(RuntimeError, match="closed"):
            channel.publish(_snapshot(2))

    def test_shrinking_snapshot_rejected(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(5))
        with pytest.raises(ValueError, match="must not shrink"):
            channel.publish(_snapshot(3))

    def test_latest_tracks_last_publish(self) -> None:
        channel = ProgressChannel()
        assert channel.latest is None
        channel.publish(_snapshot(4))
        assert channel.latest is not None
        assert len(channel.latest.jobs_so_far) == 4

    def test_invalid_buffer(self) -> None:
        with pytest.raises(ValueError, match="maxsize"):
            ProgressChannel(0)


class TestBoundedBuffer:
    async def test_oldest_dropped_when_full(self) -> None:
        channel = ProgressChannel(maxsize=2)
        for count in (1, 2, 3, 4):
            channel.publish(_snapshot(count))
        channel.publish(_snapshot(5, final=True))

        received = await _drain(channel)
        assert [len(p.jobs_so_far) for p in received] == [4, 5]
        assert channel.dropped == 3

    async def test_final_always_delivered(self) -> None:
        channel = ProgressChannel(maxsize=1)
        channel.publish(_snapshot(1))
        channel.publish(_snapshot(2, final=True))
        received = await _drain(channel)
        assert [p.is_final for p in received] == [True]


class TestClose:
    async def test_close_ends_iteration_without_final(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(10))
        channel.close()
        received = await _drain(channel)
        assert [len(p.jobs_so_far) for p in received] == [10]

    async def test_close_idempotent(self) -> None:
        channel = ProgressChannel()
        channel.close()
        channel.close()
        assert await _drain(channel) == []

    async def test_close_after_final_is_noop(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(1, final=True))
        channel.close()
        assert len(await _drain(channel)) == 1

    async def test_iteration_after_exhaustion_stops(self) -> None:
        channel = ProgressChannel()
        channel.publish(_snapshot(1, final=True))
        await _drain(channel)
        assert await _drain(channel) == []
