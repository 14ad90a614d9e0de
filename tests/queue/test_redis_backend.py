"""
Tests for the Redis queue backend and the shared rate limiter.

Every test runs against an in-process fakeredis server. Set
PATCHPILOT_TEST_REDIS_URL to also run them against a disposable Redis server.
Each test uses its own queue name and removes its keys afterwards.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from redis.asyncio import Redis

from patchpilot.queue.backend import STALLED_REASON
from patchpilot.queue.models import JobRetention, JobState, QueuedJob
from patchpilot.queue.redis_backend import SEQ_SPAN, RedisQueueBackend, RedisRateLimiter
from patchpilot.queue.worker import WorkerPool

REDIS_URL = os.environ.get("PATCHPILOT_TEST_REDIS_URL")

requires_redis = pytest.mark.skipif(
    not REDIS_URL, reason="Requires Redis (set PATCHPILOT_TEST_REDIS_URL)"
)


@pytest_asyncio.fixture(
    params=[
        "fakeredis",
        pytest.param("redis", marks=[requires_redis, pytest.mark.integration]),
    ]
)
async def client(request) -> AsyncGenerator[Redis, None]:
    if request.param == "fakeredis":
        redis_client = FakeAsyncRedis(decode_responses=True)
    else:
        redis_client = Redis.from_url(REDIS_URL, decode_responses=True)
    yield redis_client
    await redis_client.aclose()


@pytest_asyncio.fixture
async def backend(client: Redis) -> AsyncGenerator[RedisQueueBackend, None]:
    queue = RedisQueueBackend(client, queue_name=f"test-{uuid.uuid4().hex}")
    yield queue
    keys = [key async for key in client.scan_iter(f"{queue.prefix}:*")]
    if keys:
        await client.delete(*keys)


class FakeClock:
    """Manually advanced clock with a matching async sleep."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestKeys:
    """Tests for key layout and scoring, no server needed."""

    def test_waiting_score_orders_priority_first(self) -> None:
        opened_late = QueuedJob(id="9", name="a", payload={}, priority=1, seq=9, max_attempts=3)
        synced_early = QueuedJob(id="1", name="b", payload={}, priority=5, seq=1, max_attempts=3)

        assert RedisQueueBackend.waiting_score(opened_late) < RedisQueueBackend.waiting_score(
            synced_early
        )
        assert RedisQueueBackend.waiting_score(opened_late) == SEQ_SPAN + 9

    def test_key_prefix(self) -> None:
        queue = RedisQueueBackend(MagicMock(), queue_name="code-review")

        assert queue.key("waiting") == "patchpilot:code-review:waiting"
        assert queue.job_key("12") == "patchpilot:code-review:job:12"


class TestRedisQueueBackend:
    """Queue operations against a Redis server."""

    @pytest.mark.asyncio
    async def test_priority_then_fifo(self, backend: RedisQueueBackend) -> None:
        await backend.add("sync", {}, priority=5, max_attempts=3)
        await backend.add("open-1", {}, priority=1, max_attempts=3)
        await backend.add("open-2", {}, priority=1, max_attempts=3)

        names = []
        while (job := await backend.claim(now=0.0)) is not None:
            names.append(job.name)

        assert names == ["open-1", "open-2", "sync"]
        assert (await backend.counts()).active == 3

    @pytest.mark.asyncio
    async def test_retry_and_fail(self, backend: RedisQueueBackend) -> None:
        added = await backend.add("a", {"k": "v"}, priority=1, max_attempts=2)
        job = await backend.claim(now=0.0)

        await backend.retry(job.id, "boom", available_at=10.0)
        assert (await backend.counts()).delayed == 1
        assert await backend.claim(now=5.0) is None
        job = await backend.claim(now=10.0)
        assert job.attempts_made == 2
        assert job.failed_reason == "boom"
        await backend.fail(job.id, "boom again", now=11.0)

        stored = await backend.get(added.id)
        assert stored.state is JobState.FAILED
        assert stored.payload == {"k": "v"}
        counts = await backend.counts()
        assert counts.failed == 1
        assert counts.active == 0
        assert counts.delayed == 0

    @pytest.mark.asyncio
    async def test_complete_requires_active(self, backend: RedisQueueBackend) -> None:
        job = await backend.add("a", {}, priority=1, max_attempts=1)

        with pytest.raises(KeyError):
            await backend.complete(job.id, None, now=0.0)

        assert (await backend.counts()).waiting == 1

    @pytest.mark.asyncio
    async def test_complete_and_purge(self, backend: RedisQueueBackend) -> None:
        ids = []
        for at in (1.0, 2.0, 3.0):
            await backend.add(f"j{at}", {}, priority=1, max_attempts=1)
            job = await backend.claim(now=at)
            await backend.complete(job.id, {"ok": True}, now=at)
            ids.append(job.id)

        removed = await backend.purge(
            JobRetention(keep_completed=1, completed_max_age_s=None), now=3.0
        )

        assert removed == 2
        assert await backend.get(ids[0]) is None
        assert (await backend.get(ids[2])).result == {"ok": True}


class TestRedisLeases:
    """Lease handling and stalled job recovery against a Redis server."""

    @pytest.mark.asyncio
    async def test_expired_lease_returns_job_to_waiting(
        self, backend: RedisQueueBackend
    ) -> None:
        await backend.add("a", {}, priority=1, max_attempts=3)
        job = await backend.claim(now=0.0, lease_s=30.0)

        assert await backend.recover_stalled(now=29.0) == []
        assert await backend.recover_stalled(now=30.0) == [job.id]

        stored = await backend.get(job.id)
        assert stored.state is JobState.WAITING
        assert stored.failed_reason == STALLED_REASON
        again = await backend.claim(now=31.0)
        assert again.id == job.id
        assert again.attempts_made == 2

    @pytest.mark.asyncio
    async def test_expired_lease_on_last_attempt_fails_job(
        self, backend: RedisQueueBackend
    ) -> None:
        job = await backend.add("a", {}, priority=1, max_attempts=1)
        await backend.claim(now=0.0, lease_s=30.0)

        await backend.recover_stalled(now=60.0)

        stored = await backend.get(job.id)
        assert stored.state is JobState.FAILED
        counts = await backend.counts()
        assert counts.failed == 1
        assert counts.active == 0

    @pytest.mark.asyncio
    async def test_extend_lease(self, backend: RedisQueueBackend) -> None:
        await backend.add("a", {}, priority=1, max_attempts=3)
        job = await backend.claim(now=0.0, lease_s=30.0)

        assert await backend.extend_lease(job.id, until=100.0)
        assert await backend.recover_stalled(now=50.0) == []
        assert await backend.recover_stalled(now=100.0) == [job.id]
        assert not await backend.extend_lease(job.id, until=200.0)

    @pytest.mark.asyncio
    async def test_recovered_job_cannot_be_completed_by_old_owner(
        self, backend: RedisQueueBackend
    ) -> None:
        await backend.add("a", {}, priority=1, max_attempts=3)
        job = await backend.claim(now=0.0, lease_s=1.0)
        await backend.recover_stalled(now=5.0)

        with pytest.raises(KeyError):
            await backend.complete(job.id, None, now=6.0)

        assert (await backend.counts()).waiting == 1

    @pytest.mark.asyncio
    async def test_crashed_worker_job_is_redelivered(self, backend: RedisQueueBackend) -> None:
        job = await backend.add("a", {}, priority=1, max_attempts=3)
        await backend.claim(now=0.0, lease_s=30.0)
        processor = AsyncMock(return_value={"ok": True})

        await WorkerPool(backend, processor, clock=lambda: 100.0).run_until_idle()

        processor.assert_awaited_once()
        stored = await backend.get(job.id)
        assert stored.state is JobState.COMPLETED
        assert stored.attempts_made == 2


class TestRedisRateLimiter:
    """The start limit shared between worker processes."""

    @pytest.mark.asyncio
    async def test_limit_is_shared_between_limiters(self, client: Redis) -> None:
        clock = FakeClock()
        queue_name = f"test-{uuid.uuid4().hex}"
        first, second = (
            RedisRateLimiter(
                client, queue_name, max_events=2, window_s=60, clock=clock, sleep=clock.sleep
            )
            for _ in range(2)
        )

        await first.wait_for_slot()
        await first.record()
        clock.now += 10
        await second.wait_for_slot()
        await second.record()
        await first.wait_for_slot()

        assert clock.sleeps == [50.0]
        await client.delete(first.key)

    @pytest.mark.asyncio
    async def test_starts_below_limit_do_not_wait(self, client: Redis) -> None:
        clock = FakeClock()
        limiter = RedisRateLimiter(
            client, f"test-{uuid.uuid4().hex}", max_events=3, window_s=60,
            clock=clock, sleep=clock.sleep,
        )

        for _ in range(3):
            await limiter.wait_for_slot()
            await limiter.record()

        assert clock.sleeps == []
        assert await client.zcard(limiter.key) == 3
        await client.delete(limiter.key)

    def test_rejects_zero_limit(self) -> None:
        with pytest.raises(ValueError):
            RedisRateLimiter(MagicMock(), max_events=0)
