"""
Redis-backed durable queue.

Layout under `{prefix}`:

    :id          INCR counter for job ids (also the FIFO sequence)
    :job:<id>    JSON job document
    :waiting     ZSET scored by priority, then sequence
    :delayed     ZSET scored by available_at
    :active      ZSET scored by lease deadline
    :completed   ZSET scored by finished_at
    :failed      ZSET scored by finished_at

Every move between sets runs in a Lua script, so a job is always a member of
exactly one set and several worker processes can share one queue. A worker
that dies mid-job leaves its job in `:active` until the lease runs out, and
`recover_stalled` then hands it back.
"""

import asyncio
import json
import math
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from redis.asyncio import Redis

from .backend import DEFAULT_LEASE_S, STALLED_REASON, select_expired
from .models import JobRetention, JobState, QueueCounts, QueuedJob

logger = structlog.get_logger(__name__)

# Sequence numbers stay below this, so priority dominates the waiting score
SEQ_SPAN = 10**13

# KEYS: waiting, active. ARGV: lease deadline
CLAIM_SCRIPT = """
local popped = redis.call('ZPOPMIN', KEYS[1])
if #popped == 0 then
    return false
end
redis.call('ZADD', KEYS[2], ARGV[1], popped[1])
return popped[1]
"""

# KEYS: source, target, job document. ARGV: job id, target score, job JSON,
# and optionally the highest source score that may be moved
MOVE_SCRIPT = """
local score = redis.call('ZSCORE', KEYS[1], ARGV[1])
if not score then
    return 0
end
if ARGV[4] and tonumber(score) > tonumber(ARGV[4]) then
    return 0
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('SET', KEYS[3], ARGV[3])
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
return 1
"""

# KEYS: active. ARGV: job id, new lease deadline
EXTEND_SCRIPT = """
if not redis.call('ZSCORE', KEYS[1], ARGV[1]) then
    return 0
end
redis.call('ZADD', KEYS[1], ARGV[2], ARGV[1])
return 1
"""


class RedisQueueBackend:
    """Queue backend on Redis sorted sets and JSON documents."""

    def __init__(self, client: Redis, queue_name: str = "code-review"):
        self.client = client
        self.prefix = f"patchpilot:{queue_name}"
        self._claim_script = client.register_script(CLAIM_SCRIPT)
        self._move_script = client.register_script(MOVE_SCRIPT)
        self._extend_script = client.register_script(EXTEND_SCRIPT)

    @classmethod
    def from_url(cls, url: str, queue_name: str = "code-review") -> "RedisQueueBackend":
        return cls(Redis.from_url(url, decode_responses=True), queue_name)

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    @staticmethod
    def waiting_score(job: QueuedJob) -> int:
        return job.priority * SEQ_SPAN + job.seq

    async def add(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
    ) -> QueuedJob:
        seq = await self.client.incr(self.key("id"))
        job = QueuedJob(
            id=str(seq),
            name=name,
            payload=payload,
            priority=priority,
            seq=seq,
            max_attempts=max_attempts,
            created_at=time.time(),
        )
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self.job_key(job.id), json.dumps(job.to_dict()))
            pipe.zadd(self.key("waiting"), {job.id: self.waiting_score(job)})
            await pipe.execute()
        return job

    async def claim(self, now: float, lease_s: float = DEFAULT_LEASE_S) -> QueuedJob | None:
        due = await self.client.zrangebyscore(self.key("delayed"), "-inf", now)
        for job_id in due:
            job = await self._load(job_id)
            if job is None:
                await self.client.zrem(self.key("delayed"), job_id)
                continue
            job.state = JobState.WAITING
            # A no-op when another worker promoted it first
            await self._move(job, "delayed", "waiting", self.waiting_score(job), max_score=now)

        job_id = await self._claim_script(
            keys=[self.key("waiting"), self.key("active")], args=[now + lease_s]
        )
        if job_id is None:
            return None

        job = await self._load(job_id)
        if job is None:
            logger.warning("Dropping queue entry without job document", job_id=job_id)
            await self.client.zrem(self.key("active"), job_id)
            return None

        job.state = JobState.ACTIVE
        job.attempts_made += 1
        await self._save(job)
        return job

    async def extend_lease(self, job_id: str, until: float) -> bool:
        return bool(await self._extend_script(keys=[self.key("active")], args=[job_id, until]))

    async def recover_stalled(self, now: float) -> list[str]:
        recovered: list[str] = []
        for job_id in await self.client.zrangebyscore(self.key("active"), "-inf", now):
            job = await self._load(job_id)
            if job is None:
                await self.client.zrem(self.key("active"), job_id)
                continue
            job.failed_reason = STALLED_REASON
            if job.attempts_remaining > 0:
                job.state = JobState.WAITING
                target, score = "waiting", self.waiting_score(job)
            else:
                job.state = JobState.FAILED
                job.finished_at = now
                target, score = "failed", now
            # Skipped when the owner extended the lease in the meantime
            if await self._move(job, "active", target, score, max_score=now):
                recovered.append(job_id)
        return recovered

    async def complete(self, job_id: str, result: dict[str, Any] | None, now: float) -> None:
        job = await self._load_required(job_id)
        job.state = JobState.COMPLETED
        job.result = result
        job.finished_at = now
        await self._finish(job, "completed", now)

    async def retry(self, job_id: str, reason: str, available_at: float) -> None:
        job = await self._load_required(job_id)
        job.state = JobState.DELAYED
        job.failed_reason = reason
        job.available_at = available_at
        await self._finish(job, "delayed", available_at)

    async def fail(self, job_id: str, reason: str, now: float) -> None:
        job = await self._load_required(job_id)
        job.state = JobState.FAILED
        job.failed_reason = reason
        job.finished_at = now
        await self._finish(job, "failed", now)

    async def get(self, job_id: str) -> QueuedJob | None:
        return await self._load(job_id)

    async def counts(self) -> QueueCounts:
        async with self.client.pipeline(transaction=False) as pipe:
            pipe.zcard(self.key("waiting"))
            pipe.zcard(self.key("active"))
            pipe.zcard(self.key("delayed"))
            pipe.zcard(self.key("completed"))
            pipe.zcard(self.key("failed"))
            waiting, active, delayed, completed, failed = await pipe.execute()
        return QueueCounts(
            waiting=waiting,
            active=active,
            delayed=delayed,
            completed=completed,
            failed=failed,
        )

    async def purge(self, retention: JobRetention, now: float) -> int:
        removed = 0
        for name, keep, max_age in (
            ("completed", retention.keep_completed, retention.completed_max_age_s),
            ("failed", retention.keep_failed, retention.failed_max_age_s),
        ):
            finished = await self.client.zrange(self.key(name), 0, -1, withscores=True)
            expired = select_expired(finished, keep, max_age, now)
            if not expired:
                continue
            await self.client.zrem(self.key(name), *expired)
            await self.client.delete(*(self.job_key(job_id) for job_id in expired))
            removed += len(expired)
        return removed

    async def close(self) -> None:
        await self.client.aclose()

    async def _save(self, job: QueuedJob) -> None:
        await self.client.set(self.job_key(job.id), json.dumps(job.to_dict()))

    async def _load(self, job_id: str) -> QueuedJob | None:
        data = await self.client.get(self.job_key(job_id))
        return QueuedJob.from_dict(json.loads(data)) if data else None

    async def _move(
        self,
        job: QueuedJob,
        source: str,
        target: str,
        score: float,
        max_score: float | None = None,
    ) -> bool:
        args: list[Any] = [job.id, score, json.dumps(job.to_dict())]
        if max_score is not None:
            args.append(max_score)
        keys = [self.key(source), self.key(target), self.job_key(job.id)]
        return bool(await self._move_script(keys=keys, args=args))

    async def _load_required(self, job_id: str) -> QueuedJob:
        job = await self._load(job_id)
        if job is None:
            raise KeyError(f"Job {job_id} has no document")
        return job

    async def _finish(self, job: QueuedJob, target: str, score: float) -> None:
        if not await self._move(job, "active", target, score):
            raise KeyError(f"Job {job.id} is not active")


class RedisRateLimiter:
    """Sliding-window limit on job starts, shared by every worker of a queue.

    Starts are kept in `{prefix}:starts`, a ZSET scored by wall-clock time.
    Checking and recording are separate round trips, so workers that check
    at the same instant can each overshoot the limit by one start.
    """

    def __init__(
        self,
        client: Redis,
        queue_name: str = "code-review",
        max_events: int = 10,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.client = client
        self.key = f"patchpilot:{queue_name}:starts"
        self.max_events = max_events
        self.window_s = window_s
        self._clock = clock
        self._sleep = sleep

    async def wait_for_slot(self) -> None:
        """Sleep until a start would not exceed the shared limit."""
        while True:
            now = self._clock()
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(self.key, "-inf", now - self.window_s)
                pipe.zrange(self.key, 0, 0, withscores=True)
                pipe.zcard(self.key)
                _, oldest, count = await pipe.execute()
            if count < self.max_events:
                return
            await self._sleep(max(oldest[0][1] + self.window_s - now, 0.0))

    async def record(self) -> None:
        now = self._clock()
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zadd(self.key, {uuid.uuid4().hex: now})
            pipe.expire(self.key, math.ceil(self.window_s))
            await pipe.execute()
