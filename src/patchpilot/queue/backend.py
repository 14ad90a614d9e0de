"""
Queue backends.

A backend owns job state; the worker pool owns scheduling policy. Claiming a
job counts as one attempt. Jobs are served by ascending priority, then in
insertion order.

An active job holds a lease. The worker running it extends the lease while
it works; a job whose lease runs out is handed back to the queue by
`recover_stalled`, so a worker that dies mid-job does not lose it.
"""

import heapq
import itertools
import time
from typing import Any, Protocol

from .models import JobRetention, JobState, QueueCounts, QueuedJob

DEFAULT_LEASE_S = 60.0

STALLED_REASON = "Job lease expired"


class QueueBackend(Protocol):
    """Protocol for job queue storage."""

    async def add(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
    ) -> QueuedJob:
        """Enqueue a job. Names are not unique."""
        ...

    async def claim(self, now: float, lease_s: float = DEFAULT_LEASE_S) -> QueuedJob | None:
        """Promote due delayed jobs, then move the next waiting job to active.

        The claimed job is leased until `now + lease_s`.
        """
        ...

    async def extend_lease(self, job_id: str, until: float) -> bool:
        """Move an active job's lease deadline. False if the job is no longer active."""
        ...

    async def recover_stalled(self, now: float) -> list[str]:
        """Hand back active jobs whose lease ran out before `now`.

        The expired claim counts as an attempt: jobs with attempts left return
        to waiting, the rest move to the dead set. Returns the recovered ids.
        """
        ...

    async def complete(self, job_id: str, result: dict[str, Any] | None, now: float) -> None:
        ...

    async def retry(self, job_id: str, reason: str, available_at: float) -> None:
        """Park an active job until `available_at`."""
        ...

    async def fail(self, job_id: str, reason: str, now: float) -> None:
        """Move an active job to the dead set."""
        ...

    async def get(self, job_id: str) -> QueuedJob | None:
        ...

    async def counts(self) -> QueueCounts:
        ...

    async def purge(self, retention: JobRetention, now: float) -> int:
        """Drop finished jobs beyond the retention limits. Returns the number removed."""
        ...

    async def close(self) -> None:
        ...


def select_expired(
    finished: list[tuple[str, float]],
    keep: int,
    max_age_s: float | None,
    now: float,
) -> list[str]:
    """Pick finished job ids to drop, given (id, finished_at) oldest first."""
    expired: list[str] = []
    if max_age_s is not None:
        expired = [job_id for job_id, at in finished if now - at > max_age_s]
    aged_out = set(expired)
    survivors = [job_id for job_id, _ in finished if job_id not in aged_out]
    overflow = len(survivors) - keep
    if overflow > 0:
        expired.extend(survivors[:overflow])
    return expired


class InMemoryQueueBackend:
    """Process-local queue (for testing/development).

    Jobs do not survive a restart.
    """

    def __init__(self):
        self.jobs: dict[str, QueuedJob] = {}
        self._waiting: list[tuple[int, int, str]] = []
        self._delayed: set[str] = set()
        self._active: dict[str, float] = {}  # Job id -> lease deadline
        self._completed: list[str] = []
        self._failed: list[str] = []
        self._ids = itertools.count(1)

    async def add(
        self,
        name: str,
        payload: dict[str, Any],
        *,
        priority: int,
        max_attempts: int,
    ) -> QueuedJob:
        seq = next(self._ids)
        job = QueuedJob(
            id=str(seq),
            name=name,
            payload=payload,
            priority=priority,
            seq=seq,
            max_attempts=max_attempts,
            created_at=time.time(),
        )
        self.jobs[job.id] = job
        heapq.heappush(self._waiting, (job.priority, job.seq, job.id))
        return job

    async def claim(self, now: float, lease_s: float = DEFAULT_LEASE_S) -> QueuedJob | None:
        for job_id in [i for i in self._delayed if self.jobs[i].available_at <= now]:
            self._delayed.discard(job_id)
            job = self.jobs[job_id]
            job.state = JobState.WAITING
            heapq.heappush(self._waiting, (job.priority, job.seq, job.id))

        if not self._waiting:
            return None

        _, _, job_id = heapq.heappop(self._waiting)
        job = self.jobs[job_id]
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        self._active[job_id] = now + lease_s
        return job

    async def extend_lease(self, job_id: str, until: float) -> bool:
        if job_id not in self._active:
            return False
        self._active[job_id] = until
        return True

    async def recover_stalled(self, now: float) -> list[str]:
        expired = [i for i, deadline in self._active.items() if deadline <= now]
        for job_id in expired:
            job = self._take_active(job_id)
            job.failed_reason = STALLED_REASON
            if job.attempts_remaining > 0:
                job.state = JobState.WAITING
                heapq.heappush(self._waiting, (job.priority, job.seq, job.id))
            else:
                job.state = JobState.FAILED
                job.finished_at = now
                self._failed.append(job_id)
        return expired

    async def complete(self, job_id: str, result: dict[str, Any] | None, now: float) -> None:
        job = self._take_active(job_id)
        job.state = JobState.COMPLETED
        job.result = result
        job.finished_at = now
        self._completed.append(job_id)

    async def retry(self, job_id: str, reason: str, available_at: float) -> None:
        job = self._take_active(job_id)
        job.state = JobState.DELAYED
        job.failed_reason = reason
        job.available_at = available_at
        self._delayed.add(job_id)

    async def fail(self, job_id: str, reason: str, now: float) -> None:
        job = self._take_active(job_id)
        job.state = JobState.FAILED
        job.failed_reason = reason
        job.finished_at = now
        self._failed.append(job_id)

    async def get(self, job_id: str) -> QueuedJob | None:
        return self.jobs.get(job_id)

    async def counts(self) -> QueueCounts:
        return QueueCounts(
            waiting=len(self._waiting),
            active=len(self._active),
            delayed=len(self._delayed),
            completed=len(self._completed),
            failed=len(self._failed),
        )

    async def purge(self, retention: JobRetention, now: float) -> int:
        removed = 0
        for ids, keep, max_age in (
            (self._completed, retention.keep_completed, retention.completed_max_age_s),
            (self._failed, retention.keep_failed, retention.failed_max_age_s),
        ):
            finished = [(i, self.jobs[i].finished_at or 0.0) for i in ids]
            expired = set(select_expired(finished, keep, max_age, now))
            if not expired:
                continue
            ids[:] = [i for i in ids if i not in expired]
            for job_id in expired:
                del self.jobs[job_id]
            removed += len(expired)
        return removed

    async def close(self) -> None:
        pass

    def _take_active(self, job_id: str) -> QueuedJob:
        if job_id not in self._active:
            raise KeyError(f"Job {job_id} is not active")
        del self._active[job_id]
        return self.jobs[job_id]
