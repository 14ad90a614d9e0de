"""
Review Queue and Worker Pool

Producers enqueue ReviewJobs through ReviewQueue; a WorkerPool claims them
with bounded concurrency and a sliding-window rate limit, runs the processor,
and retries failures with exponential backoff until the job's attempts are
used up, after which the job is parked in the failed set.

Delivery is at least once. A running job's lease is extended in the
background; when a worker dies, or cannot record the outcome, the lease runs
out and the next worker to poll puts the job back in line.

A retried review starts over from the raw diff; earlier AI calls are repeated.
"""

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import ValidationError

from patchpilot.errors import JobPayloadError, JobTimeoutError
from patchpilot.review.models import ReviewJob
from patchpilot.review.orchestrator import ReviewOrchestrator

from .backend import DEFAULT_LEASE_S, QueueBackend
from .models import JobRetention, QueuedJob
from .policy import RateLimiter, RetryPolicy

logger = structlog.get_logger(__name__)

Processor = Callable[[QueuedJob], Awaitable[dict[str, Any] | None]]


class ReviewQueue:
    """Producer side of the review queue."""

    def __init__(self, backend: QueueBackend, retry_policy: RetryPolicy | None = None):
        self.backend = backend
        self.retry_policy = retry_policy or RetryPolicy()

    async def enqueue(self, job: ReviewJob) -> QueuedJob:
        """Add a review job. Duplicate names are accepted."""
        queued = await self.backend.add(
            job.job_name,
            job.model_dump(mode="json"),
            priority=int(job.priority),
            max_attempts=self.retry_policy.max_attempts,
        )
        logger.info(
            "Review job enqueued",
            job_id=queued.id,
            name=queued.name,
            priority=queued.priority,
        )
        return queued

    async def get(self, job_id: str) -> QueuedJob | None:
        return await self.backend.get(job_id)

    async def stats(self) -> dict[str, int]:
        """Job counts per state."""
        counts = await self.backend.counts()
        return counts.to_dict()

    async def close(self) -> None:
        await self.backend.close()


class WorkerPool:
    """Run queued jobs with bounded concurrency."""

    def __init__(
        self,
        backend: QueueBackend,
        processor: Processor,
        concurrency: int = 3,
        retry_policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        retention: JobRetention | None = None,
        poll_interval_s: float = 1.0,
        lease_s: float = DEFAULT_LEASE_S,
        job_timeout_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the pool.

        Args:
            backend: Queue storage shared with producers
            processor: Coroutine run for each claimed job; raising fails the attempt
            concurrency: Maximum jobs running at once
            retry_policy: Backoff between attempts
            rate_limiter: Limits job starts per time window; None disables it
            retention: Finished job retention, applied after every job
            poll_interval_s: Sleep between polls of an empty queue
            lease_s: How long a claimed job stays reserved without a heartbeat
            job_timeout_s: Attempts running longer than this fail; None disables it
            clock: Wall clock used for scheduling, shared across processes
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if lease_s <= 0:
            raise ValueError("lease_s must be positive")
        self.backend = backend
        self.processor = processor
        self.concurrency = concurrency
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter
        self.retention = retention or JobRetention()
        self.poll_interval_s = poll_interval_s
        self.lease_s = lease_s
        self.job_timeout_s = job_timeout_s
        self._clock = clock
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Process jobs until stop() is called, then wait for running jobs."""
        logger.info("Worker pool started", concurrency=self.concurrency)
        self._stopping.clear()
        while not self._stopping.is_set():
            if not await self._tick():
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._stopping.wait(), self.poll_interval_s)
        await self._drain()
        logger.info("Worker pool stopped")

    def stop(self) -> None:
        self._stopping.set()

    async def run_until_idle(self) -> None:
        """Process jobs until nothing is waiting, delayed or running.

        Jobs left active by another worker are waited for until they finish
        or their lease runs out.
        """
        while True:
            if await self._tick():
                continue
            if self._tasks:
                await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)
                continue
            counts = await self.backend.counts()
            if counts.waiting == 0 and counts.delayed == 0 and counts.active == 0:
                return
            await asyncio.sleep(self.poll_interval_s)

    async def _tick(self) -> bool:
        """Claim one job and start it. Returns False when nothing was claimable."""
        await self._semaphore.acquire()
        try:
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_for_slot()
            now = self._clock()
            for job_id in await self.backend.recover_stalled(now):
                logger.warning("Recovered stalled job", job_id=job_id)
            job = await self.backend.claim(now, self.lease_s)
        except BaseException:
            self._semaphore.release()
            raise

        if job is None:
            self._semaphore.release()
            return False

        if self.rate_limiter is not None:
            try:
                await self.rate_limiter.record()
            except BaseException:
                self._semaphore.release()
                raise

        task = asyncio.create_task(self._execute(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _execute(self, job: QueuedJob) -> None:
        log = logger.bind(job_id=job.id, name=job.name, attempt=job.attempts_made)
        lease = asyncio.create_task(self._hold_lease(job))
        try:
            failure: Exception | None = None
            result: dict[str, Any] | None = None
            try:
                result = await self._run_processor(job)
            except Exception as e:
                failure = e
            # The heartbeat only returns on its own once the lease is gone
            lease_lost = lease.done()
            lease.cancel()

            if lease_lost:
                log.warning("Job lease lost, leaving the job to its new owner")
            elif failure is not None:
                await self._handle_failure(job, failure)
            else:
                await self.backend.complete(job.id, result, self._clock())
                log.info("Job completed")
            await self.backend.purge(self.retention, self._clock())
        except Exception as e:
            # The job stays active until its lease runs out, then is redelivered
            log.error("Queue bookkeeping failed", error=str(e))
        finally:
            lease.cancel()
            self._semaphore.release()

    async def _run_processor(self, job: QueuedJob) -> dict[str, Any] | None:
        if self.job_timeout_s is None:
            return await self.processor(job)
        try:
            return await asyncio.wait_for(self.processor(job), self.job_timeout_s)
        except asyncio.TimeoutError as e:
            raise JobTimeoutError(
                f"Job {job.id} timed out after {self.job_timeout_s}s"
            ) from e

    async def _hold_lease(self, job: QueuedJob) -> None:
        """Extend the job's lease until cancelled. Returns once the lease is lost."""
        while True:
            await asyncio.sleep(self.lease_s / 3)
            try:
                held = await self.backend.extend_lease(job.id, self._clock() + self.lease_s)
            except Exception as e:
                logger.warning("Could not extend job lease", job_id=job.id, error=str(e))
                continue
            if not held:
                logger.warning("Job lease lost", job_id=job.id)
                return

    async def _handle_failure(self, job: QueuedJob, error: Exception) -> None:
        reason = str(error) or error.__class__.__name__
        log = logger.bind(job_id=job.id, name=job.name, attempt=job.attempts_made)

        # Undecodable payloads are not retried
        if isinstance(error, JobPayloadError) or not self.retry_policy.should_retry(
            job.attempts_made, job.max_attempts
        ):
            await self.backend.fail(job.id, reason, self._clock())
            log.error("Job failed permanently", error=reason)
            return

        delay = self.retry_policy.delay_for(job.attempts_made)
        await self.backend.retry(job.id, reason, self._clock() + delay)
        log.warning(
            "Job failed, retrying",
            error=reason,
            retry_in_s=delay,
            attempts_remaining=job.attempts_remaining,
        )

    async def _drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def create_review_processor(orchestrator: ReviewOrchestrator) -> Processor:
    """Adapt an orchestrator into a queue processor returning the job result."""

    async def process(queued: QueuedJob) -> dict[str, Any]:
        try:
            job = ReviewJob.model_validate(queued.payload)
        except ValidationError as e:
            raise JobPayloadError(f"Job {queued.id} payload is not a review job: {e}") from e

        log = logger.bind(
            job_id=queued.id,
            repository_id=job.repository_id,
            pr_number=job.pr_number,
        )
        log.info(
            "Processing review job",
            attempt=queued.attempts_made,
            max_attempts=queued.max_attempts,
        )

        try:
            result = await orchestrator.process_job(job)
        except Exception as e:
            log.error(
                "Review job attempt failed",
                error=str(e),
                attempts_remaining=queued.attempts_remaining,
            )
            raise

        return result.to_dict()

    return process
