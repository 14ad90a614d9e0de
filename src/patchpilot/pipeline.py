"""
Pipeline assembly.

Builds the long-lived clients (AI provider, host, queue backend) once per
process and wires them into the orchestrator and the worker pool.
"""

import asyncio
from dataclasses import dataclass

import structlog

from patchpilot.config import PatchpilotConfig
from patchpilot.hosts import GitHubHost, VersionControlHost
from patchpilot.log_config import configure_logging
from patchpilot.providers import AIReviewProvider, create_review_provider
from patchpilot.queue import (
    InMemoryQueueBackend,
    JobRetention,
    QueueBackend,
    RateLimiter,
    RedisQueueBackend,
    RedisRateLimiter,
    RetryPolicy,
    ReviewQueue,
    SlidingWindowRateLimiter,
    WorkerPool,
    create_review_processor,
)
from patchpilot.review.chunker import DiffChunker
from patchpilot.review.diff_parser import DiffParser
from patchpilot.review.orchestrator import ReviewOrchestrator
from patchpilot.storage import DataStore, InMemoryDataStore

logger = structlog.get_logger(__name__)


@dataclass
class Pipeline:
    """Everything a worker process needs, built once."""

    config: PatchpilotConfig
    backend: QueueBackend
    queue: ReviewQueue
    provider: AIReviewProvider
    data_store: DataStore
    orchestrator: ReviewOrchestrator
    host: VersionControlHost | None = None

    def create_worker_pool(self) -> WorkerPool:
        config = self.config
        return WorkerPool(
            self.backend,
            create_review_processor(self.orchestrator),
            concurrency=config.worker_concurrency,
            retry_policy=self.queue.retry_policy,
            rate_limiter=self.create_rate_limiter(),
            retention=JobRetention(
                keep_completed=config.keep_completed_count,
                completed_max_age_s=config.keep_completed_age_s,
                keep_failed=config.keep_failed_count,
            ),
            poll_interval_s=config.poll_interval_s,
            lease_s=config.job_lease_s,
            job_timeout_s=config.job_timeout_s,
        )

    def create_rate_limiter(self) -> RateLimiter:
        """Share the start limit through Redis when the queue lives there."""
        config = self.config
        if isinstance(self.backend, RedisQueueBackend):
            return RedisRateLimiter(
                self.backend.client,
                config.queue_name,
                max_events=config.rate_limit_max_jobs,
                window_s=config.rate_limit_window_s,
            )
        return SlidingWindowRateLimiter(
            max_events=config.rate_limit_max_jobs,
            window_s=config.rate_limit_window_s,
        )

    async def close(self) -> None:
        await self.queue.close()
        if isinstance(self.host, GitHubHost):
            await self.host.close()


def create_queue_backend(config: PatchpilotConfig) -> QueueBackend:
    """Create the configured queue backend."""
    if config.queue_backend == "redis":
        return RedisQueueBackend.from_url(config.redis_url, config.queue_name)
    if config.queue_backend == "inmemory":
        return InMemoryQueueBackend()
    raise ValueError(f"Unknown queue backend: {config.queue_backend!r}")


def build_pipeline(
    config: PatchpilotConfig | None = None,
    data_store: DataStore | None = None,
    provider: AIReviewProvider | None = None,
    host: VersionControlHost | None = None,
    backend: QueueBackend | None = None,
) -> Pipeline:
    """
    Wire a pipeline from configuration.

    Collaborators passed in are used as-is; the rest are created from config.
    A GitHub host is only created when a token is configured.
    """
    config = config or PatchpilotConfig.from_env()

    if data_store is None:
        logger.warning("No data store supplied, reviews are kept in memory only")
        data_store = InMemoryDataStore()
    if provider is None:
        provider = create_review_provider(config)
    if host is None and config.github_token:
        host = GitHubHost(config.github_token, api_url=config.github_api_url)
    backend = backend or create_queue_backend(config)

    orchestrator = ReviewOrchestrator(
        provider,
        data_store,
        host=host,
        parser=DiffParser(max_diff_bytes=config.max_diff_bytes),
        chunker=DiffChunker(
            max_tokens_per_chunk=config.max_tokens_per_chunk,
            max_files_per_chunk=config.max_files_per_chunk,
        ),
        default_model=config.ai_model,
    )
    queue = ReviewQueue(
        backend,
        RetryPolicy(max_attempts=config.max_attempts, base_delay_s=config.backoff_delay_s),
    )
    return Pipeline(
        config=config,
        backend=backend,
        queue=queue,
        provider=provider,
        data_store=data_store,
        orchestrator=orchestrator,
        host=host,
    )


async def run_worker(pipeline: Pipeline) -> None:
    """Run a worker pool until cancelled."""
    pool = pipeline.create_worker_pool()
    try:
        await pool.run()
    finally:
        pool.stop()
        await pipeline.close()


def main() -> None:
    """Start a review worker process."""
    config = PatchpilotConfig.from_env()
    configure_logging(json_logs=config.log_json, level=config.log_level)
    logger.info(
        "Starting patchpilot worker",
        ai_provider=config.ai_provider,
        ai_model=config.ai_model,
        queue_backend=config.queue_backend,
        concurrency=config.worker_concurrency,
    )
    asyncio.run(run_worker(build_pipeline(config)))


if __name__ == "__main__":
    main()
