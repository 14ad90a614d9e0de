"""Job queue and worker pool.

- inmemory: process-local backend (for testing/development)
- redis: durable backend shared by several worker processes
"""

from .backend import InMemoryQueueBackend, QueueBackend
from .models import JobRetention, JobState, QueueCounts, QueuedJob
from .policy import RateLimiter, RetryPolicy, SlidingWindowRateLimiter
from .redis_backend import RedisQueueBackend, RedisRateLimiter
from .worker import ReviewQueue, WorkerPool, create_review_processor

__all__ = [
    "QueueBackend",
    "InMemoryQueueBackend",
    "RedisQueueBackend",
    "RedisRateLimiter",
    "JobRetention",
    "JobState",
    "QueueCounts",
    "QueuedJob",
    "RateLimiter",
    "RetryPolicy",
    "SlidingWindowRateLimiter",
    "ReviewQueue",
    "WorkerPool",
    "create_review_processor",
]
