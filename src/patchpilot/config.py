"""Configuration management for patchpilot.

Settings are read from the environment once at process start and passed
explicitly into the pipeline; nothing below is consulted implicitly at call time.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PatchpilotConfig:
    """Runtime settings for the review pipeline and its worker pool."""

    # AI provider
    ai_provider: str = "openai"  # "openai" | "ollama"
    ai_model: str = "gpt-4o"
    openai_api_key: str | None = None
    ollama_url: str = "http://localhost:11434"
    ai_timeout_s: float = 120.0

    # Version control host
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"

    # Queue
    queue_backend: str = "inmemory"  # "inmemory" | "redis"
    queue_name: str = "code-review"
    redis_url: str = "redis://localhost:6379/0"

    # Worker pool
    worker_concurrency: int = 3
    rate_limit_max_jobs: int = 10
    rate_limit_window_s: float = 60.0
    max_attempts: int = 3
    backoff_delay_s: float = 1.0
    poll_interval_s: float = 1.0
    job_lease_s: float = 60.0
    job_timeout_s: float | None = 600.0  # None disables the timeout

    # Retention
    keep_completed_count: int = 100
    keep_completed_age_s: float = 24 * 60 * 60
    keep_failed_count: int = 500

    # Chunking and input bounds
    max_tokens_per_chunk: int = 50_000
    max_files_per_chunk: int = 20
    max_diff_bytes: int = 5 * 1024 * 1024

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> "PatchpilotConfig":
        """Create configuration from environment variables."""
        return cls(
            ai_provider=os.getenv("PATCHPILOT_AI_PROVIDER", "openai"),
            ai_model=os.getenv("PATCHPILOT_AI_MODEL", "gpt-4o"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            ollama_url=os.getenv("OLLAMA_URL", "http://localhost:11434"),
            ai_timeout_s=_env_float("PATCHPILOT_AI_TIMEOUT_S", 120.0),
            github_token=os.getenv("GITHUB_TOKEN"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            queue_backend=os.getenv("PATCHPILOT_QUEUE_BACKEND", "inmemory"),
            queue_name=os.getenv("PATCHPILOT_QUEUE_NAME", "code-review"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            worker_concurrency=_env_int("PATCHPILOT_WORKER_CONCURRENCY", 3),
            rate_limit_max_jobs=_env_int("PATCHPILOT_RATE_LIMIT_MAX", 10),
            rate_limit_window_s=_env_float("PATCHPILOT_RATE_LIMIT_WINDOW_S", 60.0),
            max_attempts=_env_int("PATCHPILOT_MAX_ATTEMPTS", 3),
            backoff_delay_s=_env_float("PATCHPILOT_BACKOFF_DELAY_S", 1.0),
            poll_interval_s=_env_float("PATCHPILOT_POLL_INTERVAL_S", 1.0),
            job_lease_s=_env_float("PATCHPILOT_JOB_LEASE_S", 60.0),
            job_timeout_s=_env_float("PATCHPILOT_JOB_TIMEOUT_S", 600.0) or None,
            keep_completed_count=_env_int("PATCHPILOT_KEEP_COMPLETED", 100),
            keep_completed_age_s=_env_float("PATCHPILOT_KEEP_COMPLETED_AGE_S", 24 * 60 * 60),
            keep_failed_count=_env_int("PATCHPILOT_KEEP_FAILED", 500),
            max_tokens_per_chunk=_env_int("PATCHPILOT_MAX_TOKENS_PER_CHUNK", 50_000),
            max_files_per_chunk=_env_int("PATCHPILOT_MAX_FILES_PER_CHUNK", 20),
            max_diff_bytes=_env_int("PATCHPILOT_MAX_DIFF_BYTES", 5 * 1024 * 1024),
            log_level=os.getenv("PATCHPILOT_LOG_LEVEL", "INFO"),
            log_json=_env_bool("PATCHPILOT_LOG_JSON", True),
        )
