"""AI review provider interface."""

from dataclasses import dataclass, field
from typing import Protocol

from patchpilot.review.models import ReviewComment, ReviewConfig


@dataclass
class ReviewRequest:
    """One chunk of diff text to review."""

    diff: str
    config: ReviewConfig | None = None
    chunk_id: int | None = None
    language: str | None = None


@dataclass
class TokenUsage:
    """Token counts reported by the provider."""

    input: int = 0
    output: int = 0
    total: int = 0


@dataclass
class ProviderReview:
    """Comments and summary for a single chunk."""

    comments: list[ReviewComment] = field(default_factory=list)
    summary: str = ""
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""


class AIReviewProvider(Protocol):
    """Protocol for AI review providers.

    Implementations must be safe to share across concurrently running jobs.
    """

    name: str

    async def generate_review(self, request: ReviewRequest) -> ProviderReview:
        """Review a chunk of diff text.

        Args:
            request: Diff text plus the resolved review configuration

        Returns:
            Comments in the provider's response order, a summary and token usage

        Raises:
            ProviderError: If the call fails or the answer is unusable
        """
        ...
