"""AI review providers."""

from .base import AIReviewProvider, ProviderReview, ReviewRequest, TokenUsage
from .factory import create_review_provider
from .openai_provider import OpenAIReviewProvider

__all__ = [
    "AIReviewProvider",
    "ProviderReview",
    "ReviewRequest",
    "TokenUsage",
    "OpenAIReviewProvider",
    "create_review_provider",
]
