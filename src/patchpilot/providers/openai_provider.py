"""
OpenAI review provider.

Works against any OpenAI-compatible chat completions endpoint, which covers
both the hosted OpenAI API and a local Ollama server.
"""

import json
import time
from typing import Any

import openai
import structlog
from openai import AsyncOpenAI
from pydantic import ValidationError

from patchpilot.errors import ProviderError, ProviderResponseError
from patchpilot.review.models import ReviewComment

from .base import ProviderReview, ReviewRequest, TokenUsage

logger = structlog.get_logger(__name__)


SYSTEM_PROMPT = """You are an expert code reviewer. Analyze the provided code diff and provide actionable feedback.

Your review should:
1. Focus on bugs, security issues, and performance problems
2. Suggest improvements for code quality and maintainability
3. Be constructive and educational
4. Include specific line references when applicable

Respond with a JSON object containing:
- "summary": A brief 1-2 sentence summary of the review
- "comments": An array of comment objects with:
  - "file": The file path
  - "line": The line number (from the diff)
  - "severity": One of "critical", "major", "minor", "info"
  - "category": One of "bug", "security", "performance", "style", "suggestion", "praise"
  - "message": The review comment (be specific and helpful)
  - "suggestedFix": Optional code suggestion

Only respond with valid JSON. No markdown, no code blocks, just the JSON object."""

DEFAULT_SUMMARY = "Review completed"


class OpenAIReviewProvider:
    """Generate reviews with an OpenAI-compatible chat model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o",
        name: str = "openai",
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ):
        """
        Initialize the provider.

        Args:
            client: Shared async client; safe for concurrent use
            model: Default model, overridable per request via config.ai_model
            name: Provider name used in logs and errors
            temperature: Sampling temperature
            max_tokens: Completion token cap
        """
        self.client = client
        self.model = model
        self.name = name
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_review(self, request: ReviewRequest) -> ProviderReview:
        """Review one chunk of diff text."""
        model = (request.config.ai_model if request.config else None) or self.model
        start_time = time.monotonic()

        logger.debug(
            "Generating review",
            provider=self.name,
            model=model,
            chunk_id=request.chunk_id,
            diff_length=len(request.diff),
        )

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_user_prompt(request)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error(
                "Review generation failed", provider=self.name, model=model, error=str(e)
            )
            raise ProviderError(
                self.name, str(e), status_code=getattr(e, "status_code", None)
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderResponseError(self.name, "Empty response from model")

        comments, summary = self.parse_response(content)
        usage = response.usage
        tokens = TokenUsage(
            input=usage.prompt_tokens if usage else 0,
            output=usage.completion_tokens if usage else 0,
            total=usage.total_tokens if usage else 0,
        )

        logger.info(
            "Review generated",
            provider=self.name,
            model=model,
            comments=len(comments),
            tokens_used=tokens.total,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

        return ProviderReview(
            comments=comments, summary=summary, tokens_used=tokens, model=model
        )

    def build_user_prompt(self, request: ReviewRequest) -> str:
        """Build the user prompt for a chunk."""
        parts = ["Please review the following code changes:", ""]

        config = request.config
        if config and config.guidelines:
            parts.append("## Review Guidelines")
            parts.extend(f"- {g}" for g in config.guidelines)
            parts.append("")

        if config and config.language:
            parts.extend([f"Language: {config.language}", ""])

        parts.extend(["## Diff", "```diff", request.diff, "```"])
        return "\n".join(parts)

    def parse_response(self, content: str) -> tuple[list[ReviewComment], str]:
        """Parse the model's JSON answer.

        Individual comments that do not validate are dropped; a response that
        is not a JSON object fails the whole call.
        """
        try:
            payload: Any = json.loads(content)
        except json.JSONDecodeError as e:
            raise ProviderResponseError(self.name, f"Response is not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ProviderResponseError(self.name, "Response is not a JSON object")

        comments: list[ReviewComment] = []
        for raw in payload.get("comments") or []:
            try:
                comments.append(ReviewComment.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed comment", provider=self.name, error=str(e)
                )

        summary = payload.get("summary")
        return comments, summary if isinstance(summary, str) and summary else DEFAULT_SUMMARY
