"""
Diff Chunker

Packs filtered files into units that fit an AI context budget. Small diffs go
out as a single chunk; larger ones are grouped by language when that yields few
chunks, and batched in priority order otherwise.
"""

import math

from .diff_parser import reconstruct_file_diff
from .file_filter import calculate_file_priority, get_language
from .models import (
    ChunkCostEstimate,
    ChunkedDiff,
    ChunkStrategy,
    DiffChunk,
    DiffFile,
    ParsedDiff,
)

# Code has more symbols than prose, so fewer characters per token than ~4
CHARS_PER_TOKEN = 3.5

# Language grouping is only used if it produces at most this many chunks
MAX_LANGUAGE_CHUNKS = 5

# Expected completion size relative to the prompt
OUTPUT_TOKEN_RATIO = 0.2

MODEL_TOKEN_LIMITS: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    "claude-3-opus": 200_000,
    "claude-3-sonnet": 200_000,
    "claude-3-haiku": 200_000,
    "gemini-1.5-pro": 1_000_000,
    "gemini-1.5-flash": 1_000_000,
}

# USD per 1K tokens (input/output). Approximate list prices.
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}
DEFAULT_PRICING_MODEL = "gpt-4o"


def estimate_tokens(text: str) -> int:
    """Estimate token count for text."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def get_max_input_tokens(model: str) -> int:
    """Safe prompt budget for a model, leaving room for instructions and output."""
    limit = MODEL_TOKEN_LIMITS.get(model, 8_192)
    return math.floor(limit * 0.6)


def estimate_cost(input_tokens: float, output_tokens: float, model: str) -> float:
    """Estimate USD cost of a call. Unknown models are priced as gpt-4o."""
    pricing = MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])
    return (input_tokens / 1000) * pricing["input"] + (
        output_tokens / 1000
    ) * pricing["output"]


def estimate_chunks_cost(chunks: list[DiffChunk], model: str) -> ChunkCostEstimate:
    """Advisory cost of reviewing all chunks. Not billing-accurate."""
    input_tokens = sum(c.estimated_tokens for c in chunks)
    output_tokens = math.ceil(input_tokens * OUTPUT_TOKEN_RATIO)
    return ChunkCostEstimate(
        input_tokens=input_tokens,
        estimated_output_tokens=output_tokens,
        estimated_cost=estimate_cost(input_tokens, output_tokens, model),
    )


class DiffChunker:
    """Split a filtered diff into reviewable chunks."""

    def __init__(
        self,
        max_tokens_per_chunk: int = 50_000,
        max_files_per_chunk: int = 20,
    ):
        """
        Initialize chunker.

        Args:
            max_tokens_per_chunk: Token budget per chunk
            max_files_per_chunk: File budget per chunk
        """
        self.max_tokens_per_chunk = max_tokens_per_chunk
        self.max_files_per_chunk = max_files_per_chunk

    def chunk(self, diff: ParsedDiff) -> ChunkedDiff:
        """
        Split a diff into chunks.

        Strategy:
        1. Everything in one chunk if it fits both budgets
        2. Otherwise per-language groups, if that gives few enough chunks
        3. Otherwise plain batches in priority order
        """
        files = sorted(diff.files, key=calculate_file_priority, reverse=True)
        contents = {id(f): reconstruct_file_diff(f) for f in files}

        full_content = "\n".join(contents[id(f)] for f in files)
        total_tokens = estimate_tokens(full_content)

        if (
            total_tokens <= self.max_tokens_per_chunk
            and len(files) <= self.max_files_per_chunk
        ):
            return ChunkedDiff(
                chunks=[
                    DiffChunk(
                        id=1,
                        files=files,
                        content=full_content,
                        estimated_tokens=total_tokens,
                    )
                ],
                strategy=ChunkStrategy.SINGLE,
            )

        language_chunks = self._chunk_by_language(files, contents)
        if len(language_chunks) <= MAX_LANGUAGE_CHUNKS:
            return ChunkedDiff(chunks=language_chunks, strategy=ChunkStrategy.BY_LANGUAGE)

        return ChunkedDiff(
            chunks=self._pack(files, contents, start_id=1),
            strategy=ChunkStrategy.BATCHED,
        )

    def _chunk_by_language(
        self, files: list[DiffFile], contents: dict[int, str]
    ) -> list[DiffChunk]:
        """Pack each language group independently, keeping priority order."""
        groups: dict[str, list[DiffFile]] = {}
        for file in files:
            groups.setdefault(get_language(file.new_path), []).append(file)

        chunks: list[DiffChunk] = []
        for language, group in groups.items():
            chunks.extend(
                self._pack(group, contents, start_id=len(chunks) + 1, language=language)
            )
        return chunks

    def _pack(
        self,
        files: list[DiffFile],
        contents: dict[int, str],
        start_id: int,
        language: str | None = None,
    ) -> list[DiffChunk]:
        """Greedy bin packing under the token and file budgets."""
        chunks: list[DiffChunk] = []
        current: list[DiffFile] = []
        current_tokens = 0

        def emit(group: list[DiffFile]) -> None:
            chunks.append(
                self._create_chunk(group, contents, start_id + len(chunks), language)
            )

        for file in files:
            file_tokens = estimate_tokens(contents[id(file)])

            # An oversized file always gets its own chunk
            if file_tokens > self.max_tokens_per_chunk:
                if current:
                    emit(current)
                    current, current_tokens = [], 0
                emit([file])
                continue

            if (
                current_tokens + file_tokens > self.max_tokens_per_chunk
                or len(current) >= self.max_files_per_chunk
            ):
                if current:
                    emit(current)
                current, current_tokens = [file], file_tokens
            else:
                current.append(file)
                current_tokens += file_tokens

        if current:
            emit(current)

        return chunks

    def _create_chunk(
        self,
        files: list[DiffFile],
        contents: dict[int, str],
        chunk_id: int,
        language: str | None,
    ) -> DiffChunk:
        content = "\n".join(contents[id(f)] for f in files)
        return DiffChunk(
            id=chunk_id,
            files=list(files),
            content=content,
            estimated_tokens=estimate_tokens(content),
            language=language,
        )
