"""
Review pipeline: diff parsing, file filtering and chunking.

The orchestrator lives in patchpilot.review.orchestrator; it depends on the
provider, storage and host packages, which themselves import these models.
"""

from .models import (
    Category,
    ChangedLines,
    ChangeType,
    ChunkedDiff,
    ChunkStrategy,
    DiffChange,
    DiffChunk,
    DiffFile,
    DiffHunk,
    FileStatus,
    FilterConfig,
    JobPriority,
    ParsedDiff,
    Platform,
    ReviewComment,
    ReviewConfig,
    ReviewJob,
    ReviewJobResult,
    ReviewOutcome,
    ReviewStatus,
    Severity,
    StoredComment,
    StoredSeverity,
    map_severity,
)
from .diff_parser import DiffParser, extract_changed_lines, parse_diff, reconstruct_file_diff
from .file_filter import FileFilter, calculate_file_priority, get_language, matches_patterns
from .chunker import DiffChunker, estimate_chunks_cost, estimate_tokens

__all__ = [
    "Category",
    "ChangedLines",
    "ChangeType",
    "ChunkedDiff",
    "ChunkStrategy",
    "DiffChange",
    "DiffChunk",
    "DiffFile",
    "DiffHunk",
    "FileStatus",
    "FilterConfig",
    "JobPriority",
    "ParsedDiff",
    "Platform",
    "ReviewComment",
    "ReviewConfig",
    "ReviewJob",
    "ReviewJobResult",
    "ReviewOutcome",
    "ReviewStatus",
    "Severity",
    "StoredComment",
    "StoredSeverity",
    "map_severity",
    "DiffParser",
    "parse_diff",
    "reconstruct_file_diff",
    "extract_changed_lines",
    "FileFilter",
    "calculate_file_priority",
    "get_language",
    "matches_patterns",
    "DiffChunker",
    "estimate_chunks_cost",
    "estimate_tokens",
]
