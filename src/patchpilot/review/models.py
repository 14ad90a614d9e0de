"""
Data models for the review pipeline.

Diff and chunk types are plain dataclasses scoped to a single job execution.
Types that cross a serialization boundary (queued job payloads, AI responses)
are pydantic models so they are validated on the way in.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ChangeType(str, Enum):
    """Kind of a single diff line."""

    ADD = "add"
    DELETE = "delete"
    CONTEXT = "context"


class FileStatus(str, Enum):
    """What happened to a file in the diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChunkStrategy(str, Enum):
    """How a diff was split into chunks."""

    SINGLE = "single"
    BY_LANGUAGE = "by-language"
    BATCHED = "batched"


class Platform(str, Enum):
    """Version control platforms a job can originate from."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    AZURE = "azure"


class JobPriority(IntEnum):
    """Queue priority. Lower values are served first."""

    OPENED = 1  # New pull request
    REOPENED = 2
    SYNCHRONIZE = 5  # New commits pushed to an open pull request


class Severity(str, Enum):
    """Severity as reported by the AI provider."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    INFO = "info"


class StoredSeverity(str, Enum):
    """Severity vocabulary of the data store."""

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"
    INFO = "info"


class Category(str, Enum):
    """Comment category as reported by the AI provider."""

    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    SUGGESTION = "suggestion"
    PRAISE = "praise"


class ReviewStatus(str, Enum):
    """Lifecycle of a persisted review record."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


_STORED_SEVERITY: dict[Severity, StoredSeverity] = {
    Severity.CRITICAL: StoredSeverity.ERROR,
    Severity.MAJOR: StoredSeverity.WARNING,
    Severity.MINOR: StoredSeverity.SUGGESTION,
    Severity.INFO: StoredSeverity.INFO,
}


_SEVERITY_VALUES = frozenset(s.value for s in Severity)
_CATEGORY_VALUES = frozenset(c.value for c in Category)


def map_severity(severity: Severity) -> StoredSeverity:
    """Translate a provider severity into the data store vocabulary."""
    return _STORED_SEVERITY[severity]


# =============================================================================
# Diff model
# =============================================================================


@dataclass
class DiffChange:
    """A single added, deleted or context line."""

    type: ChangeType
    line_number: int  # Line in the new file
    content: str
    old_line_number: int | None = None  # Set for delete and context lines


@dataclass
class DiffHunk:
    """A contiguous block of changes."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    section: str = ""  # Text after the closing @@
    changes: list[DiffChange] = field(default_factory=list)

    @property
    def header(self) -> str:
        header = f"@@ -{self.old_start},{self.old_lines} +{self.new_start},{self.new_lines} @@"
        if self.section:
            header += f" {self.section}"
        return header


@dataclass
class DiffFile:
    """Changes to one file."""

    old_path: str
    new_path: str
    status: FileStatus = FileStatus.MODIFIED
    hunks: list[DiffHunk] = field(default_factory=list)
    is_binary: bool = False

    @property
    def additions(self) -> int:
        return sum(
            1 for h in self.hunks for c in h.changes if c.type is ChangeType.ADD
        )

    @property
    def deletions(self) -> int:
        return sum(
            1 for h in self.hunks for c in h.changes if c.type is ChangeType.DELETE
        )

    @property
    def total_lines_changed(self) -> int:
        """Total lines affected."""
        return self.additions + self.deletions


@dataclass
class ParsedDiff:
    """All files of a diff. Totals are always derived from the files."""

    files: list[DiffFile] = field(default_factory=list)

    @property
    def total_additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def total_deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    @property
    def total_files(self) -> int:
        return len(self.files)


@dataclass
class ChangedLines:
    """Flat `path:line: content` listings of a file's changes."""

    additions: list[str] = field(default_factory=list)
    deletions: list[str] = field(default_factory=list)


@dataclass
class FilterConfig:
    """File selection rules applied before chunking."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    max_file_size: int | None = None  # Bytes, estimated from line count
    max_files: int | None = None

    @classmethod
    def from_path_filters(
        cls,
        path_filters: list[str] | None,
        max_file_size: int | None = None,
        max_files: int | None = None,
    ) -> "FilterConfig":
        """Split `!`-prefixed patterns into excludes and the rest into includes."""
        path_filters = path_filters or []
        return cls(
            include=[p for p in path_filters if not p.startswith("!")],
            exclude=[p[1:] for p in path_filters if p.startswith("!")],
            max_file_size=max_file_size,
            max_files=max_files,
        )


@dataclass
class DiffChunk:
    """A group of files reviewed together in one AI call."""

    id: int
    files: list[DiffFile]
    content: str
    estimated_tokens: int
    language: str | None = None


@dataclass
class ChunkedDiff:
    """Chunks covering every input file exactly once."""

    chunks: list[DiffChunk]
    strategy: ChunkStrategy

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def total_files(self) -> int:
        return sum(len(c.files) for c in self.chunks)


@dataclass
class ChunkCostEstimate:
    """Advisory cost estimate for reviewing a set of chunks."""

    input_tokens: int
    estimated_output_tokens: int
    estimated_cost: float  # USD


@dataclass
class ReviewCostEstimate:
    """Pre-flight estimate for a whole diff, computed without any AI call."""

    files: int
    chunks: int
    estimated_tokens: int
    estimated_cost: float  # USD


# =============================================================================
# Job and review model
# =============================================================================


class ReviewConfig(BaseModel):
    """Resolved per-repository review configuration."""

    language: str | None = None
    profile: str = "balanced"  # "thorough" | "balanced" | "quick"
    ai_provider: str | None = None
    ai_model: str | None = None
    path_filters: list[str] = Field(default_factory=list)
    guidelines: list[str] = Field(default_factory=list)
    auto_review: bool = True
    max_files: int | None = None
    max_file_size: int | None = None


class ReviewJob(BaseModel):
    """Queued request to review one pull request revision."""

    repository_id: int
    pr_number: int
    pr_title: str
    pr_url: str
    pr_author: str
    head_sha: str
    base_sha: str
    diff: str
    platform: Platform
    priority: int = JobPriority.OPENED
    config: ReviewConfig | None = None

    @property
    def job_name(self) -> str:
        """Queue job name. Not unique: redeliveries share it."""
        return f"review-{self.repository_id}-{self.pr_number}"


class ReviewComment(BaseModel):
    """One comment produced by the AI provider."""

    file: str
    line: int = 0
    severity: Severity = Severity.INFO
    category: Category = Category.SUGGESTION
    message: str
    suggested_fix: str | None = Field(default=None, alias="suggestedFix")

    model_config = {"populate_by_name": True}

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in _SEVERITY_VALUES:
            return value.lower()
        return value if isinstance(value, Severity) else Severity.INFO

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in _CATEGORY_VALUES:
            return value.lower()
        return value if isinstance(value, Category) else Category.SUGGESTION

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, value: Any) -> Any:
        return 0 if value is None else value


@dataclass
class StoredComment:
    """A comment as handed to the data store."""

    file_path: str
    line_start: int
    content: str
    severity: StoredSeverity
    category: Category
    suggested_fix: str | None = None
    is_posted: bool = False


@dataclass
class ReviewOutcome:
    """Aggregated result of reviewing every chunk of a diff."""

    comments: list[ReviewComment] = field(default_factory=list)
    summary: str | None = None
    tokens_used: int = 0
    cost: float = 0.0
    files_reviewed: int = 0
    chunks_reviewed: int = 0


@dataclass
class ReviewJobResult:
    """What a worker reports back for one job execution."""

    review_id: int
    status: ReviewStatus
    comments_created: int = 0
    tokens_used: int = 0
    processing_time_ms: int = 0
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for queue storage."""
        return {
            "reviewId": self.review_id,
            "status": self.status.value,
            "commentsCreated": self.comments_created,
            "tokensUsed": self.tokens_used,
            "processingTimeMs": self.processing_time_ms,
            "errorMessage": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewJobResult":
        return cls(
            review_id=data["reviewId"],
            status=ReviewStatus(data["status"]),
            comments_created=data.get("commentsCreated", 0),
            tokens_used=data.get("tokensUsed", 0),
            processing_time_ms=data.get("processingTimeMs", 0),
            error_message=data.get("errorMessage"),
        )
