"""In-memory data store for development and tests."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from patchpilot.errors import DataStoreError
from patchpilot.review.models import ReviewJob, ReviewStatus, StoredComment


@dataclass
class ReviewRecord:
    """A persisted review."""

    id: int
    repository_id: int
    pr_number: int
    pr_title: str
    pr_url: str
    pr_author: str
    head_sha: str
    base_sha: str
    status: ReviewStatus = ReviewStatus.PENDING
    tokens_used: int = 0
    error_message: str | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class InMemoryDataStore:
    """In-memory data store using dicts."""

    def __init__(self) -> None:
        """Initialize in-memory storage."""
        self.reviews: dict[int, ReviewRecord] = {}
        self.comments: dict[int, list[StoredComment]] = {}
        # (method, review_id, detail) in call order
        self.calls: list[tuple[str, int, Any]] = []
        self._next_id = 1
        self._next_comment_id = 1

    async def create_review(self, job: ReviewJob) -> int:
        review_id = self._next_id
        self._next_id += 1
        self.reviews[review_id] = ReviewRecord(
            id=review_id,
            repository_id=job.repository_id,
            pr_number=job.pr_number,
            pr_title=job.pr_title,
            pr_url=job.pr_url,
            pr_author=job.pr_author,
            head_sha=job.head_sha,
            base_sha=job.base_sha,
        )
        self.comments[review_id] = []
        self.calls.append(("create_review", review_id, job.job_name))
        return review_id

    async def update_review_status(
        self,
        review_id: int,
        status: ReviewStatus,
        error_message: str | None = None,
    ) -> None:
        record = self._get(review_id)
        record.status = status
        if error_message:
            record.error_message = error_message
        self.calls.append(("update_review_status", review_id, status))

    async def complete_review(
        self,
        review_id: int,
        tokens_used: int,
        comments_count: int,
        summary: str | None = None,
    ) -> None:
        record = self._get(review_id)
        record.status = ReviewStatus.COMPLETED
        record.tokens_used = tokens_used
        record.completed_at = datetime.now(timezone.utc)
        record.metadata = {"commentsCount": comments_count, "summary": summary}
        self.calls.append(("complete_review", review_id, tokens_used))

    async def create_review_comment(self, review_id: int, comment: StoredComment) -> int:
        self._get(review_id)
        comment_id = self._next_comment_id
        self._next_comment_id += 1
        self.comments[review_id].append(comment)
        self.calls.append(("create_review_comment", review_id, comment.file_path))
        return comment_id

    def _get(self, review_id: int) -> ReviewRecord:
        record = self.reviews.get(review_id)
        if record is None:
            raise DataStoreError(f"Review {review_id} not found")
        return record
