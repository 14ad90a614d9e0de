"""Abstract data store interface."""

from typing import Protocol

from patchpilot.review.models import ReviewJob, ReviewStatus, StoredComment


class DataStore(Protocol):
    """Protocol for review persistence backends.

    The store is the single source of truth for review status; callers must not
    cache what it returns across calls.
    """

    async def create_review(self, job: ReviewJob) -> int:
        """Create a pending review record.

        Args:
            job: Job the review belongs to

        Returns:
            ID of the new review record
        """
        ...

    async def update_review_status(
        self,
        review_id: int,
        status: ReviewStatus,
        error_message: str | None = None,
    ) -> None:
        """Move a review to a new status.

        Args:
            review_id: Review ID
            status: New status
            error_message: Failure text shown to users, if any
        """
        ...

    async def complete_review(
        self,
        review_id: int,
        tokens_used: int,
        comments_count: int,
        summary: str | None = None,
    ) -> None:
        """Mark a review completed with its aggregate results."""
        ...

    async def create_review_comment(self, review_id: int, comment: StoredComment) -> int:
        """Store one comment of a review.

        Returns:
            ID of the stored comment
        """
        ...
