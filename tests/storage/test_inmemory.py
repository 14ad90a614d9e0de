"""Tests for the in-memory data store."""

import pytest

from patchpilot.errors import DataStoreError
from patchpilot.review.models import Category, ReviewStatus, StoredComment, StoredSeverity
from patchpilot.storage import InMemoryDataStore


class TestInMemoryDataStore:
    """Tests for InMemoryDataStore."""

    @pytest.mark.asyncio
    async def test_create_review(self, data_store: InMemoryDataStore, make_job) -> None:
        review_id = await data_store.create_review(make_job())

        record = data_store.reviews[review_id]
        assert record.status is ReviewStatus.PENDING
        assert record.repository_id == 42
        assert record.pr_number == 7
        assert record.head_sha == "abc123"

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, data_store: InMemoryDataStore, make_job) -> None:
        first = await data_store.create_review(make_job())
        second = await data_store.create_review(make_job())

        assert first != second

    @pytest.mark.asyncio
    async def test_status_and_error(self, data_store: InMemoryDataStore, make_job) -> None:
        review_id = await data_store.create_review(make_job())

        await data_store.update_review_status(review_id, ReviewStatus.FAILED, "timeout")

        record = data_store.reviews[review_id]
        assert record.status is ReviewStatus.FAILED
        assert record.error_message == "timeout"

    @pytest.mark.asyncio
    async def test_complete_review(self, data_store: InMemoryDataStore, make_job) -> None:
        review_id = await data_store.create_review(make_job())

        await data_store.complete_review(
            review_id, tokens_used=1200, comments_count=3, summary="Solid change"
        )

        record = data_store.reviews[review_id]
        assert record.status is ReviewStatus.COMPLETED
        assert record.tokens_used == 1200
        assert record.completed_at is not None
        assert record.metadata == {"commentsCount": 3, "summary": "Solid change"}

    @pytest.mark.asyncio
    async def test_comments(self, data_store: InMemoryDataStore, make_job) -> None:
        review_id = await data_store.create_review(make_job())
        comment = StoredComment(
            file_path="a.py",
            line_start=1,
            content="Rename this",
            severity=StoredSeverity.SUGGESTION,
            category=Category.STYLE,
        )

        comment_id = await data_store.create_review_comment(review_id, comment)

        assert comment_id == 1
        assert data_store.comments[review_id] == [comment]

    @pytest.mark.asyncio
    async def test_unknown_review(self, data_store: InMemoryDataStore) -> None:
        with pytest.raises(DataStoreError):
            await data_store.update_review_status(999, ReviewStatus.IN_PROGRESS)
