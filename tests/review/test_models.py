"""Tests for review data models."""

import pytest
from pydantic import ValidationError

from patchpilot.review.models import (
    Category,
    JobPriority,
    ReviewComment,
    ReviewJobResult,
    ReviewStatus,
    Severity,
    StoredSeverity,
    map_severity,
)


class TestSeverityMapping:
    """Tests for map_severity."""

    @pytest.mark.parametrize(
        "severity,stored",
        [
            (Severity.CRITICAL, StoredSeverity.ERROR),
            (Severity.MAJOR, StoredSeverity.WARNING),
            (Severity.MINOR, StoredSeverity.SUGGESTION),
            (Severity.INFO, StoredSeverity.INFO),
        ],
    )
    def test_mapping(self, severity: Severity, stored: StoredSeverity) -> None:
        assert map_severity(severity) is stored

    def test_every_severity_is_mapped(self) -> None:
        for severity in Severity:
            assert isinstance(map_severity(severity), StoredSeverity)


class TestReviewComment:
    """Tests for ReviewComment validation."""

    def test_accepts_camel_case_fix(self) -> None:
        comment = ReviewComment.model_validate(
            {
                "file": "a.py",
                "line": 4,
                "severity": "CRITICAL",
                "category": "Security",
                "message": "Hardcoded secret",
                "suggestedFix": "os.environ['KEY']",
            }
        )

        assert comment.severity is Severity.CRITICAL
        assert comment.category is Category.SECURITY
        assert comment.suggested_fix == "os.environ['KEY']"

    def test_unknown_values_coerced(self) -> None:
        comment = ReviewComment.model_validate(
            {"file": "a.py", "line": None, "severity": "blocker", "category": 7, "message": "x"}
        )

        assert comment.severity is Severity.INFO
        assert comment.category is Category.SUGGESTION
        assert comment.line == 0

    def test_message_required(self) -> None:
        with pytest.raises(ValidationError):
            ReviewComment.model_validate({"file": "a.py", "line": 1})


class TestJobModels:
    """Tests for job naming, priority and results."""

    def test_job_name(self, make_job) -> None:
        assert make_job(repository_id=3, pr_number=99).job_name == "review-3-99"

    def test_opened_outranks_synchronize(self) -> None:
        assert JobPriority.OPENED < JobPriority.REOPENED < JobPriority.SYNCHRONIZE

    def test_payload_round_trip(self, make_job) -> None:
        job = make_job(priority=JobPriority.SYNCHRONIZE)

        restored = type(job).model_validate(job.model_dump(mode="json"))

        assert restored == job

    def test_result_dict(self) -> None:
        result = ReviewJobResult(
            review_id=5,
            status=ReviewStatus.COMPLETED,
            comments_created=2,
            tokens_used=900,
            processing_time_ms=12,
        )

        data = result.to_dict()

        assert data == {
            "reviewId": 5,
            "status": "completed",
            "commentsCreated": 2,
            "tokensUsed": 900,
            "processingTimeMs": 12,
            "errorMessage": None,
        }
        assert ReviewJobResult.from_dict(data) == result
