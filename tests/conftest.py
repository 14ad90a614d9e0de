"""Pytest configuration and fixtures for patchpilot tests."""

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest

from patchpilot.providers.base import ProviderReview, TokenUsage
from patchpilot.review.models import Platform, ReviewComment, ReviewJob
from patchpilot.storage import InMemoryDataStore


MODIFIED_PY_DIFF = """\
diff --git a/src/utils.py b/src/utils.py
index 1234567..abcdefg 100644
--- a/src/utils.py
+++ b/src/utils.py
@@ -10,3 +10,4 @@ def helper():
 def new_function():
-    return False
+    # Added a comment
+    print("hello")
     return True
"""


@pytest.fixture
def make_job() -> Callable[..., ReviewJob]:
    """Factory for review jobs with sensible defaults."""

    def _make(**overrides: Any) -> ReviewJob:
        data: dict[str, Any] = {
            "repository_id": 42,
            "pr_number": 7,
            "pr_title": "Add helper",
            "pr_url": "https://github.com/acme/widgets/pull/7",
            "pr_author": "octocat",
            "head_sha": "abc123",
            "base_sha": "def456",
            "diff": MODIFIED_PY_DIFF,
            "platform": Platform.GITHUB,
        }
        data.update(overrides)
        return ReviewJob(**data)

    return _make


@pytest.fixture
def data_store() -> InMemoryDataStore:
    """Fresh in-memory data store."""
    return InMemoryDataStore()


@pytest.fixture
def provider() -> AsyncMock:
    """AI provider returning one comment per call."""
    mock = AsyncMock()
    mock.name = "mock"
    mock.generate_review.return_value = ProviderReview(
        comments=[
            ReviewComment(
                file="src/utils.py",
                line=11,
                severity="major",
                category="bug",
                message="Debug print left in",
                suggested_fix="logger.debug('hello')",
            )
        ],
        summary="One issue found",
        tokens_used=TokenUsage(input=800, output=200, total=1000),
        model="gpt-4o",
    )
    return mock
