"""Version control host interface."""

from typing import Any, Protocol

from patchpilot.review.models import Platform


class VersionControlHost(Protocol):
    """Protocol for hosts that supply diffs and accept review comments."""

    platform: Platform

    def parse_repository(self, pr_url: str) -> tuple[str, str] | None:
        """Derive (owner, repo) from a pull request URL, or None if it is not ours."""
        ...

    async def get_pull_request_diff(self, owner: str, repo: str, pr_number: int) -> str:
        """Fetch the unified diff of a pull request."""
        ...

    async def create_review(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        body: str,
        event: str,
        comments: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Submit one review carrying inline comments.

        Args:
            owner: Repository owner
            repo: Repository name
            pr_number: Pull request number
            body: Review summary text
            event: "COMMENT", "APPROVE" or "REQUEST_CHANGES"
            comments: Entries of {"path", "line", "side", "body"}; line is a
                line of the new file, at least 1
        """
        ...
