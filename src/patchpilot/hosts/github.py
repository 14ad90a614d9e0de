"""
GitHub host over the REST API.
"""

import re
from typing import Any

import httpx
import structlog

from patchpilot.errors import HostError
from patchpilot.review.models import Platform

logger = structlog.get_logger(__name__)

GITHUB_API = "https://api.github.com"

PR_URL = re.compile(r"github\.com/([^/]+)/([^/]+)/")


class GitHubHost:
    """Fetch pull request diffs and submit reviews on GitHub."""

    platform = Platform.GITHUB

    def __init__(
        self,
        token: str,
        api_url: str = GITHUB_API,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = 30.0,
    ):
        """
        Initialize the host.

        Args:
            token: Installation or personal access token
            api_url: REST API base URL (GitHub Enterprise uses its own)
            client: Shared HTTP client; one is created if omitted
            timeout_s: Request timeout when creating the client
        """
        self.api_url = api_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    def parse_repository(self, pr_url: str) -> tuple[str, str] | None:
        match = PR_URL.search(pr_url)
        if not match:
            return None
        return match.group(1), match.group(2)

    async def get_pull_request_diff(self, owner: str, repo: str, pr_number: int) -> str:
        url = f"{self.api_url}/repos/{owner}/{repo}/pulls/{pr_number}"
        headers = {**self.headers, "Accept": "application/vnd.github.v3.diff"}
        response = await self._request("GET", url, headers=headers)
        return response.text

    async def create_review(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        body: str,
        event: str,
        comments: list[dict[str, Any]],
    ) -> dict[str, Any]:
        url = f"{self.api_url}/repos/{owner}/{repo}/pulls/{pr_number}/reviews"
        payload = {"body": body, "event": event, "comments": comments}
        response = await self._request("POST", url, headers=self.headers, json=payload)
        return response.json()

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise HostError(
                f"GitHub {method} {url} failed with {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise HostError(f"GitHub {method} {url} failed: {e}") from e
        return response
