"""GitHub API client for fetching commit details.

The changelog tools ask this client for the diff of a single commit. It
gathers:
- Commit message and author
- Changed files (paths, status, additions, deletions, patches)

Design notes:
- Uses httpx for async HTTP requests
- Network failures, rate limiting (429) and 5xx responses raise
  TransientCallError so the retry policy can absorb them
- Uses a Protocol so the tools don't depend on the concrete implementation

GitHub API docs: https://docs.github.com/en/rest/commits/commits
"""

from __future__ import annotations

import os
from typing import Protocol

import httpx

from changelog_agent.errors import TransientCallError
from changelog_agent.schemas import CommitDetails, FileChange

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitHubClientProtocol(Protocol):
    """Protocol defining the interface for commit data fetching."""

    async def get_commit(self, repo: str, sha: str) -> CommitDetails:
        """Fetch one commit with its file changes.

        Args:
            repo: Repository in "owner/name" format
            sha: Full or abbreviated commit SHA

        Returns:
            The commit's details
        """
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        client = GitHubClient(token="ghp_...")
        commit = await client.get_commit("myorg/api", "a1b2c3d")
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token. Falls back to
                   GITHUB_TOKEN environment variable if not provided.
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests pass a MockTransport)
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._timeout = timeout
        self._transport = transport
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

    async def get_commit(self, repo: str, sha: str) -> CommitDetails:
        """Fetch a commit via GET /repos/{repo}/commits/{sha}.

        Raises:
            TransientCallError: On transport errors, 429 or 5xx responses
            httpx.HTTPStatusError: On any other error status (e.g. 404)
        """
        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.get(f"/repos/{repo}/commits/{sha}")
            except httpx.TransportError as e:
                raise TransientCallError(f"GitHub request failed: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientCallError(
                f"GitHub returned {resp.status_code} for commit {sha}"
            )
        resp.raise_for_status()
        return self._parse_commit(resp.json())

    @staticmethod
    def _parse_commit(data: dict) -> CommitDetails:
        commit = data.get("commit") or {}
        author = (data.get("author") or {}).get("login") or (
            commit.get("author") or {}
        ).get("name", "")
        return CommitDetails(
            sha=data["sha"],
            message=commit.get("message", ""),
            author=author,
            files=[
                FileChange(
                    path=f["filename"],
                    status=f.get("status", "modified"),
                    additions=f.get("additions", 0),
                    deletions=f.get("deletions", 0),
                    patch=f.get("patch") or "",
                )
                for f in data.get("files") or []
            ],
        )


# ---------------------------------------------------------------------------
# Mock Implementation (for testing)
# ---------------------------------------------------------------------------


class MockGitHubClient:
    """Mock GitHub client that returns predefined commits.

    Use this in tests and local development when you don't want to hit
    the real GitHub API.

    Usage:
        client = MockGitHubClient(mock_data={"myorg/api": {"a1b2c3d": data}})
        commit = await client.get_commit("myorg/api", "a1b2c3d")
    """

    def __init__(self, mock_data: dict | None = None) -> None:
        """Initialize with optional predefined data.

        Args:
            mock_data: Nested dict of repo -> sha -> CommitDetails data
        """
        self._mock_data = mock_data or {}

    async def get_commit(self, repo: str, sha: str) -> CommitDetails:
        """Return mock commit data.

        Raises:
            KeyError: If no mock data exists for this repo/sha
        """
        commits = self._mock_data.get(repo, {})
        for known_sha, data in commits.items():
            if known_sha.startswith(sha) or sha.startswith(known_sha):
                return CommitDetails.model_validate({"sha": known_sha, **data})
        raise KeyError(f"No mock commit {sha} in {repo}")
