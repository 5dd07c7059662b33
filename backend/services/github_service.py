"""GitHub Data Service.

Fetches public profile data from the GitHub REST API: the user record,
every repository (paginated, then re-fetched in full with its language
breakdown), per-repository author commit counts and README text.

Errors are classified (not found, rate limited, transient, upstream) and
raised without retrying; retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import base64
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, Field

from app.config import Settings, get_settings
from app.exceptions import (
    SourceAPIError,
    SourceNotFoundError,
    SourceRateLimitError,
    SourceTransientError,
    TalentRankError,
)
from app.logging_config import get_logger
from app.metrics import GITHUB_API_CALLS, GITHUB_API_DURATION

logger = get_logger(__name__)

PER_PAGE = 100


class UserRecord(BaseModel):
    """Subset of the GitHub user payload the pipeline consumes."""

    login: str
    name: str = ""
    email: str = ""
    location: str = ""
    bio: str = ""
    blog: str = ""
    company: str = ""
    avatar_url: str = ""
    html_url: str = ""
    followers: int = 0
    following: int = 0
    public_repos: int = 0
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserRecord:
        return cls(
            login=data.get("login") or "",
            name=data.get("name") or "",
            email=data.get("email") or "",
            location=data.get("location") or "",
            bio=data.get("bio") or "",
            blog=data.get("blog") or "",
            company=data.get("company") or "",
            avatar_url=data.get("avatar_url") or "",
            html_url=data.get("html_url") or "",
            followers=data.get("followers") or 0,
            following=data.get("following") or 0,
            public_repos=data.get("public_repos") or 0,
            created_at=data.get("created_at"),
        )


class RepositoryRecord(BaseModel):
    """Subset of the GitHub repository payload plus its language map."""

    name: str
    full_name: str = ""
    owner_login: str = ""
    description: str = ""
    language: str = ""
    languages: dict[str, int] = Field(default_factory=dict)
    stargazers_count: int = 0
    forks_count: int = 0
    size: int = 0
    fork: bool = False
    archived: bool = False
    updated_at: datetime | None = None
    html_url: str = ""

    @classmethod
    def from_api(
        cls, data: dict[str, Any], languages: dict[str, int] | None = None
    ) -> RepositoryRecord:
        return cls(
            name=data.get("name") or "",
            full_name=data.get("full_name") or "",
            owner_login=(data.get("owner") or {}).get("login") or "",
            description=data.get("description") or "",
            language=data.get("language") or "",
            languages=languages or {},
            stargazers_count=data.get("stargazers_count") or 0,
            forks_count=data.get("forks_count") or 0,
            size=data.get("size") or 0,
            fork=bool(data.get("fork", False)),
            archived=bool(data.get("archived", False)),
            updated_at=data.get("updated_at"),
            html_url=data.get("html_url") or "",
        )


@asynccontextmanager
async def _deadline(seconds: float, operation: str) -> AsyncIterator[None]:
    """Bound a block of GitHub calls; overrunning it is a transient failure."""
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        raise SourceTransientError(
            f"GitHub {operation} timed out after {seconds:.0f}s"
        ) from exc


class GitHubService:
    """Authenticated GitHub REST client.

    One instance is shared by the orchestrator and the batch workers.
    Repository detail and commit-count fan-outs share a single semaphore
    so at most ``github_detail_concurrency`` of those requests are in flight.
    """

    def __init__(self, token: str, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {token}",
        }
        self._semaphore = asyncio.Semaphore(self.settings.github_detail_concurrency)

    # --- Public API ---

    async def fetch_user(self, username: str) -> UserRecord:
        """Fetch the user record. Raises on any failure, including 404."""
        async with _deadline(self.settings.github_user_timeout, "user fetch"):
            data = await self._get_json(
                f"{self.settings.github_api_base}/users/{username}", endpoint="user"
            )
        return UserRecord.from_api(data)

    async def fetch_repositories(self, username: str) -> list[RepositoryRecord]:
        """Fetch every repository of the user, in listing order.

        The listing is paginated with the Link header. Each entry is then
        re-fetched in full (falling back to the summary on failure) and its
        language map attached (empty on failure).
        """
        url = f"{self.settings.github_api_base}/users/{username}/repos"
        params = {
            "type": "all",
            "sort": "updated",
            "direction": "desc",
            "per_page": PER_PAGE,
        }
        async with _deadline(self.settings.github_repos_timeout, "repository fetch"):
            summaries: list[dict[str, Any]] = []
            async for page in self._paginate(url, params, endpoint="repos"):
                summaries.extend(page)

            records = await asyncio.gather(
                *(self._fetch_repository_detail(username, s) for s in summaries)
            )

        logger.info("github_repositories_fetched", count=len(records))
        return list(records)

    async def count_user_commits(self, username: str, owner: str, repo: str) -> int:
        """Count commits authored by ``username`` in ``owner/repo``. Failures count as 0."""
        url = f"{self.settings.github_api_base}/repos/{owner}/{repo}/commits"
        params = {"author": username, "per_page": PER_PAGE}
        total = 0
        try:
            async with self._semaphore:
                async with _deadline(self.settings.github_request_timeout, "commit count"):
                    async for page in self._paginate(url, params, endpoint="commits"):
                        total += len(page)
        except TalentRankError as exc:
            logger.debug("github_commit_count_failed", repo=repo, error=exc.code)
            return 0
        return total

    async def fetch_readme(self, owner: str, repo: str) -> str:
        """Return the decoded README of ``owner/repo`` or "" if unavailable."""
        url = f"{self.settings.github_api_base}/repos/{owner}/{repo}/readme"
        try:
            async with _deadline(self.settings.github_request_timeout, "readme fetch"):
                data = await self._get_json(url, endpoint="readme")
            content = data.get("content") or ""
            if data.get("encoding", "base64") != "base64":
                return content
            return base64.b64decode(content).decode("utf-8", errors="replace")
        except (TalentRankError, ValueError) as exc:
            logger.debug("github_readme_unavailable", repo=repo, error=str(exc))
            return ""

    # --- Internals ---

    async def _fetch_repository_detail(
        self, username: str, summary: dict[str, Any]
    ) -> RepositoryRecord:
        name = summary.get("name") or ""
        owner = (summary.get("owner") or {}).get("login") or username
        base = f"{self.settings.github_api_base}/repos/{owner}/{name}"

        async with self._semaphore:
            try:
                detail = await self._get_json(base, endpoint="repo")
            except TalentRankError as exc:
                logger.warning("github_repo_detail_fallback", repo=name, error=exc.code)
                detail = summary

            try:
                languages = await self._get_json(f"{base}/languages", endpoint="languages")
            except TalentRankError:
                languages = {}

        if not isinstance(languages, dict):
            languages = {}
        return RepositoryRecord.from_api(detail, languages)

    async def _paginate(
        self, url: str, params: dict[str, Any] | None, endpoint: str
    ) -> AsyncIterator[list[dict[str, Any]]]:
        next_url: str | None = url
        while next_url:
            response = await self._request(next_url, params=params, endpoint=endpoint)
            payload = response.json()
            yield payload if isinstance(payload, list) else []
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

    async def _get_json(self, url: str, endpoint: str) -> Any:
        response = await self._request(url, endpoint=endpoint)
        return response.json()

    async def _request(
        self,
        url: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make one authenticated GET and classify the outcome.

        - 404 -> SourceNotFoundError
        - 403/429 -> SourceRateLimitError
        - 5xx, connection errors, timeouts -> SourceTransientError
        - other 4xx -> SourceAPIError
        """
        async with httpx.AsyncClient(timeout=self.settings.github_request_timeout) as client:
            with GITHUB_API_DURATION.labels(endpoint=endpoint).time():
                try:
                    response = await client.get(url, headers=self._headers, params=params)
                except httpx.RequestError as exc:
                    GITHUB_API_CALLS.labels(endpoint=endpoint, status="error").inc()
                    logger.warning(
                        "github_api_connection_failed",
                        endpoint=endpoint,
                        error=type(exc).__name__,
                    )
                    raise SourceTransientError(
                        f"GitHub API connection failed: {type(exc).__name__}"
                    ) from exc

        status = response.status_code
        GITHUB_API_CALLS.labels(endpoint=endpoint, status=str(status)).inc()

        if status == 404:
            raise SourceNotFoundError(resource="repository" if endpoint != "user" else "user")

        if status in (403, 429):
            retry_after = self._retry_after(response)
            logger.warning(
                "github_rate_limited",
                endpoint=endpoint,
                status=status,
                retry_after=retry_after,
            )
            raise SourceRateLimitError(retry_after=retry_after)

        if status >= 500:
            raise SourceTransientError(f"GitHub API server error {status}")

        if status >= 400:
            raise SourceAPIError(f"GitHub API returned status {status}", status_code=status)

        return response

    @staticmethod
    def _retry_after(response: httpx.Response) -> int | None:
        """Seconds until the rate limit resets, from Retry-After or X-RateLimit-Reset."""
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return int(retry_after)

        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return max(int(reset) - int(time.time()), 0)
        return None
