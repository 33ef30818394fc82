"""GitHub REST client — open pull requests and CI signals for stale-PR checks."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from watchpost.errors import MalformedResponseError
from watchpost.transport import DEFAULT_RETRY_POLICY, RetryableTransport, RetryPolicy

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken

GITHUB_API_URL = "https://api.github.com"

# Combined-status states and check-suite conclusions that mean CI is broken.
FAILING_STATUS_STATES = frozenset({"failure", "error"})
FAILING_SUITE_CONCLUSIONS = frozenset({"failure", "timed_out", "cancelled"})


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class User(BaseModel):
    login: str


class PRHead(BaseModel):
    sha: str = ""


class PullRequest(BaseModel):
    """The subset of a GitHub pull request needed to judge staleness."""

    number: int
    title: str
    user: User
    created_at: datetime
    # Last activity (commits, comments, reviews); staleness is measured from here.
    updated_at: datetime
    draft: bool = False
    html_url: str = ""
    head: PRHead = Field(default_factory=PRHead)
    requested_reviewers: list[User] = Field(default_factory=list)

    @property
    def author(self) -> str:
        return self.user.login


class CommitStatus(BaseModel):
    """Combined legacy commit status (CircleCI, Jenkins, ...)."""

    state: str = ""

    @property
    def failing(self) -> bool:
        return self.state in FAILING_STATUS_STATES


class CheckSuite(BaseModel):
    """A GitHub Actions / Checks API suite."""

    status: str | None = None
    conclusion: str | None = None

    @property
    def failing(self) -> bool:
        return self.conclusion in FAILING_SUITE_CONCLUSIONS


class CheckSuitesResponse(BaseModel):
    total_count: int = 0
    check_suites: list[CheckSuite] = Field(default_factory=list)


_pull_requests = TypeAdapter(list[PullRequest])


def _validate(adapter_or_model: Any, data: Any, what: str) -> Any:
    try:
        if isinstance(adapter_or_model, TypeAdapter):
            return adapter_or_model.validate_python(data)
        return adapter_or_model.model_validate(data)
    except ValidationError as exc:
        msg = f"unexpected {what} payload from GitHub: {exc.error_count()} validation error(s)"
        raise MalformedResponseError(msg) from exc


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GitHubClient:
    """Read-only GitHub API access through the shared retrying transport.

    Args:
        transport: Shared RetryableTransport.
        token: Optional personal access token (60 req/h without, 5000 with).
        policy: Retry policy applied to every call.
        base_url: API root, overridable for GitHub Enterprise.
    """

    def __init__(
        self,
        transport: RetryableTransport,
        token: str = "",
        *,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        base_url: str = GITHUB_API_URL,
    ) -> None:
        self._transport = transport
        self._token = token
        self._policy = policy
        self._base_url = base_url.rstrip("/")

    def _request(self, path: str, params: dict[str, str | int] | None = None) -> httpx.Request:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "watchpost",  # GitHub rejects requests without one
        }
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return httpx.Request("GET", f"{self._base_url}{path}", params=params, headers=headers)

    async def list_open_items(
        self, token: CancellationToken, owner: str, repo: str
    ) -> list[PullRequest]:
        """Return the open pull requests of ``owner/repo`` (first 100)."""
        request = self._request(
            f"/repos/{owner}/{repo}/pulls", {"state": "open", "per_page": 100}
        )
        data = await self._transport.fetch_json(request, self._policy, token)
        return _validate(_pull_requests, data, "pull request list")

    async def get_commit_status(
        self, token: CancellationToken, owner: str, repo: str, ref: str
    ) -> CommitStatus:
        request = self._request(f"/repos/{owner}/{repo}/commits/{ref}/status")
        data = await self._transport.fetch_json(request, self._policy, token)
        return _validate(CommitStatus, data, "commit status")

    async def get_check_suites(
        self, token: CancellationToken, owner: str, repo: str, ref: str
    ) -> list[CheckSuite]:
        request = self._request(f"/repos/{owner}/{repo}/commits/{ref}/check-suites")
        data = await self._transport.fetch_json(request, self._policy, token)
        return _validate(CheckSuitesResponse, data, "check suites").check_suites
