"""PRReviewCheckTask — alerts on open pull requests nobody has touched in a while.

Per tick, for every configured repository:

1. Fetch the open pull requests.
2. Drop drafts and, if the repository has an author allow-list, PRs by
   anyone else (case-insensitive).
3. Drop PRs updated more recently than the stale threshold.
4. Consult the NotificationGate with the ``owner/repo#number`` key.
5. Look up CI status (combined commit status and check suites) to decorate
   the alert; a failed lookup only loses the decoration.
6. Send, and start the cooldown only if the send succeeded.

A failing repository or a failing send is logged and skipped so the rest of
the tick still runs. Finally the gate is swept so keys of merged or closed
PRs are eventually forgotten.
"""

from __future__ import annotations

import logging
from datetime import UTC, timedelta
from email.utils import format_datetime
from typing import TYPE_CHECKING

from watchpost.errors import WatchpostError
from watchpost.tasks.base import CheckResult, utcnow
from watchpost.tasks.gate import NotificationGate

if TYPE_CHECKING:
    from datetime import datetime

    from watchpost.api.github import PullRequest
    from watchpost.cancellation import CancellationToken
    from watchpost.config import RepositoryConfig
    from watchpost.notifications.channels import NotificationSink
    from watchpost.tasks.base import Clock, PullRequestSource

logger = logging.getLogger(__name__)

RETENTION_FLOOR = timedelta(days=7)
CI_FAILING_NOTE = " (CI: Failing ❌)"


def dedup_key(owner: str, repo: str, number: int) -> str:
    return f"{owner}/{repo}#{number}"


def format_alert(repo: RepositoryConfig, pr: PullRequest, *, ci_failing: bool) -> tuple[str, str]:
    """Build the (subject, body) pair for a stale PR."""
    ci_note = CI_FAILING_NOTE if ci_failing else ""
    updated = format_datetime(pr.updated_at.astimezone(UTC), usegmt=True)
    subject = f"Stale PR: {pr.title}"
    body = (
        f"PR #{pr.number} in {repo.slug} by {pr.author} is pending review.{ci_note}\n"
        f"Last updated: {updated}\n"
        f"Link: {pr.html_url}"
    )
    return subject, body


class PRReviewCheckTask:
    """Monitors GitHub repositories for stale pull requests.

    Args:
        source: Pull request and CI data (usually a GitHubClient).
        sink: Where alerts go.
        repositories: Repositories to watch, each with an optional author list.
        stale_after: Minimum time since the last update before a PR alerts.
        cooldown: Minimum time between two alerts for the same PR.
        call_timeout: Deadline for each external call, retries included.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        source: PullRequestSource,
        sink: NotificationSink,
        repositories: list[RepositoryConfig],
        *,
        stale_after: timedelta = timedelta(days=4),
        cooldown: timedelta = timedelta(hours=24),
        call_timeout: timedelta = timedelta(seconds=30),
        clock: Clock = utcnow,
        name: str = "github_pr_review",
    ) -> None:
        self._source = source
        self._sink = sink
        self._repositories = list(repositories)
        self._stale_after = stale_after
        self._cooldown = cooldown
        self._call_timeout = call_timeout
        self._clock = clock
        self._name = name
        self._gate = NotificationGate()

    @property
    def name(self) -> str:
        return self._name

    @property
    def gate(self) -> NotificationGate:
        return self._gate

    # -- Tick ------------------------------------------------------------------

    async def run(self, token: CancellationToken) -> None:
        now = self._clock()
        for repo in self._repositories:
            try:
                prs = await self._source.list_open_items(
                    token.with_timeout(self._call_timeout), repo.owner, repo.repo
                )
            except WatchpostError as exc:
                token.raise_if_cancelled()
                logger.error("Failed to fetch PRs for %s: %s", repo.slug, exc)
                continue

            for pr in prs:
                result = self.evaluate(repo, pr, now)
                if not result.alertable:
                    continue
                for key in result.keys:
                    if not self._gate.should_notify(key, self._cooldown, now):
                        logger.debug("Skipping %s: notified within cooldown", key)
                        continue
                    await self._notify(token, repo, pr, key)

        removed = self._gate.cleanup(RETENTION_FLOOR, self._cooldown, self._clock())
        if removed:
            logger.info("Forgot %d PR notification record(s)", removed)

    def evaluate(self, repo: RepositoryConfig, pr: PullRequest, now: datetime) -> CheckResult:
        """Decide whether ``pr`` warrants an alert, ignoring cooldowns."""
        age = now - pr.updated_at
        alertable = (
            not pr.draft
            and self._author_allowed(repo, pr.author)
            and age >= self._stale_after
        )
        return CheckResult(
            value=age,
            alertable=alertable,
            keys=[dedup_key(repo.owner, repo.repo, pr.number)],
        )

    # -- Helpers ---------------------------------------------------------------

    @staticmethod
    def _author_allowed(repo: RepositoryConfig, author: str) -> bool:
        if not repo.authors:
            return True
        wanted = author.casefold()
        return any(a.casefold() == wanted for a in repo.authors)

    async def _notify(
        self, token: CancellationToken, repo: RepositoryConfig, pr: PullRequest, key: str
    ) -> None:
        ci_failing = await self._ci_failing(token, repo, pr, key)
        subject, body = format_alert(repo, pr, ci_failing=ci_failing)

        logger.info("Sending notification for stale PR %s", key)
        try:
            await self._sink.send(token.with_timeout(self._call_timeout), subject, body)
        except WatchpostError as exc:
            token.raise_if_cancelled()
            logger.error("Failed to send notification for %s: %s", key, exc)
            return
        self._gate.record_notified(key, self._clock())

    async def _ci_failing(
        self, token: CancellationToken, repo: RepositoryConfig, pr: PullRequest, key: str
    ) -> bool:
        """Combine both CI signals. Only an observed failure counts."""
        failing = False
        sha = pr.head.sha

        try:
            status = await self._source.get_commit_status(
                token.with_timeout(self._call_timeout), repo.owner, repo.repo, sha
            )
        except WatchpostError as exc:
            token.raise_if_cancelled()
            logger.error("Failed to check commit status for %s: %s", key, exc)
        else:
            failing = status.failing

        try:
            suites = await self._source.get_check_suites(
                token.with_timeout(self._call_timeout), repo.owner, repo.repo, sha
            )
        except WatchpostError as exc:
            token.raise_if_cancelled()
            logger.error("Failed to check suites for %s: %s", key, exc)
        else:
            failing = failing or any(suite.failing for suite in suites)

        return failing
