"""Task protocol and the collaborator interfaces tasks depend on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from watchpost.api.github import CheckSuite, CommitStatus, PullRequest
    from watchpost.cancellation import CancellationToken

    Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


@runtime_checkable
class Task(Protocol):
    """A unit of work the Scheduler runs once per tick.

    ``run`` raises on failure; the scheduler logs the error and keeps the
    task's timer running.
    """

    @property
    def name(self) -> str: ...

    async def run(self, token: CancellationToken) -> None: ...


class BalanceSource(Protocol):
    async def get_value(self, token: CancellationToken) -> float: ...


class PullRequestSource(Protocol):
    async def list_open_items(
        self, token: CancellationToken, owner: str, repo: str
    ) -> list[PullRequest]: ...

    async def get_commit_status(
        self, token: CancellationToken, owner: str, repo: str, ref: str
    ) -> CommitStatus: ...

    async def get_check_suites(
        self, token: CancellationToken, owner: str, repo: str, ref: str
    ) -> list[CheckSuite]: ...


@dataclass
class CheckResult:
    """Outcome of evaluating one entity during a tick.

    Attributes:
        value: The measured value (a balance, an age).
        alertable: Whether the value crosses the alert threshold.
        keys: Dedup keys to consult the NotificationGate with.
    """

    value: object
    alertable: bool
    keys: list[str] = field(default_factory=list)
