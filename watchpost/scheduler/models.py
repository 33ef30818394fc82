"""ScheduledTask — a task bound to its polling interval and stop signal."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from watchpost.cancellation import CancellationToken

if TYPE_CHECKING:
    from datetime import datetime

    from watchpost.tasks.base import Task


def make_task_id() -> str:
    """Generate a new binding ID."""
    return uuid.uuid4().hex


@dataclass
class ScheduledTask:
    """A registered task and its run bookkeeping.

    Attributes:
        task: The task whose ``run`` is invoked on every tick.
        interval: Seconds between ticks.
        token: Stop signal handed to every ``run``; cancelled by ``Scheduler.stop``.
        id: Unique identifier (UUID hex), used as the timer job id.
        run_count: Number of ticks that invoked ``run``.
        last_run_at: When the latest run started.
        last_error: Message of the latest failure, cleared by a successful run.
    """

    task: Task
    interval: float
    token: CancellationToken = field(default_factory=CancellationToken)
    id: str = field(default_factory=make_task_id)
    run_count: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None

    @property
    def name(self) -> str:
        return self.task.name
