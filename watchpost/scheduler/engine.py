"""Scheduler — runs every registered task on its own fixed-period timer."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from watchpost.errors import OperationCancelled, WatchpostError
from watchpost.scheduler.models import ScheduledTask

if TYPE_CHECKING:
    from watchpost.tasks.base import Task

logger = logging.getLogger(__name__)


class Scheduler:
    """Drives registered tasks at independent, wall-clock periodic intervals.

    Each binding becomes one APScheduler interval job with
    ``max_instances=1`` and ``coalesce=True``: a task never overlaps itself,
    and ticks that fire while it is still running are dropped rather than
    queued. A failing run is logged and the timer keeps going.

    A scheduler is single-use: once stopped it cannot be started again.

    Args:
        timezone: IANA timezone for the underlying APScheduler instance.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self._timezone = timezone
        self._bindings: list[ScheduledTask] = []
        self._scheduler: AsyncIOScheduler | None = None
        self._inflight: set[asyncio.Task] = set()
        self._state = "new"

    @property
    def running(self) -> bool:
        return self._state == "running"

    @property
    def tasks(self) -> tuple[ScheduledTask, ...]:
        return tuple(self._bindings)

    def has_tasks(self) -> bool:
        return bool(self._bindings)

    # -- Registration ----------------------------------------------------------

    def register(self, task: Task, interval: float | timedelta) -> ScheduledTask:
        """Bind ``task`` to a polling interval. Inert until ``start()``."""
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            msg = f"interval must be positive, got {seconds}s for task '{task.name}'"
            raise ValueError(msg)
        if self._state != "new":
            msg = "tasks cannot be registered after the scheduler has started"
            raise RuntimeError(msg)

        binding = ScheduledTask(task=task, interval=seconds)
        self._bindings.append(binding)
        logger.info("Registered task '%s' (interval=%ss)", task.name, seconds)
        return binding

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start one timer per registered task."""
        if self._state == "running":
            msg = "scheduler is already running"
            raise RuntimeError(msg)
        if self._state == "stopped":
            msg = "a stopped scheduler cannot be restarted; create a new one"
            raise RuntimeError(msg)

        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        for binding in self._bindings:
            self._scheduler.add_job(
                self._run_binding,
                trigger=IntervalTrigger(seconds=binding.interval, timezone=self._timezone),
                id=binding.id,
                name=binding.name,
                args=[binding],
                max_instances=1,
                coalesce=True,
                misfire_grace_time=None,
            )
        self._scheduler.start()
        self._state = "running"
        logger.info("Scheduler started with %d task(s)", len(self._bindings))

    async def stop(self) -> None:
        """Signal every task to stop and wait for in-flight runs to return.

        Cancellation is broadcast through each binding's token, so runs
        blocked in a backoff wait or a request return promptly instead of
        being killed mid-step.
        """
        for binding in self._bindings:
            binding.token.cancel()

        if self._state != "running" or self._scheduler is None:
            self._state = "stopped"
            return

        self._scheduler.pause()
        pending = self._inflight - {asyncio.current_task()}
        if pending:
            logger.info("Waiting for %d running task(s) to finish", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        self._scheduler.shutdown(wait=False)
        self._state = "stopped"
        logger.info("Scheduler stopped")

    # -- Internal --------------------------------------------------------------

    async def _run_binding(self, binding: ScheduledTask) -> None:
        """Timer callback: one tick of one task."""
        if binding.token.cancelled:
            return

        current = asyncio.current_task()
        if current is not None:
            self._inflight.add(current)
        binding.run_count += 1
        binding.last_run_at = datetime.now(UTC)
        try:
            await binding.task.run(binding.token)
            binding.last_error = None
        except OperationCancelled as exc:
            if binding.token.cancelled:
                logger.info("Task '%s' interrupted by shutdown", binding.name)
            else:
                binding.last_error = str(exc)
                logger.error("Task '%s' timed out: %s", binding.name, exc)
        except WatchpostError as exc:
            binding.last_error = str(exc)
            logger.error("Task '%s' failed: %s", binding.name, exc)
        except Exception as exc:
            binding.last_error = str(exc)
            logger.exception("Task '%s' raised an unexpected error", binding.name)
        finally:
            if current is not None:
                self._inflight.discard(current)
