"""Periodic task scheduling — bindings and the timer engine."""

from watchpost.scheduler.engine import Scheduler
from watchpost.scheduler.models import ScheduledTask

__all__ = [
    "ScheduledTask",
    "Scheduler",
]
