"""Periodic checks — task protocol, dedup gate, and the concrete checks."""

from watchpost.tasks.balance_check import BalanceCheckTask
from watchpost.tasks.base import CheckResult, Task
from watchpost.tasks.gate import NotificationGate
from watchpost.tasks.pr_review_check import PRReviewCheckTask

__all__ = [
    "BalanceCheckTask",
    "CheckResult",
    "NotificationGate",
    "PRReviewCheckTask",
    "Task",
]
