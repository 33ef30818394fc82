"""NotificationGate — per-key cooldown tracking for alert deduplication."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


class NotificationGate:
    """Remembers when each dedup key was last notified.

    A key is present only after a confirmed send and until ``cleanup`` evicts
    it; an absent key is treated as never notified. Each task owns its own
    gate, so keys only need to be unique within one task.
    """

    def __init__(self) -> None:
        self._last_sent: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_sent)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._last_sent

    def last_notified(self, key: str) -> datetime | None:
        with self._lock:
            return self._last_sent.get(key)

    def should_notify(self, key: str, cooldown: timedelta, now: datetime) -> bool:
        """True if ``key`` was never notified or its cooldown has fully elapsed."""
        with self._lock:
            last = self._last_sent.get(key)
        return last is None or now - last >= cooldown

    def record_notified(self, key: str, now: datetime) -> None:
        """Start (or restart) the cooldown for ``key``.

        Only call this after the send succeeded: a failed send must leave the
        previous state untouched so the next tick tries again.
        """
        with self._lock:
            self._last_sent[key] = now

    def cleanup(self, retention_floor: timedelta, cooldown: timedelta, now: datetime) -> int:
        """Evict entries older than ``max(cooldown, retention_floor)``.

        Returns the number of evicted keys.
        """
        threshold = max(cooldown, retention_floor)
        with self._lock:
            stale = [key for key, last in self._last_sent.items() if now - last > threshold]
            for key in stale:
                del self._last_sent[key]
        if stale:
            logger.debug("Evicted %d stale notification record(s)", len(stale))
        return len(stale)
