"""BalanceCheckTask — alerts when the Telnyx account balance drops below a threshold."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from watchpost.tasks.base import CheckResult, utcnow
from watchpost.tasks.gate import NotificationGate

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken
    from watchpost.notifications.channels import NotificationSink
    from watchpost.tasks.base import BalanceSource, Clock

logger = logging.getLogger(__name__)

BALANCE_KEY = "telnyx:balance"
RETENTION_FLOOR = timedelta(days=7)
SUBJECT = "Telnyx Balance Alert"


class BalanceCheckTask:
    """Polls a balance feed and notifies while it stays under ``threshold``.

    Repeat alerts are held back for ``cooldown`` after each successful send.
    Fetch and send failures are raised to the scheduler; a failed send leaves
    the cooldown untouched so the next tick tries again.
    """

    def __init__(
        self,
        source: BalanceSource,
        sink: NotificationSink,
        *,
        threshold: float,
        cooldown: timedelta = timedelta(hours=6),
        call_timeout: timedelta = timedelta(seconds=30),
        key: str = BALANCE_KEY,
        clock: Clock = utcnow,
        name: str = "telnyx_balance",
    ) -> None:
        self._source = source
        self._sink = sink
        self._threshold = threshold
        self._cooldown = cooldown
        self._call_timeout = call_timeout
        self._key = key
        self._clock = clock
        self._name = name
        self._gate = NotificationGate()
        self._last_observed: float | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def gate(self) -> NotificationGate:
        return self._gate

    def evaluate(self, balance: float) -> CheckResult:
        return CheckResult(value=balance, alertable=balance < self._threshold, keys=[self._key])

    async def run(self, token: CancellationToken) -> None:
        balance = await self._source.get_value(token.with_timeout(self._call_timeout))

        # Only log when the balance moves, to keep the console quiet.
        if self._last_observed is None or balance != self._last_observed:
            logger.info("Current Telnyx balance: %.2f", balance)
            self._last_observed = balance

        now = self._clock()
        self._gate.cleanup(RETENTION_FLOOR, self._cooldown, now)

        result = self.evaluate(balance)
        if not result.alertable:
            return

        for key in result.keys:
            if not self._gate.should_notify(key, self._cooldown, now):
                logger.info(
                    "Balance %.2f below threshold, skipping notification due to cooldown "
                    "(last sent %s)",
                    balance,
                    self._gate.last_notified(key),
                )
                continue

            body = (
                f"Your Telnyx balance (${balance:.2f}) has fallen below "
                f"the ${self._threshold:.2f} threshold."
            )
            await self._sink.send(token.with_timeout(self._call_timeout), SUBJECT, body)
            self._gate.record_notified(key, self._clock())
            logger.info("Sent low balance alert (balance=%.2f)", balance)
