"""CancellationToken — broadcast stop signal with an optional deadline.

Every suspension point in watchpost (backoff waits, in-flight requests) races
against a token, so ``Scheduler.stop()`` only has to flip a flag and never
waits on a rendezvous with a busy task loop.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import TYPE_CHECKING, TypeVar

from watchpost.errors import DeadlineExceeded, OperationCancelled

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from datetime import timedelta

T = TypeVar("T")


class CancellationToken:
    """A cancellable scope, optionally bounded by a monotonic deadline.

    Tokens derived with :meth:`with_timeout` share the parent's stop signal,
    so cancelling the parent cancels every derived token.
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        _event: asyncio.Event | None = None,
    ) -> None:
        self._event = _event if _event is not None else asyncio.Event()
        self._deadline = deadline

    def __repr__(self) -> str:
        return (
            f"CancellationToken(cancelled={self.cancelled}, "
            f"remaining={self.remaining()})"
        )

    # -- State -----------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def deadline(self) -> float | None:
        """Deadline on the ``time.monotonic()`` clock, or None."""
        return self._deadline

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def cancel(self) -> None:
        """Signal cancellation. Safe to call repeatedly; never blocks."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            msg = "operation cancelled"
            raise OperationCancelled(msg)
        if self.expired:
            msg = "deadline exceeded"
            raise DeadlineExceeded(msg)

    def with_timeout(self, timeout: float | timedelta) -> CancellationToken:
        """Derive a token sharing this stop signal with a tighter deadline."""
        seconds = timeout if isinstance(timeout, int | float) else timeout.total_seconds()
        deadline = time.monotonic() + seconds
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CancellationToken(deadline=deadline, _event=self._event)

    # -- Suspension points -----------------------------------------------------

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled or the deadline arrives first."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        timeout = seconds if remaining is None else min(seconds, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except TimeoutError:
            if remaining is not None and remaining <= seconds:
                msg = "deadline exceeded"
                raise DeadlineExceeded(msg) from None
            return
        msg = "operation cancelled"
        raise OperationCancelled(msg)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, abandoning it if the token fires first.

        The abandoned work is cancelled and awaited so that no request is
        left running in the background.
        """
        try:
            self.raise_if_cancelled()
        except OperationCancelled:
            # Never started, so close it rather than leave it unawaited.
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise
        work = asyncio.ensure_future(awaitable)
        stopper = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, stopper},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stopper.cancel()
            if not work.done():
                work.cancel()
                await asyncio.gather(work, return_exceptions=True)

        if work in done:
            return work.result()
        if self._event.is_set():
            msg = "operation cancelled"
            raise OperationCancelled(msg)
        msg = "deadline exceeded"
        raise DeadlineExceeded(msg)
