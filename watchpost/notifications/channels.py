"""NotificationChannel protocol — interface for all notification delivery channels."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken


@runtime_checkable
class NotificationSink(Protocol):
    """Anything tasks can hand an alert to."""

    async def send(self, token: CancellationToken, subject: str, body: str) -> None:
        """Deliver one alert. Raises NotificationError on failure."""
        ...


@runtime_checkable
class NotificationChannel(NotificationSink, Protocol):
    """A named sink that can be registered with the NotificationRouter."""

    @property
    def name(self) -> str:
        """Unique channel identifier (e.g. 'apprise', 'telegram')."""
        ...
