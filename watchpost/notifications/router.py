"""NotificationRouter — dispatches alerts to one of the registered channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from watchpost.errors import NotificationError

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken
    from watchpost.notifications.channels import NotificationChannel

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Routes outbound alerts to the appropriate channel.

    The router is itself a NotificationSink, so tasks never need to know how
    many channels are configured.
    """

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._default: str = ""

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def set_default_channel(self, name: str) -> None:
        """Set the default channel by name. Raises KeyError if not registered."""
        if name not in self._channels:
            msg = f"Channel '{name}' is not registered"
            raise KeyError(msg)
        self._default = name

    def list_channels(self) -> list[str]:
        return list(self._channels.keys())

    @property
    def default_channel_name(self) -> str:
        return self._default

    def _resolve_channel(self) -> NotificationChannel | None:
        """Resolve a channel: default → only registered channel."""
        if self._default:
            return self._channels.get(self._default)
        if len(self._channels) == 1:
            return next(iter(self._channels.values()))
        return None

    async def send(self, token: CancellationToken, subject: str, body: str) -> None:
        """Send an alert via the resolved channel. Raises NotificationError."""
        ch = self._resolve_channel()
        if ch is None:
            logger.warning("No channel resolved for send (registered=%s)", self.list_channels())
            msg = "no notification channel resolved"
            raise NotificationError(msg)
        logger.debug("Routing alert '%s' to channel %s", subject, ch.name)
        await ch.send(token, subject, body)
