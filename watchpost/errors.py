"""Exception hierarchy shared by the transport, tasks, and notification channels."""

from __future__ import annotations


class WatchpostError(Exception):
    """Base class for all watchpost errors."""


# -- External calls ------------------------------------------------------------


class TransportError(WatchpostError):
    """An external call failed. ``transient`` failures are worth retrying."""

    transient: bool = False


class NetworkError(TransportError):
    """The request never produced an HTTP response (timeout, refused, reset)."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class StatusError(TransportError):
    """The server answered with a non-2xx status code."""

    def __init__(self, status_code: int, body: str = "", *, transient: bool = False) -> None:
        snippet = body[:200]
        super().__init__(f"request failed with status {status_code}: {snippet}")
        self.status_code = status_code
        self.body = snippet
        self.transient = transient


class MalformedResponseError(TransportError):
    """The response body could not be decoded into the expected shape."""


# -- Cancellation --------------------------------------------------------------


class OperationCancelled(WatchpostError):
    """The caller's cancellation token fired. Never retried."""


class DeadlineExceeded(OperationCancelled):
    """The caller's deadline passed before the operation completed."""


# -- Everything else -----------------------------------------------------------


class NotificationError(WatchpostError):
    """A notification channel failed to deliver a message."""


class ConfigError(WatchpostError):
    """The configuration is missing, unreadable, or invalid."""
