"""Tests for NotificationRouter."""

import pytest

from watchpost.errors import NotificationError
from watchpost.notifications.router import NotificationRouter

# -- Helpers -----------------------------------------------------------------


class FakeChannel:
    """Minimal channel implementation for testing."""

    def __init__(self, channel_name: str = "fake") -> None:
        self._name = channel_name
        self.sent: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    async def send(self, token, subject: str, body: str) -> None:
        self.sent.append((subject, body))


class FailChannel(FakeChannel):
    """Channel that always fails to send."""

    async def send(self, token, subject: str, body: str) -> None:
        raise NotificationError("delivery failed")


# -- Registration ------------------------------------------------------------


def test_register_and_list() -> None:
    router = NotificationRouter()
    router.register_channel(FakeChannel("apprise"))
    router.register_channel(FakeChannel("telegram"))
    assert router.list_channels() == ["apprise", "telegram"]


def test_register_duplicate_raises() -> None:
    router = NotificationRouter()
    router.register_channel(FakeChannel("telegram"))
    with pytest.raises(ValueError, match="already registered"):
        router.register_channel(FakeChannel("telegram"))


# -- Default channel ---------------------------------------------------------


def test_set_default_channel() -> None:
    router = NotificationRouter()
    router.register_channel(FakeChannel("telegram"))
    router.set_default_channel("telegram")
    assert router.default_channel_name == "telegram"


def test_set_default_unregistered_raises() -> None:
    router = NotificationRouter()
    with pytest.raises(KeyError, match="not registered"):
        router.set_default_channel("missing")


def test_routers_are_independent() -> None:
    a = NotificationRouter()
    b = NotificationRouter()
    a.register_channel(FakeChannel("telegram"))
    assert b.list_channels() == []


# -- Sending -----------------------------------------------------------------


async def test_send_uses_default(token) -> None:
    router = NotificationRouter()
    apprise = FakeChannel("apprise")
    telegram = FakeChannel("telegram")
    router.register_channel(apprise)
    router.register_channel(telegram)
    router.set_default_channel("telegram")

    await router.send(token, "Subject", "Body")

    assert telegram.sent == [("Subject", "Body")]
    assert apprise.sent == []


async def test_send_single_channel_without_default(token) -> None:
    router = NotificationRouter()
    ch = FakeChannel("apprise")
    router.register_channel(ch)
    await router.send(token, "S", "B")
    assert ch.sent == [("S", "B")]


async def test_send_ambiguous_without_default_raises(token) -> None:
    router = NotificationRouter()
    router.register_channel(FakeChannel("a"))
    router.register_channel(FakeChannel("b"))
    with pytest.raises(NotificationError, match="no notification channel"):
        await router.send(token, "S", "B")


async def test_send_no_channels_raises(token) -> None:
    with pytest.raises(NotificationError):
        await NotificationRouter().send(token, "S", "B")


async def test_send_failure_propagates(token) -> None:
    router = NotificationRouter()
    router.register_channel(FailChannel("apprise"))
    with pytest.raises(NotificationError, match="delivery failed"):
        await router.send(token, "S", "B")
