"""Shared test fixtures."""

from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from watchpost.cancellation import CancellationToken
from watchpost.transport import RetryableTransport, RetryPolicy


@pytest.fixture
def token() -> CancellationToken:
    """A fresh, never-cancelled token without a deadline."""
    return CancellationToken()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three retries with millisecond backoffs, so retry tests stay fast."""
    return RetryPolicy(max_retries=3, initial_backoff=0.001, max_backoff=0.005, multiplier=2.0)


@pytest.fixture
async def mock_transport() -> AsyncIterator[Callable[..., RetryableTransport]]:
    """Factory for a RetryableTransport whose requests are answered by ``handler``."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler) -> RetryableTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return RetryableTransport(client)

    yield _make

    for client in clients:
        await client.aclose()
