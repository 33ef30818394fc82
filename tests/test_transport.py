"""Tests for RetryableTransport and RetryPolicy."""

import asyncio
import time

import httpx
import pytest

from watchpost.cancellation import CancellationToken
from watchpost.errors import (
    DeadlineExceeded,
    MalformedResponseError,
    NetworkError,
    OperationCancelled,
    StatusError,
)
from watchpost.transport import RetryPolicy, build_http_client

URL = "https://api.example.test/thing"

# -- Helpers -------------------------------------------------------------------


class Recorder:
    """MockTransport handler that replays ``responses`` and counts calls."""

    def __init__(self, *responses) -> None:
        self._responses = list(responses)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        item = self._responses[min(self.calls, len(self._responses)) - 1]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return httpx.Response(item, text="nope")
        return item


def _get() -> httpx.Request:
    return httpx.Request("GET", URL)


# -- RetryPolicy ---------------------------------------------------------------


def test_backoff_grows_and_caps() -> None:
    policy = RetryPolicy(max_retries=6, initial_backoff=0.5, max_backoff=10.0, multiplier=2.0)
    assert [policy.backoff(k) for k in range(6)] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_retries": -1},
        {"initial_backoff": 0},
        {"max_backoff": -1.0},
        {"multiplier": 0.5},
    ],
)
def test_policy_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


# -- Success and status handling -----------------------------------------------


async def test_success_first_try(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.Response(200, json={"ok": True}))
    response = await mock_transport(handler).execute(_get(), fast_policy, token)
    assert response.status_code == 200
    assert handler.calls == 1


async def test_always_500_makes_max_retries_plus_one_attempts(
    mock_transport, fast_policy, token
) -> None:
    handler = Recorder(500)
    with pytest.raises(StatusError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert handler.calls == fast_policy.max_retries + 1
    assert exc_info.value.status_code == 500
    assert exc_info.value.transient is True


async def test_404_is_not_retried(mock_transport, fast_policy, token) -> None:
    handler = Recorder(404)
    with pytest.raises(StatusError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert handler.calls == 1
    assert exc_info.value.status_code == 404
    assert exc_info.value.transient is False
    assert "nope" in str(exc_info.value)


@pytest.mark.parametrize("status", [429, 502, 503, 504])
async def test_transient_status_then_success(mock_transport, fast_policy, token, status) -> None:
    handler = Recorder(status, httpx.Response(200, json={}))
    response = await mock_transport(handler).execute(_get(), fast_policy, token)
    assert response.status_code == 200
    assert handler.calls == 2


async def test_zero_retries_makes_one_attempt(mock_transport, token) -> None:
    handler = Recorder(503)
    policy = RetryPolicy(max_retries=0, initial_backoff=0.001)
    with pytest.raises(StatusError):
        await mock_transport(handler).execute(_get(), policy, token)
    assert handler.calls == 1


# -- Network errors ------------------------------------------------------------


async def test_timeout_is_retried(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.ReadTimeout("slow"), httpx.Response(200, json={}))
    response = await mock_transport(handler).execute(_get(), fast_policy, token)
    assert response.status_code == 200
    assert handler.calls == 2


async def test_persistent_timeout_raises_network_error(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.ConnectTimeout("slow"))
    with pytest.raises(NetworkError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert exc_info.value.transient is True
    assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)
    assert handler.calls == fast_policy.max_retries + 1


async def test_connection_refused_is_permanent(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.ConnectError("refused"))
    with pytest.raises(NetworkError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert exc_info.value.transient is False
    assert handler.calls == 1


# -- Cancellation --------------------------------------------------------------


async def test_cancelled_token_sends_nothing(mock_transport, fast_policy) -> None:
    handler = Recorder(200)
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert handler.calls == 0


async def test_cancel_during_backoff_returns_promptly(mock_transport) -> None:
    handler = Recorder(500)
    policy = RetryPolicy(max_retries=5, initial_backoff=30.0, max_backoff=30.0)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel)

    start = time.monotonic()
    with pytest.raises(OperationCancelled):
        await mock_transport(handler).execute(_get(), policy, token)
    assert time.monotonic() - start < 1.0
    assert handler.calls == 1


async def test_deadline_during_backoff(mock_transport) -> None:
    handler = Recorder(503)
    policy = RetryPolicy(max_retries=5, initial_backoff=30.0, max_backoff=30.0)
    token = CancellationToken().with_timeout(0.05)
    with pytest.raises(DeadlineExceeded):
        await mock_transport(handler).execute(_get(), policy, token)
    assert handler.calls == 1


async def test_cancel_abandons_in_flight_request(mock_transport, fast_policy) -> None:
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(30)
        return httpx.Response(200)

    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel)
    start = time.monotonic()
    with pytest.raises(OperationCancelled):
        await mock_transport(hang).execute(_get(), fast_policy, token)
    assert time.monotonic() - start < 1.0


# -- Methods and decoding ------------------------------------------------------


async def test_post_requires_opt_in(mock_transport, fast_policy, token) -> None:
    handler = Recorder(200)
    transport = mock_transport(handler)
    request = httpx.Request("POST", URL, json={"a": 1})
    with pytest.raises(ValueError, match="non-idempotent"):
        await transport.execute(request, fast_policy, token)
    assert handler.calls == 0

    response = await transport.execute(request, fast_policy, token, allow_non_idempotent=True)
    assert response.status_code == 200


async def test_fetch_json_decodes_body(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.Response(200, json={"data": [1, 2]}))
    assert await mock_transport(handler).fetch_json(_get(), fast_policy, token) == {"data": [1, 2]}


async def test_fetch_json_malformed_is_not_retried(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(MalformedResponseError):
        await mock_transport(handler).fetch_json(_get(), fast_policy, token)
    assert handler.calls == 1


async def test_build_http_client_settings() -> None:
    client = build_http_client(timeout=12.0, connect_timeout=3.0)
    try:
        assert client.timeout.read == 12.0
        assert client.timeout.connect == 3.0
        assert client.follow_redirects is True
    finally:
        await client.aclose()


async def test_corrupt_compressed_body_is_malformed(mock_transport, fast_policy, token) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    with pytest.raises(MalformedResponseError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert isinstance(exc_info.value.__cause__, httpx.DecodingError)
    assert len(calls) == 1


async def test_redirect_loop_is_permanent_network_error(mock_transport, fast_policy, token) -> None:
    handler = Recorder(httpx.TooManyRedirects("Exceeded maximum allowed redirects."))
    with pytest.raises(NetworkError) as exc_info:
        await mock_transport(handler).execute(_get(), fast_policy, token)
    assert exc_info.value.transient is False
    assert "TooManyRedirects" in str(exc_info.value)
    assert handler.calls == 1
