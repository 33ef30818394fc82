"""RetryableTransport — bounded, backed-off retries for idempotent HTTP calls."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from watchpost.errors import MalformedResponseError, NetworkError, StatusError, TransportError

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying).
        initial_backoff: Seconds to wait after the first failed attempt.
        max_backoff: Upper bound in seconds for any single wait.
        multiplier: Growth factor applied per attempt.
    """

    max_retries: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 10.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)
        if self.initial_backoff <= 0 or self.max_backoff <= 0:
            msg = "initial_backoff and max_backoff must be positive"
            raise ValueError(msg)
        if self.multiplier < 1:
            msg = f"multiplier must be >= 1, got {self.multiplier}"
            raise ValueError(msg)

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-indexed)."""
        return min(self.max_backoff, self.initial_backoff * self.multiplier**attempt)


DEFAULT_RETRY_POLICY = RetryPolicy()


def build_http_client(timeout: float = 30.0, connect_timeout: float = 10.0) -> httpx.AsyncClient:
    """Create the pooled client shared by every task for the process lifetime."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=10,
            keepalive_expiry=90.0,
        ),
        follow_redirects=True,
    )


def _classify_request_error(exc: httpx.RequestError) -> TransportError:
    if isinstance(exc, httpx.DecodingError):
        return MalformedResponseError(f"undecodable response body: {exc}")
    transient = isinstance(exc, httpx.TimeoutException)
    return NetworkError(f"{type(exc).__name__}: {exc}", transient=transient)


class RetryableTransport:
    """Executes re-issuable requests over a shared ``httpx.AsyncClient``.

    The transport holds no per-request state: the same instance is shared by
    every task, and the retry policy is supplied on each call.

    Args:
        client: Pooled HTTP client (see :func:`build_http_client`).
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def execute(
        self,
        request: httpx.Request,
        policy: RetryPolicy,
        token: CancellationToken,
        *,
        allow_non_idempotent: bool = False,
    ) -> httpx.Response:
        """Send ``request`` until it succeeds, fails permanently, or retries run out.

        Returns the 2xx response. Raises ``StatusError``, ``NetworkError`` or
        ``MalformedResponseError`` for failures and ``OperationCancelled``
        when ``token`` fires, including during a backoff wait.
        """
        if request.method not in IDEMPOTENT_METHODS and not allow_non_idempotent:
            msg = f"refusing to retry non-idempotent {request.method} request"
            raise ValueError(msg)

        for attempt in range(policy.max_retries + 1):
            token.raise_if_cancelled()
            cause: Exception | None = None
            try:
                # send() without streaming reads the body and releases the
                # connection before returning, including for retried statuses.
                response = await token.guard(self._client.send(request))
            except httpx.RequestError as exc:
                cause = exc
                error: TransportError = _classify_request_error(exc)
            else:
                if response.is_success:
                    return response
                error = StatusError(
                    response.status_code,
                    response.text,
                    transient=response.status_code in RETRYABLE_STATUS_CODES,
                )

            if not error.transient or attempt >= policy.max_retries:
                raise error from cause

            backoff = policy.backoff(attempt)
            logger.warning(
                "%s %s failed (%s), retrying: attempt=%d max_retries=%d backoff=%.2fs",
                request.method,
                request.url,
                error,
                attempt + 1,
                policy.max_retries,
                backoff,
            )
            await token.sleep(backoff)

        msg = "unreachable: retry loop exited without a result"
        raise AssertionError(msg)

    async def fetch_json(
        self,
        request: httpx.Request,
        policy: RetryPolicy,
        token: CancellationToken,
    ) -> Any:
        """Execute ``request`` and decode the JSON body. Bad JSON is not retried."""
        response = await self.execute(request, policy, token)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"malformed JSON from {request.url}: {exc}"
            raise MalformedResponseError(msg) from exc
