"""Telnyx balance API client."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from watchpost.errors import MalformedResponseError
from watchpost.transport import DEFAULT_RETRY_POLICY, RetryableTransport, RetryPolicy

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken

TELNYX_BALANCE_URL = "https://api.telnyx.com/v2/balance"


class TelnyxClient:
    """Fetches the account balance from the Telnyx v2 API.

    The API reports the balance as a decimal string
    (``{"data": {"balance": "12.34", "currency": "USD"}}``).
    """

    def __init__(
        self,
        transport: RetryableTransport,
        api_key: str,
        *,
        api_url: str = TELNYX_BALANCE_URL,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self._transport = transport
        self._api_key = api_key
        self._api_url = api_url
        self._policy = policy

    async def get_value(self, token: CancellationToken) -> float:
        """Return the current balance in the account currency."""
        request = httpx.Request(
            "GET",
            self._api_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
            },
        )
        payload = await self._transport.fetch_json(request, self._policy, token)

        try:
            raw = payload["data"]["balance"]
        except (KeyError, TypeError) as exc:
            msg = "Telnyx response has no data.balance field"
            raise MalformedResponseError(msg) from exc

        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            msg = f"failed to parse balance string '{raw}'"
            raise MalformedResponseError(msg) from exc
