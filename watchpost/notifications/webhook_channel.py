"""Apprise API webhook implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from watchpost.errors import NotificationError, TransportError
from watchpost.transport import DEFAULT_RETRY_POLICY, RetryableTransport, RetryPolicy

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class WebhookChannel:
    """Posts alerts to an Apprise API server, which fans them out to the
    configured service URLs (``tgram://``, ``discord://``, ``mailto://``, ...).
    """

    def __init__(
        self,
        transport: RetryableTransport,
        webhook_url: str,
        target_urls: list[str],
        *,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> None:
        self._transport = transport
        self._webhook_url = webhook_url
        self._target_urls = list(target_urls)
        self._policy = policy

    @property
    def name(self) -> str:
        return "apprise"

    def build_payload(self, subject: str, body: str) -> dict:
        return {
            "urls": self._target_urls,
            "title": subject,
            "body": body,
            "type": "info",
            "format": "text",
        }

    async def send(self, token: CancellationToken, subject: str, body: str) -> None:
        """POST the alert to the Apprise endpoint. Raises NotificationError."""
        request = httpx.Request(
            "POST",
            self._webhook_url,
            json=self.build_payload(subject, body),
        )
        try:
            # A retried POST delivers twice if the first attempt reached Apprise.
            await self._transport.execute(
                request, self._policy, token, allow_non_idempotent=True
            )
        except TransportError as exc:
            msg = f"webhook request failed: {exc}"
            raise NotificationError(msg) from exc
        logger.info("Webhook notification sent (%d target(s))", len(self._target_urls))
