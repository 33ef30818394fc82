"""Telegram implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import telegram
from telegram.error import TelegramError

from watchpost.errors import NotificationError

if TYPE_CHECKING:
    from watchpost.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class TelegramChannel:
    """Sends alerts to a single chat via the Telegram Bot API."""

    def __init__(self, bot: telegram.Bot, chat_id: str) -> None:
        self._bot = bot
        self._chat_id = chat_id

    @property
    def name(self) -> str:
        return "telegram"

    async def send(self, token: CancellationToken, subject: str, body: str) -> None:
        """Send ``subject`` and ``body`` as one plain-text message."""
        text = f"{subject}\n\n{body}" if subject else body
        try:
            await token.guard(self._bot.send_message(chat_id=self._chat_id, text=text))
        except TelegramError as exc:
            logger.warning("TelegramChannel.send failed for chat_id=%s: %s", self._chat_id, exc)
            msg = f"telegram send failed: {exc}"
            raise NotificationError(msg) from exc
