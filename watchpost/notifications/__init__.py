"""Notification channel abstraction layer."""

from watchpost.notifications.channels import NotificationChannel, NotificationSink
from watchpost.notifications.router import NotificationRouter
from watchpost.notifications.telegram_channel import TelegramChannel
from watchpost.notifications.webhook_channel import WebhookChannel

__all__ = [
    "NotificationChannel",
    "NotificationRouter",
    "NotificationSink",
    "TelegramChannel",
    "WebhookChannel",
]
