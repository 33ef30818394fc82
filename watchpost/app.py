"""Application wiring — builds clients, channels, and tasks from Settings."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

import telegram

from watchpost.api.github import GitHubClient
from watchpost.api.telnyx import TelnyxClient
from watchpost.errors import ConfigError
from watchpost.notifications.router import NotificationRouter
from watchpost.notifications.telegram_channel import TelegramChannel
from watchpost.notifications.webhook_channel import WebhookChannel
from watchpost.scheduler.engine import Scheduler
from watchpost.tasks.balance_check import BalanceCheckTask
from watchpost.tasks.pr_review_check import PRReviewCheckTask
from watchpost.transport import RetryableTransport, build_http_client

if TYPE_CHECKING:
    from watchpost.config import Settings
    from watchpost.notifications.channels import NotificationSink

logger = logging.getLogger(__name__)


def build_router(
    settings: Settings,
    transport: RetryableTransport,
    bot: telegram.Bot | None = None,
) -> NotificationRouter:
    """Register the configured notification channels and pick the default."""
    notifier = settings.notifier
    policy = settings.http.retry_policy()
    router = NotificationRouter()

    if notifier.apprise_enabled:
        router.register_channel(
            WebhookChannel(
                transport,
                notifier.apprise_api_url,
                notifier.get_service_urls(),
                policy=policy,
            )
        )
    if notifier.telegram_enabled and bot is not None:
        router.register_channel(TelegramChannel(bot, notifier.telegram_chat_id))

    channels = router.list_channels()
    if notifier.default_channel:
        router.set_default_channel(notifier.default_channel)
    elif channels:
        router.set_default_channel(channels[0])

    logger.info(
        "Notifications initialized: channels=%s, default=%s",
        channels,
        router.default_channel_name,
    )
    return router


def build_scheduler(
    settings: Settings,
    transport: RetryableTransport,
    sink: NotificationSink,
) -> Scheduler:
    """Create a Scheduler with one task per enabled monitor."""
    scheduler = Scheduler()
    policy = settings.http.retry_policy()
    call_timeout = settings.http.call_timeout
    global_interval = settings.scheduler.interval
    logger.info("Global scheduler interval: %s", global_interval)

    telnyx = settings.tasks.telnyx
    if telnyx.enabled:
        interval = telnyx.get_interval(global_interval)
        logger.info(
            "Telnyx monitoring enabled (api_url=%s, threshold=%.2f, interval=%s)",
            telnyx.api_url,
            telnyx.threshold,
            interval,
        )
        client = TelnyxClient(transport, telnyx.api_key, api_url=telnyx.api_url, policy=policy)
        task = BalanceCheckTask(
            client,
            sink,
            threshold=telnyx.threshold,
            cooldown=telnyx.notification_cooldown,
            call_timeout=call_timeout,
        )
        scheduler.register(task, interval)
    else:
        logger.info("Telnyx monitoring disabled (api_url or api_key not configured)")

    github = settings.tasks.github
    if github.enabled:
        interval = github.get_interval(global_interval)
        logger.info(
            "GitHub monitoring enabled (repositories=%d, stale_after=%s, interval=%s)",
            len(github.repositories),
            github.get_stale_threshold(),
            interval,
        )
        client = GitHubClient(transport, github.token, policy=policy)
        task = PRReviewCheckTask(
            client,
            sink,
            github.repositories,
            stale_after=github.get_stale_threshold(),
            cooldown=github.notification_cooldown,
            call_timeout=call_timeout,
        )
        scheduler.register(task, interval)
    else:
        logger.info("GitHub monitoring disabled (no repositories configured)")

    return scheduler


async def _wait_for_shutdown_signal() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def run(settings: Settings) -> None:
    """Run the configured monitors until SIGINT/SIGTERM."""
    client = build_http_client(
        timeout=settings.http.timeout.total_seconds(),
        connect_timeout=settings.http.connect_timeout.total_seconds(),
    )
    transport = RetryableTransport(client)

    bot: telegram.Bot | None = None
    if settings.notifier.telegram_enabled:
        bot = telegram.Bot(settings.notifier.telegram_bot_token)
        await bot.initialize()

    try:
        router = build_router(settings, transport, bot)
        scheduler = build_scheduler(settings, transport, router)
        if not scheduler.has_tasks():
            msg = (
                "No tasks configured! Configure at least one of: "
                "Telnyx monitoring or GitHub monitoring"
            )
            raise ConfigError(msg)

        logger.info("Starting scheduler...")
        await scheduler.start()
        logger.info("watchpost is running. Press Ctrl+C to stop.")

        await _wait_for_shutdown_signal()

        logger.info("Shutting down gracefully...")
        await scheduler.stop()
        logger.info("Shutdown complete.")
    finally:
        if bot is not None:
            await bot.shutdown()
        await client.aclose()
