"""watchpost entry point."""

import argparse
import asyncio
import logging
import sys

from watchpost.app import run
from watchpost.config import DEFAULT_CONFIG_FILE, load_settings
from watchpost.errors import ConfigError

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="watchpost",
        description=(
            "Monitor a Telnyx balance and stale GitHub pull requests, "
            "and send deduplicated alerts via Apprise or Telegram."
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"config file (default is ./{DEFAULT_CONFIG_FILE})",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Load configuration and run until interrupted. Returns the exit code."""
    args = _parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    logger.info("Configuration loaded from %s", args.config or DEFAULT_CONFIG_FILE)

    try:
        asyncio.run(run(settings))
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
