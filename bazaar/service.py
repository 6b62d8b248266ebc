# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Marketplace bot service.

Wires the Slack app, listing store, lifecycle engine, interaction router
and background sweep together, and provides the command-line entry
point.
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler
from slack_sdk import WebClient

from bazaar.audit import AuditSink, NullAuditSink
from bazaar.config import BotConfig, ConfigError
from bazaar.engine import EngineContext, LifecycleEngine
from bazaar.logging import configure_logging
from bazaar.slack.audit import SlackAuditSink
from bazaar.slack.router import InteractionRouter
from bazaar.slack.staff import StaffResolver
from bazaar.slack.threads import SlackThreadService
from bazaar.store import JsonListingStore
from bazaar.sweeper import SweepScheduler


logger = logging.getLogger(__name__)


class MarketplaceService:
    """The running marketplace bot.

    Args:
        config: Bot configuration.
        app: Optional pre-built Bolt ``App`` (for testing).
        handler: Optional pre-built ``SocketModeHandler`` (for testing).
        client: Optional pre-built ``WebClient`` (for testing).
    """

    def __init__(
        self,
        config: BotConfig,
        app: App | None = None,
        handler: SocketModeHandler | None = None,
        client: WebClient | None = None,
    ) -> None:
        self.config = config
        self._client = client or WebClient(token=config.slack.bot_token)
        self._app = app or App(client=self._client)
        self._handler = handler or SocketModeHandler(
            self._app, config.slack.app_token
        )

        audit: AuditSink
        if config.audit_channel_id:
            audit = SlackAuditSink(self._client, config.audit_channel_id)
        else:
            audit = NullAuditSink()

        self.store = JsonListingStore(config.state_dir)
        self.engine = LifecycleEngine(
            EngineContext(
                threads=SlackThreadService(self._client),
                store=self.store,
                lifecycle=config.lifecycle,
                parent_id=config.listings_channel_id,
                audit=audit,
            )
        )
        self.router = InteractionRouter(
            engine=self.engine,
            client=self._client,
            staff=StaffResolver(self._client, config.slack.staff),
            create_channel_id=config.create_channel_id,
        )
        self.scheduler = SweepScheduler(
            self.engine, config.lifecycle.sweep_interval_seconds
        )

        self._shutdown_event = threading.Event()
        self._started = False
        self._stopped = False

    def start(self) -> None:
        """Connect to Slack and block until ``stop()`` is called."""
        logger.info("Starting marketplace service...")
        self.router.register(self._app)
        self.router.ensure_create_prompt()
        self._handler.connect()
        self._started = True
        logger.info("Slack connected (Socket Mode)")
        self.scheduler.start()

        self._shutdown_event.wait()

    def stop(self) -> None:
        """Stop the service gracefully.  Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True

        logger.info("Stopping marketplace service...")
        self._shutdown_event.set()
        self.scheduler.stop()
        if self._started:
            self._handler.close()
        logger.info("Service stopped")


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0=success, 1=config error, 2=startup, 3=runtime error).
    """
    parser = argparse.ArgumentParser(
        description="Bazaar Marketplace Bot",
        epilog="Manages marketplace listing threads in Slack.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to bazaar.yaml config file"
            " (default: ~/.config/bazaar/bazaar.yaml)"
        ),
    )
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    logger.info("Bazaar marketplace bot starting...")

    try:
        config = BotConfig.from_yaml(config_path=args.config)
    except (ConfigError, OSError) as e:
        logger.critical("Configuration error: %s", e)
        return 1

    try:
        service = MarketplaceService(config)
    except Exception as e:
        logger.exception("Failed to initialize service: %s", e)
        return 2

    def shutdown_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals."""
        logger.info("Received signal %d, initiating shutdown...", signum)
        service.stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        service.start()
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal runtime error: %s", e)
        return 3
    finally:
        service.stop()
