#!/usr/bin/env python3
"""
NFT Market Monitor - Bot Version
Polls the Reservoir API for floor price, top bid, listing and sale events and
posts deduplicated alerts to Telegram channels.
"""

import asyncio
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

import aiohttp
from aiogram import Bot
from redis.asyncio import Redis

from . import config
from .cursor_store import CursorStore
from .notifier import TelegramNotifier
from .reservoir import ReservoirClient
from .scheduler import PollScheduler
from .streams import build_streams

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Rotating UTF-8 log file plus console output."""
    fmt = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    file_handler = RotatingFileHandler(
        config.LOG_FILE,
        maxBytes=config.LOG_MAX_SIZE_MB * 1024 * 1024,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(fmt)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Quiet noisy libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiogram").setLevel(logging.WARNING)


class NFTMarketMonitor:
    def __init__(self):
        # Process-wide clients, held for the whole run
        self.bot = Bot(token=config.BOT_TOKEN)
        self.redis = Redis.from_url(config.REDIS_URL)
        self.session: Optional[aiohttp.ClientSession] = None
        self.scheduler: Optional[PollScheduler] = None

    def _signal_handler(self) -> None:
        logger.info("Received shutdown signal, stopping after the current cycle...")
        if self.scheduler is not None:
            self.scheduler.stop()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._signal_handler)
            except NotImplementedError:
                # Windows event loops have no signal support
                pass

    async def cleanup(self) -> None:
        """Clean up resources"""
        logger.info("🧹 Cleaning up resources...")
        try:
            await self.bot.session.close()
            logger.info("📱 Telegram bot session closed")
        except Exception as e:
            logger.warning(f"⚠️ Error closing bot session: {e}")
        if self.session is not None:
            await self.session.close()
        try:
            await self.redis.aclose()
        except Exception as e:
            logger.warning(f"⚠️ Error closing Redis connection: {e}")
        logger.info("✅ Cleanup completed")

    async def run(self) -> None:
        """Main entry point for the bot"""
        logger.info("🎯 Starting NFT Market Monitor - Bot Version")
        logger.info(f"📡 Reservoir: {config.RESERVOIR_BASE_URL} (chain {config.CHAIN})")
        logger.info(f"📢 Channels: main={config.MAIN_CHANNEL} listings={config.LISTINGS_CHANNEL} sales={config.SALES_CHANNEL}")
        logger.info(f"⏱️ Poll Interval: {config.POLL_SECONDS} seconds")
        logger.info(
            f"🛡️ Cooldown: {config.ALERT_COOL_DOWN_SECONDS}s, override at {config.PRICE_CHANGE_OVERRIDE:.0%} price change"
        )

        try:
            await self.redis.ping()
            logger.info(f"✅ Connected to Redis at {config.REDIS_URL}")

            self.session = aiohttp.ClientSession()
            client = ReservoirClient(
                self.session,
                base_url=config.RESERVOIR_BASE_URL,
                api_key=config.RESERVOIR_API_KEY,
                timeout_seconds=config.REQUEST_TIMEOUT,
                retry_attempts=config.RETRY_ATTEMPTS,
            )
            notifier = TelegramNotifier(self.bot, message_delay=config.MESSAGE_DELAY)
            streams = build_streams(client, CursorStore(self.redis), notifier)
            if not streams:
                logger.warning("⚠️ No streams enabled, check ALERTS_ENABLED and the tracked contracts")
                return
            logger.info(f"📊 Streams: {', '.join(str(s.key) for s in streams)}")

            self.scheduler = PollScheduler(streams, interval_seconds=config.POLL_SECONDS)
            self._install_signal_handlers()
            await self.scheduler.run_forever()
        finally:
            await self.cleanup()


async def run_monitor() -> None:
    monitor = NFTMarketMonitor()
    await monitor.run()


def main() -> None:
    """Entry point"""
    setup_logging()
    try:
        asyncio.run(run_monitor())
    except KeyboardInterrupt:
        logger.info("👋 Shutting down...")
    except Exception as e:
        logger.error(f"💥 Fatal error in main: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
