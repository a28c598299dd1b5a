"""Sends rendered alerts to Telegram channels."""

import asyncio
import logging
import time
from typing import Protocol, Union

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError, TelegramRetryAfter
from aiogram.types import LinkPreviewOptions

from .errors import NotificationError

logger = logging.getLogger(__name__)

ChatId = Union[int, str]


class Notifier(Protocol):
    async def send(self, channel: ChatId, message: str) -> None: ...


class TelegramNotifier:
    """
    Serialises every send through one lock and keeps at least ``message_delay``
    seconds between two messages, so concurrent streams cannot flood the Bot
    API. A ``TelegramRetryAfter`` is honoured once before giving up.
    """

    def __init__(self, bot: Bot, message_delay: float = 1.0):
        self.bot = bot
        self.message_delay = message_delay
        self._lock = asyncio.Lock()
        self._last_sent_at = 0.0

    async def send(self, channel: ChatId, message: str) -> None:
        if not channel:
            raise NotificationError("no channel configured")

        async with self._lock:
            wait = self.message_delay - (time.monotonic() - self._last_sent_at)
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                await self._send(channel, message)
            finally:
                self._last_sent_at = time.monotonic()

    async def _send(self, channel: ChatId, message: str) -> None:
        try:
            await self._send_once(channel, message)
        except TelegramRetryAfter as e:
            logger.warning(f"⏰ Rate limit exceeded, waiting {e.retry_after} seconds...")
            await asyncio.sleep(e.retry_after)
            try:
                await self._send_once(channel, message)
            except TelegramAPIError as retry_error:
                raise NotificationError(f"Telegram API error after retry: {retry_error}") from retry_error
        except TelegramAPIError as e:
            raise NotificationError(f"Telegram API error: {e}") from e
        logger.info(f"📢 Message sent successfully to {channel}")

    async def _send_once(self, channel: ChatId, message: str) -> None:
        await self.bot.send_message(
            chat_id=channel,
            text=message,
            parse_mode=ParseMode.HTML,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
