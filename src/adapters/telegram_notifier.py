"""Telegram notification adapter — implements NotificationPort.

Pushes Markdown-formatted reminder digests through a telegram.Bot.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from src.ports.notification_port import NotificationError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, parse_mode: str | None = ParseMode.MARKDOWN) -> None:
        self._bot = bot
        self._parse_mode = parse_mode

    async def send_message(self, user_id: int, text: str) -> None:
        try:
            await self._bot.send_message(
                chat_id=user_id, text=text, parse_mode=self._parse_mode,
            )
        except TelegramError as exc:
            logger.error("Telegram delivery to %d failed: %s", user_id, exc)
            raise NotificationError(f"Could not deliver to {user_id}: {exc}") from exc
