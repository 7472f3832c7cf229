"""Tests for src.adapters.telegram_notifier — TelegramNotifier."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import TelegramError

from src.adapters.telegram_notifier import TelegramNotifier
from src.ports.notification_port import NotificationError


@pytest.mark.asyncio
async def test_send_message_uses_markdown():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    await TelegramNotifier(bot).send_message(12345, "*hi*")
    bot.send_message.assert_awaited_once_with(chat_id=12345, text="*hi*", parse_mode="Markdown")


@pytest.mark.asyncio
async def test_send_message_plain_text():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    await TelegramNotifier(bot, parse_mode=None).send_message(1, "hi")
    bot.send_message.assert_awaited_once_with(chat_id=1, text="hi", parse_mode=None)


@pytest.mark.asyncio
async def test_telegram_error_wrapped():
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=TelegramError("Forbidden: bot was blocked"))
    with pytest.raises(NotificationError):
        await TelegramNotifier(bot).send_message(1, "hi")
