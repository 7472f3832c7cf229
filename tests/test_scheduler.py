"""Tests for src.core.scheduler — daily reminder digest."""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from src.core.notifications import generate_notifications
from src.core.scheduler import (
    build_user_notifications,
    format_digest,
    format_notification,
    send_daily_reminders,
)

NOW = datetime(2026, 10, 19, 9, 0)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    def test_single_line(self, make_bill):
        [n] = generate_notifications([make_bill(title="Water", amount=40, due_date=date(2026, 10, 17))], NOW)
        line = format_notification(n, currency="€")
        assert "Water was due 2 days ago" in line
        assert "€40.00" in line
        assert "2026-10-17" in line
        assert line.startswith("🔴")

    def test_digest_sections_in_order(self, make_bill):
        bills = [
            make_bill(title="Later", due_date=date(2026, 10, 24)),
            make_bill(title="Late", due_date=date(2026, 10, 10)),
            make_bill(title="Soon", due_date=date(2026, 10, 21)),
        ]
        text = format_digest(generate_notifications(bills, NOW))
        assert text.index("Overdue") < text.index("Due soon") < text.index("Coming up")

    def test_digest_skips_empty_sections(self, make_bill):
        text = format_digest(generate_notifications([make_bill(due_date=date(2026, 10, 19))], NOW))
        assert "Due soon" in text
        assert "Overdue" not in text

    def test_empty_digest(self):
        assert "No bills" in format_digest([])

    def test_title_is_markdown_escaped(self, make_bill):
        [n] = generate_notifications([make_bill(title="city_water", amount=10, due_date=date(2026, 10, 20))], NOW)
        text = format_digest([n])
        assert "city\\_water is due in 1 day" in text
        assert "*Due soon:*" in text


# ---------------------------------------------------------------------------
# build_user_notifications
# ---------------------------------------------------------------------------


class TestBuildUserNotifications:
    def test_scoped_and_overlaid(self, bill_db, state_db):
        water = bill_db.add_bill("Water", "water", 40, date(2026, 10, 18), user_id=1)
        gas = bill_db.add_bill("Gas", "gas", 30, date(2026, 10, 20), user_id=1)
        bill_db.add_bill("Someone else", "gas", 30, date(2026, 10, 20), user_id=2)
        state_db.dismiss(1, f"overdue-{water.id}")

        result = build_user_notifications(1, bill_db, state_db, now=NOW)
        assert [n.bill_id for n in result] == [gas.id]

    def test_without_state_db(self, bill_db):
        bill_db.add_bill("Water", "water", 40, date(2026, 10, 18), user_id=1)
        assert len(build_user_notifications(1, bill_db, now=NOW)) == 1

    def test_timezone_aware_now_uses_local_date(self, bill_db):
        # 22:30 UTC on the 19th is 01:30 on the 20th in Jerusalem
        utc_now = datetime(2026, 10, 19, 22, 30, tzinfo=ZoneInfo("UTC"))
        bill_db.add_bill("Water", "water", 40, date(2026, 10, 20), user_id=1)
        bill_db.add_bill("Gas", "gas", 30, date(2026, 10, 19), user_id=1)

        local = build_user_notifications(1, bill_db, now=utc_now.astimezone(ZoneInfo("Asia/Jerusalem")))

        assert [n.message for n in local] == ["Gas was due 1 day ago", "Water is due today"]

    def test_default_now_is_configured_clock(self, bill_db, monkeypatch):
        local = datetime(2026, 10, 20, 1, 30, tzinfo=ZoneInfo("Asia/Jerusalem"))
        monkeypatch.setattr("src.core.scheduler.local_now", lambda: local)
        bill_db.add_bill("Water", "water", 40, date(2026, 10, 20), user_id=1)

        [n] = build_user_notifications(1, bill_db)
        assert n.message == "Water is due today"


# ---------------------------------------------------------------------------
# send_daily_reminders
# ---------------------------------------------------------------------------


class TestSendDailyReminders:
    @pytest.mark.asyncio
    async def test_sends_digest_per_user(self, bill_db, state_db):
        bill_db.add_bill("Water", "water", 40, date(2026, 10, 19), user_id=1)
        bill_db.add_bill("Gas", "gas", 30, date(2026, 10, 22), user_id=2)
        notifier = AsyncMock()

        sent = await send_daily_reminders(notifier, bill_db, state_db, user_ids=[1, 2], now=NOW)

        assert sent == 2
        assert notifier.send_message.await_count == 2
        first_user, first_text = notifier.send_message.await_args_list[0].args
        assert first_user == 1
        assert "Water is due today" in first_text

    @pytest.mark.asyncio
    async def test_skips_users_with_nothing_due(self, bill_db):
        bill_db.add_bill("Far away", "water", 40, date(2026, 12, 1), user_id=1)
        notifier = AsyncMock()
        sent = await send_daily_reminders(notifier, bill_db, user_ids=[1], now=NOW)
        assert sent == 0
        notifier.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_for_one_user_does_not_stop_others(self, bill_db):
        bill_db.add_bill("Water", "water", 40, date(2026, 10, 19), user_id=1)
        bill_db.add_bill("Gas", "gas", 30, date(2026, 10, 19), user_id=2)
        notifier = AsyncMock()
        notifier.send_message.side_effect = [Exception("blocked"), None]

        sent = await send_daily_reminders(notifier, bill_db, user_ids=[1, 2], now=NOW)

        assert sent == 1
        assert notifier.send_message.await_count == 2

    @pytest.mark.asyncio
    async def test_defaults_to_allowed_users(self, monkeypatch):
        from src.config import settings

        monkeypatch.setattr(settings, "ALLOWED_USER_IDS", [777])
        bill_db = MagicMock()
        bill_db.list_bills.return_value = []
        notifier = AsyncMock()

        await send_daily_reminders(notifier, bill_db, now=NOW)

        bill_db.list_bills.assert_called_once_with(user_id=777)
