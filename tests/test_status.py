"""Tests for src.core.status — display status classification."""

from datetime import date, datetime, timedelta

import pytest

from src.core.status import classify_status, days_until_due
from src.data.models import DisplayStatus


class TestClassifyStatus:
    @pytest.mark.parametrize("offset", [-30, -1, 0, 1, 30])
    def test_paid_wins_regardless_of_due_date(self, make_bill, now, offset):
        bill = make_bill(paid=True, due_date=now.date() + timedelta(days=offset))
        assert classify_status(bill, now) == DisplayStatus.PAID

    def test_unpaid_past_due_is_overdue(self, make_bill, now):
        bill = make_bill(due_date=now.date() - timedelta(days=1))
        assert classify_status(bill, now) == DisplayStatus.OVERDUE

    def test_due_today_is_pending(self, make_bill, now):
        """Late in the day, a bill due today is still not overdue."""
        bill = make_bill(due_date=now.date())
        late = datetime(now.year, now.month, now.day, 23, 59)
        assert classify_status(bill, late) == DisplayStatus.PENDING

    def test_future_is_pending(self, make_bill, now):
        bill = make_bill(due_date=now.date() + timedelta(days=10))
        assert classify_status(bill, now) == DisplayStatus.PENDING

    def test_accepts_plain_date(self, make_bill):
        bill = make_bill(due_date=date(2026, 1, 1))
        assert classify_status(bill, date(2026, 1, 2)) == DisplayStatus.OVERDUE

    def test_does_not_mutate_bill(self, make_bill, now):
        bill = make_bill(due_date=now.date() - timedelta(days=5))
        classify_status(bill, now)
        assert bill.paid is False


class TestDaysUntilDue:
    def test_ignores_time_of_day(self, make_bill):
        bill = make_bill(due_date=date(2026, 10, 20))
        assert days_until_due(bill, datetime(2026, 10, 19, 0, 1)) == 1
        assert days_until_due(bill, datetime(2026, 10, 19, 23, 59)) == 1

    def test_negative_when_past(self, make_bill):
        bill = make_bill(due_date=date(2026, 10, 17))
        assert days_until_due(bill, datetime(2026, 10, 19, 9, 0)) == -2
