"""Tests for src.data.models — Bill and Payment dataclasses."""

from dataclasses import asdict
from datetime import date, datetime

import pytest

from src.data.models import (
    Bill,
    Notification,
    NotificationType,
    Payment,
    PaymentMethod,
    Priority,
    RecurringPeriod,
    UtilityType,
)


def test_bill_creation_with_defaults():
    bill = Bill(
        id=1,
        title="City Water",
        utility_type=UtilityType.WATER,
        amount=40.0,
        due_date=date(2026, 11, 1),
    )
    assert bill.paid is False
    assert bill.is_recurring is False
    assert bill.recurring_period is None
    assert bill.notes == ""


def test_bill_coerces_string_enums():
    bill = Bill(
        id=1, title="Gas", utility_type="gas", amount=10.0, due_date=date(2026, 11, 1),
        is_recurring=True, recurring_period="quarterly",
    )
    assert bill.utility_type is UtilityType.GAS
    assert bill.recurring_period is RecurringPeriod.QUARTERLY


@pytest.mark.parametrize("amount", [0, -1, -0.01])
def test_bill_rejects_non_positive_amount(amount):
    with pytest.raises(ValueError):
        Bill(id=1, title="X", utility_type="water", amount=amount, due_date=date(2026, 11, 1))


def test_bill_recurring_requires_period():
    with pytest.raises(ValueError):
        Bill(id=1, title="X", utility_type="water", amount=5, due_date=date(2026, 11, 1),
             is_recurring=True)


def test_bill_period_requires_recurring():
    with pytest.raises(ValueError):
        Bill(id=1, title="X", utility_type="water", amount=5, due_date=date(2026, 11, 1),
             recurring_period=RecurringPeriod.MONTHLY)


def test_bill_rejects_unknown_utility():
    with pytest.raises(ValueError):
        Bill(id=1, title="X", utility_type="sewage", amount=5, due_date=date(2026, 11, 1))


def test_payment_default_method():
    p = Payment(id=1, bill_id=2, amount=9.5, payment_date=datetime(2026, 10, 1, 9, 0))
    assert p.payment_method is PaymentMethod.CARD


def test_payment_coerces_method():
    p = Payment(id=1, bill_id=2, amount=9.5, payment_date=datetime(2026, 10, 1, 9, 0),
                payment_method="online")
    assert p.payment_method is PaymentMethod.ONLINE


def test_bill_accepts_iso_due_date():
    b = Bill(id=1, title="Water", utility_type="water", amount=10, due_date="2026-11-01")
    assert b.due_date == date(2026, 11, 1)
    assert type(b.due_date) is date


def test_bill_truncates_datetime_due_date():
    b = Bill(id=1, title="Water", utility_type="water", amount=10,
             due_date=datetime(2026, 11, 1, 18, 45))
    assert b.due_date == date(2026, 11, 1)
    assert type(b.due_date) is date


@pytest.mark.parametrize("due", ["01/11/2026", "soon", 20261101])
def test_bill_rejects_bad_due_date(due):
    with pytest.raises(ValueError):
        Bill(id=1, title="Water", utility_type="water", amount=10, due_date=due)


def test_payment_accepts_iso_payment_date():
    p = Payment(id=1, bill_id=2, amount=9.5, payment_date="2026-10-01T09:00:00")
    assert p.payment_date == datetime(2026, 10, 1, 9, 0)


def test_notification_serializable():
    n = Notification(
        id="overdue-1", type=NotificationType.OVERDUE, priority=Priority.HIGH,
        title="Bill Overdue", message="Water was due 1 day ago", bill_id=1,
        bill_title="Water", amount=40.0, due_date=date(2026, 10, 18),
    )
    d = asdict(n)
    assert d["type"] == "overdue"
    assert d["read"] is False
