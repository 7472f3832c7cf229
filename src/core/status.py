"""Bill display status — pure business logic.

A bill stores only whether it is paid and when it is due. What the user
sees (pending / paid / overdue) is always recomputed here.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import date, datetime

from src.data.models import Bill, DisplayStatus


def as_date(now: date | datetime) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def classify_status(bill: Bill, now: date | datetime) -> DisplayStatus:
    """Return the display status of a bill as of `now`.

    Paid wins regardless of due date. An unpaid bill is overdue only when
    its due date is strictly before today, so a bill due today is pending.
    """
    if bill.paid:
        return DisplayStatus.PAID
    if bill.due_date < as_date(now):
        return DisplayStatus.OVERDUE
    return DisplayStatus.PENDING


def days_until_due(bill: Bill, now: date | datetime) -> int:
    """Whole calendar days from today until the due date (negative when past)."""
    return (bill.due_date - as_date(now)).days
