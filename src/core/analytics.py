"""Spending analytics — pure business logic.

Reduces bill and payment snapshots into chart-ready series:
trailing monthly totals, per-utility and per-method breakdowns, and the
headline numbers shown on /analytics and in the dashboard.

No I/O: this module only transforms data. Every function returns empty
or zero results for empty input and never divides by zero.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from src.core.status import as_date
from src.data.models import Bill, Payment, PaymentMethod, UtilityType


@dataclass(frozen=True)
class MonthBucket:
    label: str          # e.g. "Oct 2026"
    year: int
    month: int
    amount: float
    count: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class CategoryBucket:
    utility_type: UtilityType
    total_amount: float
    count: int
    average: float


@dataclass(frozen=True)
class MethodBucket:
    payment_method: PaymentMethod
    total_amount: float


@dataclass(frozen=True)
class SpendingSummary:
    """Headline numbers for the analytics view."""

    current_month_total: float
    last_month_total: float
    monthly_change_pct: float      # 0.0 when last month had no spending
    average_monthly: float
    months_considered: int
    total_paid: float
    payment_count: int
    total_pending: float
    pending_count: int


@dataclass(frozen=True)
class DashboardSummary:
    overdue_count: int
    upcoming_count: int            # due after today and within the next week
    total_pending: float


def _money(value: float) -> float:
    return round(value, 2)


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by `delta` calendar months (negative goes back)."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_months(now: date | datetime, month_count: int) -> list[tuple[int, int]]:
    """Return (year, month) pairs, oldest first, ending with the current month."""
    today = as_date(now)
    return [
        _shift_month(today.year, today.month, -offset)
        for offset in range(month_count - 1, -1, -1)
    ]


def monthly_series(
    payments: Iterable[Payment], month_count: int, now: date | datetime,
) -> list[MonthBucket]:
    """Total and count of payments per calendar month over a trailing window.

    Always returns exactly `month_count` buckets (oldest to newest, the last
    one being the current month). Months without payments are zero buckets.
    Bucketing uses the payment date, not the bill's due date.
    """
    months = trailing_months(now, month_count)
    totals: dict[tuple[int, int], float] = {m: 0.0 for m in months}
    counts: dict[tuple[int, int], int] = {m: 0 for m in months}

    for p in payments:
        key = (p.payment_date.year, p.payment_date.month)
        if key in totals:
            totals[key] += p.amount
            counts[key] += 1

    return [
        MonthBucket(
            label=date(year, month, 1).strftime("%b %Y"),
            year=year,
            month=month,
            amount=_money(totals[(year, month)]),
            count=counts[(year, month)],
        )
        for year, month in months
    ]


def breakdown_by_type(bills: Iterable[Bill]) -> list[CategoryBucket]:
    """Group bills by utility type, in first-seen order.

    Only types with at least one bill are emitted, so count is always >= 1.
    """
    totals: dict[UtilityType, float] = {}
    counts: dict[UtilityType, int] = {}
    for bill in bills:
        totals[bill.utility_type] = totals.get(bill.utility_type, 0.0) + bill.amount
        counts[bill.utility_type] = counts.get(bill.utility_type, 0) + 1

    return [
        CategoryBucket(
            utility_type=utility_type,
            total_amount=_money(total),
            count=counts[utility_type],
            average=_money(total / counts[utility_type]),
        )
        for utility_type, total in totals.items()
    ]


def breakdown_by_method(payments: Iterable[Payment]) -> list[MethodBucket]:
    """Sum payments per payment method, in first-seen order."""
    totals: dict[PaymentMethod, float] = {}
    for p in payments:
        totals[p.payment_method] = totals.get(p.payment_method, 0.0) + p.amount
    return [
        MethodBucket(payment_method=method, total_amount=_money(total))
        for method, total in totals.items()
    ]


def _month_total(payments: Sequence[Payment], year: int, month: int) -> float:
    return sum(
        p.amount for p in payments
        if p.payment_date.year == year and p.payment_date.month == month
    )


def spending_summary(
    bills: Iterable[Bill],
    payments: Iterable[Payment],
    now: date | datetime,
    month_count: int = 12,
) -> SpendingSummary:
    """Current vs. last month, trailing average, paid and pending totals."""
    bills = list(bills)
    payments = list(payments)
    today = as_date(now)

    current = _month_total(payments, today.year, today.month)
    last_year, last_month = _shift_month(today.year, today.month, -1)
    last = _month_total(payments, last_year, last_month)
    change = (current - last) / last * 100 if last > 0 else 0.0

    series = monthly_series(payments, month_count, today)
    average = sum(b.amount for b in series) / len(series) if series else 0.0

    pending = [b for b in bills if not b.paid]

    return SpendingSummary(
        current_month_total=_money(current),
        last_month_total=_money(last),
        monthly_change_pct=round(change, 1),
        average_monthly=_money(average),
        months_considered=len(series),
        total_paid=_money(sum(p.amount for p in payments)),
        payment_count=len(payments),
        total_pending=_money(sum(b.amount for b in pending)),
        pending_count=len(pending),
    )


def dashboard_summary(bills: Iterable[Bill], now: date | datetime) -> DashboardSummary:
    """Overdue and upcoming-this-week counts plus the unpaid total."""
    today = as_date(now)
    next_week = today + timedelta(days=7)
    unpaid = [b for b in bills if not b.paid]

    return DashboardSummary(
        overdue_count=sum(1 for b in unpaid if b.due_date < today),
        upcoming_count=sum(1 for b in unpaid if today < b.due_date < next_week),
        total_pending=_money(sum(b.amount for b in unpaid)),
    )
