"""Bill and payment list filters used by /bills and /payments."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from src.core.status import classify_status
from src.data.models import Bill, DisplayStatus, Payment, PaymentMethod, UtilityType


def filter_bills(
    bills: Iterable[Bill],
    now: date | datetime,
    search: str = "",
    status: DisplayStatus | str | None = None,
    utility_type: UtilityType | str | None = None,
) -> list[Bill]:
    """Filter bills by free text, display status and utility type.

    The search matches title or utility type, case-insensitively. The status
    filter compares against the computed display status, so "overdue" finds
    unpaid bills past their due date.
    """
    needle = search.strip().lower()
    wanted_status = DisplayStatus(status) if status else None
    wanted_type = UtilityType(utility_type) if utility_type else None

    result = []
    for bill in bills:
        if needle and needle not in bill.title.lower() and needle not in bill.utility_type.value:
            continue
        if wanted_status is not None and classify_status(bill, now) != wanted_status:
            continue
        if wanted_type is not None and bill.utility_type != wanted_type:
            continue
        result.append(bill)
    return result


def filter_payments(
    payments: Iterable[Payment],
    bills: Iterable[Bill],
    search: str = "",
    method: PaymentMethod | str | None = None,
    month: str | None = None,
) -> list[Payment]:
    """Filter payments by free text, payment method and "YYYY-MM" month.

    The search matches the linked bill's title or the payment notes. Payments
    whose bill was deleted can still match on notes.
    """
    titles = {b.id: b.title.lower() for b in bills}
    needle = search.strip().lower()
    wanted_method = PaymentMethod(method) if method else None

    result = []
    for p in payments:
        if needle and needle not in titles.get(p.bill_id, "") and needle not in p.notes.lower():
            continue
        if wanted_method is not None and p.payment_method != wanted_method:
            continue
        if month and p.payment_date.strftime("%Y-%m") != month:
            continue
        result.append(p)
    return result


def payment_months(payments: Iterable[Payment]) -> list[str]:
    """Distinct "YYYY-MM" months that have payments, newest first."""
    return sorted({p.payment_date.strftime("%Y-%m") for p in payments}, reverse=True)
