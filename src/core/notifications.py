"""Bill notification engine — pure business logic.

Buckets every unpaid bill by days until due:

    < 0     overdue    high
    0       due_soon   high    ("due today")
    1..3    due_soon   medium
    4..7    reminder   low
    > 7     (nothing)

Notification ids are deterministic ("{type}-{bill_id}") so a persisted
read/dismissed overlay can be re-applied after every regeneration.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date, datetime, time

from src.core.status import days_until_due
from src.data.models import (
    Bill,
    Notification,
    NotificationState,
    NotificationType,
    Priority,
)

logger = logging.getLogger(__name__)

DUE_SOON_DAYS = 3
REMINDER_DAYS = 7

_PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}

_TITLES = {
    NotificationType.OVERDUE: "Bill Overdue",
    NotificationType.DUE_SOON: "Bill Due Soon",
    NotificationType.REMINDER: "Upcoming Bill",
}


def _plural_days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


def notification_id(kind: NotificationType, bill_id: int) -> str:
    return f"{kind.value}-{bill_id}"


def _classify(bill: Bill, days: int) -> tuple[NotificationType, Priority, str] | None:
    """Pick the single bucket for a bill, or None when it is too far out."""
    if days < 0:
        return (
            NotificationType.OVERDUE,
            Priority.HIGH,
            f"{bill.title} was due {_plural_days(abs(days))} ago",
        )
    if days <= DUE_SOON_DAYS:
        if days == 0:
            return NotificationType.DUE_SOON, Priority.HIGH, f"{bill.title} is due today"
        return (
            NotificationType.DUE_SOON,
            Priority.MEDIUM,
            f"{bill.title} is due in {_plural_days(days)}",
        )
    if days <= REMINDER_DAYS:
        return NotificationType.REMINDER, Priority.LOW, f"{bill.title} is due in {days} days"
    return None


def generate_notifications(
    bills: Iterable[Bill], now: date | datetime,
) -> list[Notification]:
    """Build the prioritized notification list for a bill snapshot.

    Paid bills never notify and each bill yields at most one notification.
    The result is sorted by priority (high first), then by due date
    (soonest first); ties keep input order.
    """
    created_at = now if isinstance(now, datetime) else datetime.combine(now, time())
    result: list[Notification] = []
    for bill in bills:
        if bill.paid:
            continue

        bucket = _classify(bill, days_until_due(bill, now))
        if bucket is None:
            continue

        kind, priority, message = bucket
        result.append(Notification(
            id=notification_id(kind, bill.id),
            type=kind,
            priority=priority,
            title=_TITLES[kind],
            message=message,
            bill_id=bill.id,
            bill_title=bill.title,
            amount=bill.amount,
            due_date=bill.due_date,
            read=False,
            created_at=created_at,
        ))

    # list.sort is stable, so equal keys keep insertion order
    result.sort(key=lambda n: (-_PRIORITY_RANK[n.priority], n.due_date))
    logger.debug("Generated %d notifications", len(result))
    return result


def unread_count(notifications: Iterable[Notification]) -> int:
    return sum(1 for n in notifications if not n.read)


def apply_read_state(
    notifications: Iterable[Notification],
    states: Mapping[str, NotificationState],
) -> list[Notification]:
    """Overlay persisted read/dismissed flags onto freshly generated notifications.

    Dismissed notifications are dropped; read ones come back with read=True.
    The input objects are not modified.
    """
    result: list[Notification] = []
    for n in notifications:
        state = states.get(n.id)
        if state is None:
            result.append(n)
            continue
        if state.dismissed:
            continue
        result.append(replace(n, read=n.read or state.read))
    return result
