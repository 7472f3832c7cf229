"""
BillTrack — Derived-view pipeline.

Every derived view (display statuses, notifications, analytics) is a pure
function of a (bills, payments, today) snapshot. BillPipeline recomputes
them only when that snapshot changes; unchanged snapshots return the
previous result object.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import astuple, dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

from src.config import local_now
from src.core.analytics import (
    CategoryBucket,
    DashboardSummary,
    MethodBucket,
    MonthBucket,
    SpendingSummary,
    breakdown_by_method,
    breakdown_by_type,
    dashboard_summary,
    monthly_series,
    spending_summary,
)
from src.core.notifications import apply_read_state, generate_notifications, unread_count
from src.core.status import as_date, classify_status
from src.data.models import Bill, DisplayStatus, Notification, NotificationState, Payment

if TYPE_CHECKING:
    from src.data.db import BillDB, NotificationStateDB, PaymentDB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DerivedViews:
    """Everything the UI renders from one snapshot."""

    bills: list[Bill]
    statuses: dict[int, DisplayStatus]
    notifications: list[Notification]
    unread_count: int
    monthly: list[MonthBucket]
    by_type: list[CategoryBucket]
    by_method: list[MethodBucket]
    spending: SpendingSummary
    dashboard: DashboardSummary


def snapshot_fingerprint(
    bills: list[Bill],
    payments: list[Payment],
    now: date | datetime,
    states: Mapping[str, NotificationState] | None = None,
) -> tuple:
    """Hashable identity of a snapshot. Time only matters at day granularity."""
    overlay = tuple(sorted(
        (s.notification_id, s.read, s.dismissed) for s in (states or {}).values()
    ))
    return (
        tuple(astuple(b) for b in bills),
        tuple(astuple(p) for p in payments),
        as_date(now),
        overlay,
    )


class BillPipeline:
    """Recompute derived views on snapshot change."""

    def __init__(self, month_count: int = 12) -> None:
        self._month_count = month_count
        self._fingerprint: tuple | None = None
        self._views: DerivedViews | None = None
        self.recomputations = 0

    def refresh(
        self,
        bills: list[Bill],
        payments: list[Payment],
        now: date | datetime,
        states: Mapping[str, NotificationState] | None = None,
    ) -> DerivedViews:
        """Return derived views for the snapshot, reusing the last result if unchanged."""
        fingerprint = snapshot_fingerprint(bills, payments, now, states)
        if self._views is not None and fingerprint == self._fingerprint:
            return self._views

        notifications = generate_notifications(bills, now)
        if states:
            notifications = apply_read_state(notifications, states)

        self._views = DerivedViews(
            bills=list(bills),
            statuses={b.id: classify_status(b, now) for b in bills},
            notifications=notifications,
            unread_count=unread_count(notifications),
            monthly=monthly_series(payments, self._month_count, now),
            by_type=breakdown_by_type(bills),
            by_method=breakdown_by_method(payments),
            spending=spending_summary(bills, payments, now, self._month_count),
            dashboard=dashboard_summary(bills, now),
        )
        self._fingerprint = fingerprint
        self.recomputations += 1
        logger.debug(
            "Derived views recomputed (%d bills, %d payments, %d notifications)",
            len(bills), len(payments), len(notifications),
        )
        return self._views

    def refresh_for_user(
        self,
        user_id: int,
        bill_db: BillDB,
        payment_db: PaymentDB,
        state_db: NotificationStateDB | None = None,
        now: datetime | None = None,
    ) -> DerivedViews:
        """Load a user's snapshot from the stores and refresh.

        `now` defaults to the current time in the configured TIMEZONE.
        """
        if now is None:
            now = local_now()
        bills = bill_db.list_bills(user_id=user_id)
        payments = payment_db.list_payments(user_id=user_id)
        states = state_db.get_states(user_id) if state_db is not None else None
        return self.refresh(bills, payments, now, states)
