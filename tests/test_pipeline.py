"""Tests for src.core.pipeline — recompute-on-change behaviour."""

from dataclasses import replace
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from src.core.pipeline import BillPipeline, snapshot_fingerprint
from src.data.models import DisplayStatus, NotificationState


class TestRefresh:
    def test_builds_all_views(self, make_bill, make_payment, now):
        bills = [make_bill(id=1, due_date=date(2026, 10, 17)), make_bill(id=2, paid=True)]
        payments = [make_payment(bill_id=2, amount=50)]
        views = BillPipeline(month_count=6).refresh(bills, payments, now)

        assert views.statuses == {1: DisplayStatus.OVERDUE, 2: DisplayStatus.PAID}
        assert [n.id for n in views.notifications] == ["overdue-1"]
        assert views.unread_count == 1
        assert len(views.monthly) == 6
        assert views.monthly[-1].amount == 50
        assert views.by_type[0].count == 2
        assert views.by_method[0].total_amount == 50
        assert views.dashboard.overdue_count == 1

    def test_unchanged_snapshot_is_cached(self, make_bill, now):
        pipeline = BillPipeline()
        bills = [make_bill()]
        first = pipeline.refresh(bills, [], now)
        second = pipeline.refresh(list(bills), [], now + timedelta(hours=2))
        assert second is first
        assert pipeline.recomputations == 1

    def test_changed_bill_recomputes(self, make_bill, now):
        pipeline = BillPipeline()
        bill = make_bill(due_date=now.date())
        first = pipeline.refresh([bill], [], now)
        second = pipeline.refresh([replace(bill, paid=True)], [], now)
        assert second is not first
        assert second.notifications == []
        assert pipeline.recomputations == 2

    def test_new_day_recomputes(self, make_bill, now):
        pipeline = BillPipeline()
        bill = make_bill(due_date=now.date())
        pipeline.refresh([bill], [], now)
        views = pipeline.refresh([bill], [], now + timedelta(days=1))
        assert views.statuses[bill.id] == DisplayStatus.OVERDUE

    def test_read_state_applied_and_tracked(self, make_bill, now):
        pipeline = BillPipeline()
        bill = make_bill(id=4, due_date=now.date())
        pipeline.refresh([bill], [], now)
        states = {"due_soon-4": NotificationState(user_id=1, notification_id="due_soon-4", read=True)}
        views = pipeline.refresh([bill], [], now, states)
        assert views.unread_count == 0
        assert views.notifications[0].read is True

    def test_empty_snapshot(self, now):
        views = BillPipeline().refresh([], [], now)
        assert views.notifications == []
        assert views.by_type == []
        assert views.spending.total_paid == 0


class TestRefreshForUser:
    def test_loads_from_stores(self, bill_db, payment_db, state_db):
        now = datetime(2026, 10, 19, 9, 0)
        mine = bill_db.add_bill("Water", "water", 40.0, date(2026, 10, 20), user_id=1)
        bill_db.add_bill("Other's gas", "gas", 70.0, date(2026, 10, 20), user_id=2)
        payment_db.add_payment(mine.id, 40.0, datetime(2026, 10, 1, 9, 0), user_id=1)
        state_db.dismiss(1, f"due_soon-{mine.id}")

        views = BillPipeline().refresh_for_user(1, bill_db, payment_db, state_db, now=now)

        assert list(views.statuses) == [mine.id]
        assert views.notifications == []
        assert views.spending.total_paid == 40
        assert [b.id for b in views.bills] == [mine.id]

    def test_defaults_to_configured_timezone(self, bill_db, payment_db, monkeypatch):
        # 23:30 UTC on the 19th is already the 20th in Jerusalem
        local = datetime(2026, 10, 19, 23, 30, tzinfo=ZoneInfo("UTC")).astimezone(
            ZoneInfo("Asia/Jerusalem")
        )
        monkeypatch.setattr("src.core.pipeline.local_now", lambda: local)
        bill = bill_db.add_bill("Water", "water", 40.0, date(2026, 10, 20), user_id=1)

        views = BillPipeline().refresh_for_user(1, bill_db, payment_db)

        [n] = views.notifications
        assert n.message == "Water is due today"
        assert views.statuses[bill.id] == DisplayStatus.PENDING


class TestPlainDateSnapshot:
    def test_refresh_accepts_date(self, make_bill):
        bills = [make_bill(id=1, due_date=date(2026, 10, 18))]
        views = BillPipeline().refresh(bills, [], date(2026, 10, 19))
        assert views.statuses == {1: DisplayStatus.OVERDUE}
        assert views.notifications[0].created_at == datetime(2026, 10, 19)

    def test_fingerprint_same_for_date_and_datetime(self, make_bill):
        bills = [make_bill()]
        assert snapshot_fingerprint(bills, [], date(2026, 10, 19)) == snapshot_fingerprint(
            bills, [], datetime(2026, 10, 19, 18, 0)
        )
