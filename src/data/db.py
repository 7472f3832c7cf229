"""
BillTrack — Bill, Payment and Notification-state storage.

SQLite-backed stores. Every call takes the owning user explicitly;
there is no ambient session. Any sqlite3 failure surfaces as StoreError.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator

from src.data.models import (
    Bill,
    NotificationState,
    Payment,
    PaymentMethod,
    RecurringPeriod,
    UtilityType,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a storage operation fails."""


class _SQLiteStore:
    """Shared connection handling for the SQLite stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        raise NotImplementedError

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and wrap sqlite3 errors."""
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open database {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Database error on %s: %s", self._db_path, exc)
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()


class BillDB(_SQLiteStore):
    """SQLite-backed storage for utility bills."""

    _UPDATABLE = {
        "title", "utility_type", "amount", "due_date", "is_recurring",
        "recurring_period", "paid", "notes",
    }

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bills (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id          INTEGER,
                    title            TEXT    NOT NULL,
                    utility_type     TEXT    NOT NULL,
                    amount           REAL    NOT NULL,
                    due_date         TEXT    NOT NULL,
                    is_recurring     INTEGER NOT NULL DEFAULT 0,
                    recurring_period TEXT,
                    paid             INTEGER NOT NULL DEFAULT 0,
                    notes            TEXT    NOT NULL DEFAULT '',
                    created_at       TEXT    NOT NULL,
                    updated_at       TEXT    NOT NULL
                )
            """)
        logger.debug("Bills table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_bill(row: sqlite3.Row) -> Bill:
        return Bill(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            utility_type=UtilityType(row["utility_type"]),
            amount=row["amount"],
            due_date=date.fromisoformat(row["due_date"]),
            is_recurring=bool(row["is_recurring"]),
            recurring_period=(
                RecurringPeriod(row["recurring_period"])
                if row["recurring_period"] else None
            ),
            paid=bool(row["paid"]),
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_bill(
        self,
        title: str,
        utility_type: UtilityType | str,
        amount: float,
        due_date: date,
        user_id: int | None = None,
        is_recurring: bool = False,
        recurring_period: RecurringPeriod | str | None = None,
        notes: str = "",
    ) -> Bill:
        """Validate and insert a new unpaid bill."""
        now = datetime.now().isoformat()
        # Constructing the model first enforces the bill invariants
        bill = Bill(
            id=0,
            user_id=user_id,
            title=title.strip(),
            utility_type=utility_type,
            amount=amount,
            due_date=due_date,
            is_recurring=is_recurring,
            recurring_period=recurring_period,
            paid=False,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO bills
                    (user_id, title, utility_type, amount, due_date,
                     is_recurring, recurring_period, paid, notes,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    user_id, bill.title, bill.utility_type.value, bill.amount,
                    bill.due_date.isoformat(), int(bill.is_recurring),
                    bill.recurring_period.value if bill.recurring_period else None,
                    bill.notes, now, now,
                ),
            )
            bill.id = cursor.lastrowid

        logger.info("Bill added: #%d '%s' %.2f due %s", bill.id, bill.title, bill.amount, bill.due_date)
        return bill

    def get_bill(self, bill_id: int) -> Bill | None:
        """Fetch a single bill by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM bills WHERE id = ?", (bill_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_bill(row)

    def list_bills(self, user_id: int | None = None) -> list[Bill]:
        """List bills ordered by due date, optionally scoped to a user."""
        query = "SELECT * FROM bills"
        params: list = []
        if user_id is not None:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY due_date, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_bill(r) for r in rows]

    def update_bill(self, bill_id: int, **fields: object) -> Bill | None:
        """Apply a partial update. Returns the updated bill, or None if missing.

        Raises ValueError for unknown fields or when the result would break
        the bill invariants.
        """
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update bill fields: {sorted(unknown)}")

        current = self.get_bill(bill_id)
        if current is None:
            return None

        if fields.get("is_recurring") is False and "recurring_period" not in fields:
            fields["recurring_period"] = None
        updated = dataclasses.replace(
            current, updated_at=datetime.now().isoformat(), **fields,
        )

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE bills SET
                    title = ?, utility_type = ?, amount = ?, due_date = ?,
                    is_recurring = ?, recurring_period = ?, paid = ?, notes = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.title, updated.utility_type.value, updated.amount,
                    updated.due_date.isoformat(), int(updated.is_recurring),
                    updated.recurring_period.value if updated.recurring_period else None,
                    int(updated.paid), updated.notes, updated.updated_at, bill_id,
                ),
            )
        logger.info("Bill #%d updated: %s", bill_id, ", ".join(sorted(fields)))
        return updated

    def mark_paid(self, bill_id: int) -> Bill:
        """Mark a bill as paid. Raises ValueError if the bill doesn't exist."""
        bill = self.update_bill(bill_id, paid=True)
        if bill is None:
            raise ValueError(f"Bill {bill_id} not found")
        logger.info("Bill #%d '%s' marked paid", bill_id, bill.title)
        return bill

    def delete_bill(self, bill_id: int) -> bool:
        """Permanently delete a bill. Its payments are left untouched."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM bills WHERE id = ?", (bill_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Bill #%d deleted", bill_id)
        return deleted


class PaymentDB(_SQLiteStore):
    """SQLite-backed storage for payments."""

    _UPDATABLE = {"amount", "payment_date", "payment_method", "notes"}

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS payments (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    bill_id        INTEGER NOT NULL,
                    user_id        INTEGER,
                    amount         REAL    NOT NULL,
                    payment_date   TEXT    NOT NULL,
                    payment_method TEXT    NOT NULL DEFAULT 'card',
                    notes          TEXT    NOT NULL DEFAULT '',
                    created_at     TEXT    NOT NULL
                )
            """)
        logger.debug("Payments table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_payment(row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["id"],
            bill_id=row["bill_id"],
            user_id=row["user_id"],
            amount=row["amount"],
            payment_date=datetime.fromisoformat(row["payment_date"]),
            payment_method=PaymentMethod(row["payment_method"]),
            notes=row["notes"],
            created_at=row["created_at"],
        )

    def add_payment(
        self,
        bill_id: int,
        amount: float,
        payment_date: datetime | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.CARD,
        user_id: int | None = None,
        notes: str = "",
    ) -> Payment:
        """Record a payment. payment_date defaults to local wall time in TIMEZONE."""
        if amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {amount}")
        if payment_date is None:
            from src.config import local_now
            payment_date = local_now().replace(tzinfo=None)

        payment = Payment(
            id=0,
            bill_id=bill_id,
            user_id=user_id,
            amount=amount,
            payment_date=payment_date,
            payment_method=payment_method,
            notes=notes,
            created_at=datetime.now().isoformat(),
        )
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO payments
                    (bill_id, user_id, amount, payment_date, payment_method, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bill_id, user_id, amount, payment.payment_date.isoformat(),
                    payment.payment_method.value, notes, payment.created_at,
                ),
            )
            payment.id = cursor.lastrowid

        logger.info("Payment added: #%d %.2f for bill #%d", payment.id, amount, bill_id)
        return payment

    def get_payment(self, payment_id: int) -> Payment | None:
        """Fetch a single payment by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM payments WHERE id = ?", (payment_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_payment(row)

    def list_payments(
        self, user_id: int | None = None, bill_id: int | None = None,
    ) -> list[Payment]:
        """List payments, newest first, optionally scoped to a user and/or bill."""
        conditions: list[str] = []
        params: list = []
        if user_id is not None:
            conditions.append("user_id = ?")
            params.append(user_id)
        if bill_id is not None:
            conditions.append("bill_id = ?")
            params.append(bill_id)

        query = "SELECT * FROM payments"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY payment_date DESC, id DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_payment(r) for r in rows]

    def update_payment(self, payment_id: int, **fields: object) -> Payment | None:
        """Apply a partial update. Returns the updated payment, or None if missing."""
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update payment fields: {sorted(unknown)}")
        if "amount" in fields and fields["amount"] <= 0:
            raise ValueError(f"Payment amount must be positive, got {fields['amount']}")

        current = self.get_payment(payment_id)
        if current is None:
            return None
        updated = dataclasses.replace(current, **fields)

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE payments SET
                    amount = ?, payment_date = ?, payment_method = ?, notes = ?
                WHERE id = ?
                """,
                (
                    updated.amount, updated.payment_date.isoformat(),
                    updated.payment_method.value, updated.notes, payment_id,
                ),
            )
        logger.info("Payment #%d updated: %s", payment_id, ", ".join(sorted(fields)))
        return updated

    def delete_payment(self, payment_id: int) -> bool:
        """Permanently delete a payment by ID."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM payments WHERE id = ?", (payment_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Payment #%d deleted", payment_id)
        return deleted


class NotificationStateDB(_SQLiteStore):
    """Per-user read/dismissed flags, keyed by deterministic notification id."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notification_state (
                    user_id         INTEGER NOT NULL,
                    notification_id TEXT    NOT NULL,
                    read            INTEGER NOT NULL DEFAULT 0,
                    dismissed       INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (user_id, notification_id)
                )
            """)
        logger.debug("Notification state table initialized at %s", self._db_path)

    def _upsert(self, user_id: int, notification_id: str, column: str) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO notification_state (user_id, notification_id, {column})
                VALUES (?, ?, 1)
                ON CONFLICT (user_id, notification_id) DO UPDATE SET {column} = 1
                """,
                (user_id, notification_id),
            )

    def mark_read(self, user_id: int, notification_id: str) -> None:
        self._upsert(user_id, notification_id, "read")
        logger.info("Notification %s marked read for user %d", notification_id, user_id)

    def mark_all_read(self, user_id: int, notification_ids: list[str]) -> None:
        """Mark every given notification as read in one transaction."""
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO notification_state (user_id, notification_id, read)
                VALUES (?, ?, 1)
                ON CONFLICT (user_id, notification_id) DO UPDATE SET read = 1
                """,
                [(user_id, nid) for nid in notification_ids],
            )
        logger.info("%d notifications marked read for user %d", len(notification_ids), user_id)

    def dismiss(self, user_id: int, notification_id: str) -> None:
        self._upsert(user_id, notification_id, "dismissed")
        logger.info("Notification %s dismissed for user %d", notification_id, user_id)

    def get_states(self, user_id: int) -> dict[str, NotificationState]:
        """Return the overlay for a user, keyed by notification id."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM notification_state WHERE user_id = ?", (user_id,),
            ).fetchall()
        return {
            r["notification_id"]: NotificationState(
                user_id=r["user_id"],
                notification_id=r["notification_id"],
                read=bool(r["read"]),
                dismissed=bool(r["dismissed"]),
            )
            for r in rows
        }

    def clear_for_bill(self, user_id: int, bill_id: int) -> int:
        """Drop overlay rows for every notification of a bill (all types)."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM notification_state
                WHERE user_id = ? AND notification_id IN (?, ?, ?)
                """,
                (user_id, f"overdue-{bill_id}", f"due_soon-{bill_id}", f"reminder-{bill_id}"),
            )
        return cursor.rowcount
