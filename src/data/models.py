"""
BillTrack — Data Models.

Bills and payments persist in SQLite. A bill stores only the facts
(paid or not, due date); its display status is always derived by
src.core.status. Notifications are never stored, only their per-user
read/dismissed overlay.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class UtilityType(str, Enum):
    ELECTRICITY = "electricity"
    WATER = "water"
    GAS = "gas"
    INTERNET = "internet"


class RecurringPeriod(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    ONLINE = "online"


class DisplayStatus(str, Enum):
    """Status shown to the user, computed from due date and payment state."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class NotificationType(str, Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    REMINDER = "reminder"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _to_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Invalid due date: {value!r}")


@dataclass
class Bill:
    """A utility bill owned by a single user.

    due_date may be given as an ISO "YYYY-MM-DD" string. Raises ValueError
    when the amount is not positive or when recurring_period does not match
    is_recurring.
    """

    id: int
    title: str
    utility_type: UtilityType
    amount: float
    due_date: date
    user_id: int | None = None
    is_recurring: bool = False
    recurring_period: RecurringPeriod | None = None
    paid: bool = False
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.utility_type = UtilityType(self.utility_type)
        self.due_date = _to_date(self.due_date)
        if self.recurring_period is not None:
            self.recurring_period = RecurringPeriod(self.recurring_period)
        if self.amount <= 0:
            raise ValueError(f"Bill amount must be positive, got {self.amount}")
        if self.is_recurring and self.recurring_period is None:
            raise ValueError("Recurring bills need a recurring_period")
        if not self.is_recurring and self.recurring_period is not None:
            raise ValueError("recurring_period is only valid for recurring bills")


@dataclass
class Payment:
    """A payment recorded against a bill (the bill is referenced, not owned)."""

    id: int
    bill_id: int
    amount: float
    payment_date: datetime
    payment_method: PaymentMethod = PaymentMethod.CARD
    user_id: int | None = None
    notes: str = ""
    created_at: str = ""

    def __post_init__(self) -> None:
        self.payment_method = PaymentMethod(self.payment_method)
        if isinstance(self.payment_date, str):
            self.payment_date = datetime.fromisoformat(self.payment_date)


@dataclass
class Notification:
    """A derived bill notification. Never stored; regenerated on every refresh."""

    id: str                       # "{type}-{bill_id}", stable across refreshes
    type: NotificationType
    priority: Priority
    title: str                    # e.g. "Bill Overdue"
    message: str
    bill_id: int
    bill_title: str
    amount: float
    due_date: date
    read: bool = False
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class NotificationState:
    """Persisted read/dismissed overlay for one notification id."""

    user_id: int
    notification_id: str
    read: bool = False
    dismissed: bool = False
