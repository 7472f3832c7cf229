"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides temp-file stores plus bill/payment factories.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("CURRENCY_SYMBOL", "$")

from datetime import date, datetime

import pytest


NOW = datetime(2026, 10, 19, 15, 30)


@pytest.fixture
def now():
    """A fixed afternoon 'now' so day arithmetic is deterministic."""
    return NOW


@pytest.fixture
def make_bill():
    """Factory for Bill objects with sensible defaults."""
    from src.data.models import Bill, UtilityType

    counter = {"id": 0}

    def _make(**overrides):
        counter["id"] += 1
        fields = dict(
            id=counter["id"],
            title=f"Bill {counter['id']}",
            utility_type=UtilityType.ELECTRICITY,
            amount=50.0,
            due_date=date(2026, 10, 25),
            user_id=12345,
        )
        fields.update(overrides)
        return Bill(**fields)

    return _make


@pytest.fixture
def make_payment():
    """Factory for Payment objects with sensible defaults."""
    from src.data.models import Payment, PaymentMethod

    counter = {"id": 0}

    def _make(**overrides):
        counter["id"] += 1
        fields = dict(
            id=counter["id"],
            bill_id=1,
            amount=20.0,
            payment_date=datetime(2026, 10, 5, 12, 0),
            payment_method=PaymentMethod.CARD,
            user_id=12345,
        )
        fields.update(overrides)
        return Payment(**fields)

    return _make


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_bills.db")


@pytest.fixture
def bill_db(tmp_db_path):
    """Return a BillDB instance backed by a temp file."""
    from src.data.db import BillDB
    return BillDB(db_path=tmp_db_path)


@pytest.fixture
def payment_db(tmp_db_path):
    """Return a PaymentDB instance sharing the bills' temp file."""
    from src.data.db import PaymentDB
    return PaymentDB(db_path=tmp_db_path)


@pytest.fixture
def state_db(tmp_db_path):
    """Return a NotificationStateDB instance sharing the bills' temp file."""
    from src.data.db import NotificationStateDB
    return NotificationStateDB(db_path=tmp_db_path)
