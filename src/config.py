"""
BillTrack — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/bills.db"

    # Security
    ALLOWED_USER_IDS: list[int] = []

    # Daily reminder push
    REMINDER_HOUR: int = 9
    TIMEZONE: str = "UTC"

    # Analytics
    ANALYTICS_MONTHS: int = 12
    CURRENCY_SYMBOL: str = "$"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("REMINDER_HOUR", "ANALYTICS_MONTHS", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("REMINDER_HOUR")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"REMINDER_HOUR must be 0-23, got {v}")
        return v

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown TIMEZONE: {v}") from exc
        return v

    @field_validator("ANALYTICS_MONTHS")
    @classmethod
    def check_months(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"ANALYTICS_MONTHS must be positive, got {v}")
        return v


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/bills.db"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        REMINDER_HOUR=os.getenv("REMINDER_HOUR", "9"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        ANALYTICS_MONTHS=os.getenv("ANALYTICS_MONTHS", "12"),
        CURRENCY_SYMBOL=os.getenv("CURRENCY_SYMBOL", "$"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()


def local_now() -> datetime:
    """Current time in the configured TIMEZONE.

    Due dates, reminder digests and analytics months are measured against
    this clock, the same zone the daily reminder job is scheduled in.
    """
    return datetime.now(ZoneInfo(settings.TIMEZONE))
