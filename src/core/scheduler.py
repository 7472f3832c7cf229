"""
BillTrack — Daily bill reminders.

Once a day (REMINDER_HOUR in TIMEZONE) every allowed user gets a digest of
their overdue, due-soon and upcoming bills. Dismissed notifications stay
quiet; users with nothing to report get no message.

Digests are Telegram Markdown text; delivery goes through the
NotificationPort protocol, not a specific messaging implementation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from telegram.helpers import escape_markdown

from src.config import local_now, settings
from src.core.notifications import apply_read_state, generate_notifications
from src.data.models import NotificationType, Priority

if TYPE_CHECKING:
    from src.data.db import BillDB, NotificationStateDB
    from src.data.models import Notification
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_PRIORITY_ICON = {Priority.HIGH: "🔴", Priority.MEDIUM: "🟠", Priority.LOW: "🔵"}

_SECTION_TITLES = {
    NotificationType.OVERDUE: "Overdue",
    NotificationType.DUE_SOON: "Due soon",
    NotificationType.REMINDER: "Coming up",
}


def format_notification(n: Notification, currency: str | None = None) -> str:
    """One Markdown line per notification: icon, message, amount and due date.

    The message embeds the user's bill title, so it is escaped.
    """
    currency = settings.CURRENCY_SYMBOL if currency is None else currency
    marker = "" if n.read else " •"
    return (
        f"{_PRIORITY_ICON[n.priority]} {escape_markdown(n.message)} — "
        f"{currency}{n.amount:.2f} (due {n.due_date.isoformat()}){marker}"
    )


def format_digest(notifications: list[Notification], currency: str | None = None) -> str:
    """Group notifications into Overdue / Due soon / Coming up sections."""
    if not notifications:
        return "No bills need your attention. 🎉"

    lines = ["*Bill reminders*"]
    for kind in (NotificationType.OVERDUE, NotificationType.DUE_SOON, NotificationType.REMINDER):
        section = [n for n in notifications if n.type == kind]
        if not section:
            continue
        lines.append(f"\n*{_SECTION_TITLES[kind]}:*")
        lines.extend(format_notification(n, currency) for n in section)
    return "\n".join(lines)


def build_user_notifications(
    user_id: int,
    bill_db: BillDB,
    state_db: NotificationStateDB | None = None,
    now: datetime | None = None,
) -> list[Notification]:
    """Generate a user's notifications with their read/dismissed overlay applied."""
    if now is None:
        now = local_now()
    notifications = generate_notifications(bill_db.list_bills(user_id=user_id), now)
    if state_db is not None:
        notifications = apply_read_state(notifications, state_db.get_states(user_id))
    return notifications


async def send_daily_reminders(
    notifier: NotificationPort,
    bill_db: BillDB,
    state_db: NotificationStateDB | None = None,
    user_ids: list[int] | None = None,
    now: datetime | None = None,
) -> int:
    """Push the reminder digest to every user. Returns how many were sent.

    A failure for one user is logged and does not stop the others.
    """
    if user_ids is None:
        user_ids = settings.ALLOWED_USER_IDS

    sent = 0
    for user_id in user_ids:
        try:
            notifications = build_user_notifications(user_id, bill_db, state_db, now)
            if not notifications:
                logger.info("No bill reminders for user %d", user_id)
                continue
            await notifier.send_message(user_id, format_digest(notifications))
            sent += 1
            logger.info("Bill reminders sent to user %d (%d items)", user_id, len(notifications))
        except Exception as exc:
            logger.error("Failed to send bill reminders to %d: %s", user_id, exc)
    return sent
