"""
BillTrack — Telegram Bot.

Telegram is the only user interface. Every interaction (logging and
editing bills, marking them paid, recording payments, reading
notifications, analytics, the daily reminder push) flows through this bot.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)
from telegram.helpers import escape_markdown

from src.config import local_now, settings
from src.core.pipeline import BillPipeline, DerivedViews
from src.core.scheduler import format_digest
from src.core.search import filter_bills, filter_payments, payment_months
from src.data.db import StoreError
from src.data.models import Bill, DisplayStatus, Notification, PaymentMethod, RecurringPeriod, UtilityType

if TYPE_CHECKING:
    from src.data.db import BillDB, NotificationStateDB, PaymentDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_STATUS_ICON = {
    DisplayStatus.PAID: "✅",
    DisplayStatus.PENDING: "⏳",
    DisplayStatus.OVERDUE: "⚠️",
}

_UTILITY_ICON = {
    UtilityType.ELECTRICITY: "⚡",
    UtilityType.WATER: "💧",
    UtilityType.GAS: "🔥",
    UtilityType.INTERNET: "📡",
}

# Buttons offered by /deletepayment
_DELETE_PAYMENT_LIMIT = 10


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _md(text: str) -> str:
    """Escape user-supplied text for parse_mode="Markdown"."""
    return escape_markdown(text)


def _money(amount: float) -> str:
    return f"{settings.CURRENCY_SYMBOL}{amount:.2f}"


def _views(
    context: ContextTypes.DEFAULT_TYPE, user_id: int, now: datetime | None = None,
) -> DerivedViews:
    """Refresh the user's derived views (cached until their data changes)."""
    pipelines: dict[int, BillPipeline] = context.bot_data.setdefault("pipelines", {})
    pipeline = pipelines.get(user_id)
    if pipeline is None:
        pipeline = pipelines[user_id] = BillPipeline(settings.ANALYTICS_MONTHS)
    return pipeline.refresh_for_user(
        user_id,
        context.bot_data["bill_db"],
        context.bot_data["payment_db"],
        context.bot_data["state_db"],
        now=now,
    )


def _parse_amount(text: str) -> float | None:
    """Parse a positive amount like "42", "42.50" or "$42.50"."""
    cleaned = text.strip().lstrip(settings.CURRENCY_SYMBOL).replace(",", "")
    try:
        value = round(float(cleaned), 2)
    except ValueError:
        return None
    return value if value > 0 else None


def _parse_due_date(text: str) -> date | None:
    """Parse YYYY-MM-DD, or DD/MM/YYYY."""
    text = text.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_recurrence(text: str) -> tuple[bool, RecurringPeriod | None] | None:
    """Map "no"/"none" or a period name to (is_recurring, period)."""
    value = text.strip().lower()
    if value in ("no", "none", "once", "-"):
        return False, None
    try:
        return True, RecurringPeriod(value)
    except ValueError:
        return None


def _parse_notes(text: str) -> str:
    """Free-text notes; "-" or "none" means no notes."""
    text = text.strip()
    return "" if text.lower() in ("-", "none", "no") else text


def _parse_bill_edit(field: str, value: str) -> dict[str, Any] | None:
    """Translate `/editbill` field/value into update_bill kwargs, or None if invalid."""
    field = field.lower()
    if field == "title":
        return {"title": value.strip()} if value.strip() else None
    if field == "type":
        try:
            return {"utility_type": UtilityType(value.strip().lower())}
        except ValueError:
            return None
    if field == "amount":
        amount = _parse_amount(value)
        return {"amount": amount} if amount is not None else None
    if field == "due":
        due = _parse_due_date(value)
        return {"due_date": due} if due is not None else None
    if field == "recurring":
        parsed = _parse_recurrence(value)
        if parsed is None:
            return None
        return {"is_recurring": parsed[0], "recurring_period": parsed[1]}
    if field == "notes":
        return {"notes": _parse_notes(value)}
    return None


def _parse_payment_edit(field: str, value: str, current_time: dt_time) -> dict[str, Any] | None:
    """Translate `/editpayment` field/value into update_payment kwargs, or None if invalid."""
    field = field.lower()
    if field == "amount":
        amount = _parse_amount(value)
        return {"amount": amount} if amount is not None else None
    if field == "date":
        paid_on = _parse_due_date(value)
        if paid_on is None:
            return None
        return {"payment_date": datetime.combine(paid_on, current_time)}
    if field == "method":
        try:
            return {"payment_method": PaymentMethod(value.strip().lower())}
        except ValueError:
            return None
    if field == "notes":
        return {"notes": _parse_notes(value)}
    return None


def _method_label(method: PaymentMethod) -> str:
    return method.value.replace("_", " ")


def _notification_keyboard(notifications: list[Notification]) -> InlineKeyboardMarkup | None:
    """One row per unread notification: mark read, or dismiss."""
    rows = [
        [
            InlineKeyboardButton(f"✓ {n.bill_title}", callback_data=f"notif:read:{n.id}"),
            InlineKeyboardButton("✕", callback_data=f"notif:dismiss:{n.id}"),
        ]
        for n in notifications
        if not n.read
    ]
    return InlineKeyboardMarkup(rows) if rows else None


def _format_bill(bill: Bill, status: DisplayStatus) -> str:
    recurring = f", {bill.recurring_period.value}" if bill.is_recurring else ""
    line = (
        f"`{bill.id}` {_STATUS_ICON[status]} {_UTILITY_ICON[bill.utility_type]} "
        f"{_md(bill.title)} — {_money(bill.amount)} (due {bill.due_date.isoformat()}{recurring})"
    )
    if bill.notes:
        line += f"\n      _{_md(bill.notes)}_"
    return line


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message with a quick dashboard."""
    text = (
        "Welcome to *BillTrack*!\n\n"
        "I keep track of your utility bills:\n"
        "• /addbill to log a bill, /bills to list them\n"
        "• /paid <id> when a bill is settled, /pay to record a payment\n"
        "• /notifications for what's due, /analytics for spending trends\n\n"
        "Type /help for the full command list."
    )
    try:
        dash = _views(context, update.effective_user.id).dashboard
        text += (
            f"\n\nOverdue: *{dash.overdue_count}* · Due this week: *{dash.upcoming_count}* · "
            f"Pending: *{_money(dash.total_pending)}*"
        )
    except StoreError as exc:
        logger.error("/start dashboard error: %s", exc)
    await update.message.reply_text(text, parse_mode="Markdown")


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Available commands:\n"
        "/bills [pending|paid|overdue] [search] — List bills\n"
        "/addbill — Log a new bill\n"
        "/editbill <id> <title|type|amount|due|recurring|notes> <value> — Edit a bill\n"
        "/paid <id> — Mark a bill as paid\n"
        "/deletebill — Delete a bill\n"
        "/pay <bill_id> <amount> [method] [YYYY-MM-DD] [notes] — Record a payment\n"
        "/payments [YYYY-MM] [method] — List payments\n"
        "/editpayment <id> <amount|date|method|notes> <value> — Edit a payment\n"
        "/deletepayment — Delete a payment\n"
        "/notifications — Overdue and upcoming bills\n"
        "/readall — Mark all notifications as read\n"
        "/analytics — Spending summary\n"
        "/help — Show this message",
    )


@authorized_only
async def cmd_bills(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /bills [status] [search] — list bills with their live status."""
    user_id = update.effective_user.id
    args = list(context.args or [])

    status = None
    if args and args[0].lower() in {s.value for s in DisplayStatus}:
        status = args.pop(0).lower()
    search = " ".join(args)

    now = local_now()
    try:
        views = _views(context, user_id, now)
    except StoreError as exc:
        logger.error("/bills error: %s", exc)
        await update.message.reply_text("Couldn't load bills. Please try again.")
        return

    bills = filter_bills(views.bills, now, search=search, status=status)
    if not bills:
        await update.message.reply_text("No bills found.")
        return

    lines = ["*Your bills:*\n"]
    lines.extend(_format_bill(b, views.statuses[b.id]) for b in bills)
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_paid(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /paid <id> — mark a bill as paid."""
    args = context.args
    if not args:
        await update.message.reply_text("Usage: /paid <bill_id>\nUse /bills to see IDs.")
        return

    try:
        bill_id = int(args[0])
    except ValueError:
        await update.message.reply_text("Invalid bill ID. Use /bills to see valid IDs.")
        return

    bill_db: BillDB = context.bot_data["bill_db"]
    try:
        bill = bill_db.get_bill(bill_id)
        if bill is None or bill.user_id != update.effective_user.id:
            await update.message.reply_text(f"Bill {bill_id} not found. Use /bills to see IDs.")
            return
        if bill.paid:
            await update.message.reply_text(f"'{bill.title}' is already paid.")
            return
        bill = bill_db.mark_paid(bill_id)
    except (StoreError, ValueError) as exc:
        logger.error("/paid error: %s", exc)
        await update.message.reply_text(f"Couldn't mark bill {bill_id} as paid. Please try again.")
        return

    await update.message.reply_text(
        f"✅ Marked '*{_md(bill.title)}*' ({_money(bill.amount)}) as paid.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_editbill(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /editbill <id> <field> <value> — change one field of a bill."""
    args = context.args or []
    if len(args) < 3:
        await update.message.reply_text(
            "Usage: /editbill <bill_id> <field> <value>\n"
            "Fields: title, type, amount, due, recurring, notes"
        )
        return

    try:
        bill_id = int(args[0])
    except ValueError:
        await update.message.reply_text("Invalid bill ID. Use /bills to see valid IDs.")
        return

    changes = _parse_bill_edit(args[1], " ".join(args[2:]))
    if changes is None:
        await update.message.reply_text(
            f"Can't set {args[1]} to that value. Fields: title, type, amount, due, recurring, notes"
        )
        return

    bill_db: BillDB = context.bot_data["bill_db"]
    try:
        bill = bill_db.get_bill(bill_id)
        if bill is None or bill.user_id != update.effective_user.id:
            await update.message.reply_text(f"Bill {bill_id} not found. Use /bills to see IDs.")
            return
        bill = bill_db.update_bill(bill_id, **changes)
    except (StoreError, ValueError) as exc:
        logger.error("/editbill error: %s", exc)
        await update.message.reply_text(f"Couldn't update bill {bill_id}. Please try again.")
        return

    await update.message.reply_text(
        f"✏️ Updated bill `{bill.id}`: *{_md(bill.title)}* — {_money(bill.amount)} "
        f"due {bill.due_date.isoformat()}.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_pay(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /pay <bill_id> <amount> [method] [YYYY-MM-DD] [notes] — record a payment."""
    args = context.args or []
    methods = ", ".join(m.value for m in PaymentMethod)
    if len(args) < 2:
        await update.message.reply_text(
            f"Usage: /pay <bill_id> <amount> [method] [YYYY-MM-DD] [notes]\nMethods: {methods}"
        )
        return

    try:
        bill_id = int(args[0])
    except ValueError:
        await update.message.reply_text("Invalid bill ID. Use /bills to see valid IDs.")
        return

    amount = _parse_amount(args[1])
    if amount is None:
        await update.message.reply_text("Amount must be a positive number, e.g. 42.50")
        return

    method = PaymentMethod.CARD
    if len(args) > 2:
        try:
            method = PaymentMethod(args[2].lower())
        except ValueError:
            await update.message.reply_text(f"Unknown payment method. Choose one of: {methods}")
            return

    # Stored as naive local time in TIMEZONE
    now = local_now().replace(tzinfo=None)
    payment_date = now
    if len(args) > 3:
        paid_on = _parse_due_date(args[3])
        if paid_on is None:
            await update.message.reply_text("Please give the payment date like 2026-11-05.")
            return
        payment_date = datetime.combine(paid_on, now.time())
    notes = " ".join(args[4:])

    user_id = update.effective_user.id
    bill_db: BillDB = context.bot_data["bill_db"]
    payment_db: PaymentDB = context.bot_data["payment_db"]
    try:
        bill = bill_db.get_bill(bill_id)
        if bill is None or bill.user_id != user_id:
            await update.message.reply_text(f"Bill {bill_id} not found. Use /bills to see IDs.")
            return
        payment = payment_db.add_payment(
            bill_id=bill_id, amount=amount, payment_date=payment_date,
            payment_method=method, user_id=user_id, notes=notes,
        )
    except (StoreError, ValueError) as exc:
        logger.error("/pay error: %s", exc)
        await update.message.reply_text("Couldn't record the payment. Please try again.")
        return

    await update.message.reply_text(
        f"💳 Recorded {_money(payment.amount)} ({_method_label(payment.payment_method)}) "
        f"on {payment.payment_date:%Y-%m-%d} for '*{_md(bill.title)}*'.\n"
        f"Use /paid {bill.id} once the bill is settled.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_payments(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /payments [YYYY-MM] [method] — list recorded payments."""
    user_id = update.effective_user.id
    month = None
    method = None
    for arg in context.args or []:
        if re.fullmatch(r"\d{4}-\d{2}", arg):
            month = arg
            continue
        try:
            method = PaymentMethod(arg.lower())
        except ValueError:
            await update.message.reply_text("Usage: /payments [YYYY-MM] [method]")
            return

    try:
        bills = context.bot_data["bill_db"].list_bills(user_id=user_id)
        all_payments = context.bot_data["payment_db"].list_payments(user_id=user_id)
    except StoreError as exc:
        logger.error("/payments error: %s", exc)
        await update.message.reply_text("Couldn't load payments. Please try again.")
        return

    months = payment_months(all_payments)
    payments = filter_payments(all_payments, bills, method=method, month=month)
    if not payments:
        text = "No payments found."
        if months:
            text += "\nMonths with payments: " + ", ".join(months)
        await update.message.reply_text(text)
        return

    titles = {b.id: b.title for b in bills}
    total = sum(p.amount for p in payments)
    lines = [f"*Payments* ({len(payments)}, total {_money(total)}):\n"]
    for p in payments:
        title = titles.get(p.bill_id, f"bill #{p.bill_id}")
        line = (
            f"`{p.id}` {p.payment_date:%Y-%m-%d} — {_md(title)}: "
            f"{_money(p.amount)} ({_method_label(p.payment_method)})"
        )
        if p.notes:
            line += f" — _{_md(p.notes)}_"
        lines.append(line)
    if month is None and len(months) > 1:
        lines.append("\nFilter by month: " + ", ".join(months))
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_editpayment(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /editpayment <id> <field> <value> — change one field of a payment."""
    args = context.args or []
    if len(args) < 3:
        await update.message.reply_text(
            "Usage: /editpayment <payment_id> <field> <value>\n"
            "Fields: amount, date, method, notes"
        )
        return

    try:
        payment_id = int(args[0])
    except ValueError:
        await update.message.reply_text("Invalid payment ID. Use /payments to see valid IDs.")
        return

    payment_db: PaymentDB = context.bot_data["payment_db"]
    try:
        payment = payment_db.get_payment(payment_id)
        if payment is None or payment.user_id != update.effective_user.id:
            await update.message.reply_text(
                f"Payment {payment_id} not found. Use /payments to see IDs."
            )
            return

        changes = _parse_payment_edit(args[1], " ".join(args[2:]), payment.payment_date.time())
        if changes is None:
            await update.message.reply_text(
                f"Can't set {args[1]} to that value. Fields: amount, date, method, notes"
            )
            return
        payment = payment_db.update_payment(payment_id, **changes)
    except (StoreError, ValueError) as exc:
        logger.error("/editpayment error: %s", exc)
        await update.message.reply_text(f"Couldn't update payment {payment_id}. Please try again.")
        return

    await update.message.reply_text(
        f"✏️ Updated payment `{payment.id}`: {_money(payment.amount)} "
        f"({_method_label(payment.payment_method)}) on {payment.payment_date:%Y-%m-%d}.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_deletebill(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deletebill — show the user's bills as buttons to pick from."""
    try:
        bills = context.bot_data["bill_db"].list_bills(user_id=update.effective_user.id)
    except StoreError as exc:
        logger.error("/deletebill error: %s", exc)
        await update.message.reply_text("Couldn't load bills. Please try again.")
        return

    if not bills:
        await update.message.reply_text("No bills to delete.")
        return

    keyboard = [
        [InlineKeyboardButton(f"{b.title} ({b.due_date.isoformat()})", callback_data=f"delbill:{b.id}")]
        for b in bills
    ]
    await update.message.reply_text(
        "Which bill do you want to delete?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_deletebill_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete a bill."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    bill_id = int(query.data.split(":")[1])
    bill_db: BillDB = context.bot_data["bill_db"]
    state_db: NotificationStateDB = context.bot_data["state_db"]

    try:
        bill = bill_db.get_bill(bill_id)
        if bill is None or bill.user_id != user.id:
            await query.edit_message_text("Bill not found or already deleted.")
            return
        bill_db.delete_bill(bill_id)
        state_db.clear_for_bill(user.id, bill_id)
    except StoreError as exc:
        logger.error("deletebill callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    await query.edit_message_text(
        f"✅ Bill *{_md(bill.title)}* deleted.\nIts recorded payments are kept.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_deletepayment(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deletepayment — show the latest payments as buttons to pick from."""
    user_id = update.effective_user.id
    try:
        payments = context.bot_data["payment_db"].list_payments(user_id=user_id)
        titles = {
            b.id: b.title for b in context.bot_data["bill_db"].list_bills(user_id=user_id)
        }
    except StoreError as exc:
        logger.error("/deletepayment error: %s", exc)
        await update.message.reply_text("Couldn't load payments. Please try again.")
        return

    if not payments:
        await update.message.reply_text("No payments to delete.")
        return

    keyboard = [
        [InlineKeyboardButton(
            f"{p.payment_date:%Y-%m-%d} {titles.get(p.bill_id, f'bill #{p.bill_id}')} "
            f"{_money(p.amount)}",
            callback_data=f"delpay:{p.id}",
        )]
        for p in payments[:_DELETE_PAYMENT_LIMIT]
    ]
    await update.message.reply_text(
        "Which payment do you want to delete?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_deletepayment_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete a payment."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    payment_id = int(query.data.split(":")[1])
    payment_db: PaymentDB = context.bot_data["payment_db"]

    try:
        payment = payment_db.get_payment(payment_id)
        if payment is None or payment.user_id != user.id:
            await query.edit_message_text("Payment not found or already deleted.")
            return
        payment_db.delete_payment(payment_id)
    except StoreError as exc:
        logger.error("deletepayment callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    await query.edit_message_text(
        f"✅ Payment of {_money(payment.amount)} on {payment.payment_date:%Y-%m-%d} deleted."
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_notifications(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notifications — show notifications with read/dismiss buttons."""
    try:
        views = _views(context, update.effective_user.id)
    except StoreError as exc:
        logger.error("/notifications error: %s", exc)
        await update.message.reply_text("Couldn't load notifications. Please try again.")
        return

    if not views.notifications:
        await update.message.reply_text("No bills need your attention. 🎉")
        return

    keyboard = _notification_keyboard(views.notifications)
    text = format_digest(views.notifications) + f"\n\nUnread: {views.unread_count}"
    await update.message.reply_text(
        text,
        parse_mode="Markdown",
        reply_markup=keyboard,
    )


async def _handle_notification_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the read / dismiss buttons under /notifications."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    _, action, notification_id = query.data.split(":", 2)
    state_db: NotificationStateDB = context.bot_data["state_db"]

    try:
        if action == "read":
            state_db.mark_read(user.id, notification_id)
        else:
            state_db.dismiss(user.id, notification_id)
        views = _views(context, user.id)
    except StoreError as exc:
        logger.error("notification callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    if not views.notifications:
        await query.edit_message_text("No bills need your attention. 🎉")
        return

    keyboard = _notification_keyboard(views.notifications)
    await query.edit_message_text(
        format_digest(views.notifications) + f"\n\nUnread: {views.unread_count}",
        parse_mode="Markdown",
        reply_markup=keyboard,
    )


@authorized_only
async def cmd_readall(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /readall — mark every current notification as read."""
    user_id = update.effective_user.id
    try:
        views = _views(context, user_id)
        ids = [n.id for n in views.notifications if not n.read]
        if ids:
            context.bot_data["state_db"].mark_all_read(user_id, ids)
    except StoreError as exc:
        logger.error("/readall error: %s", exc)
        await update.message.reply_text("Couldn't update notifications. Please try again.")
        return

    await update.message.reply_text(f"Marked {len(ids)} notification(s) as read.")


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


def _format_analytics(views: DerivedViews) -> str:
    s = views.spending
    trend = "📈" if s.monthly_change_pct >= 0 else "📉"
    lines = [
        "*Spending analytics*\n",
        f"This month: *{_money(s.current_month_total)}* "
        f"{trend} {abs(s.monthly_change_pct):.1f}% vs last month",
        f"Average monthly: {_money(s.average_monthly)} (last {s.months_considered} months)",
        f"Total paid: {_money(s.total_paid)} ({s.payment_count} payments)",
        f"Pending bills: {_money(s.total_pending)} ({s.pending_count} bills)",
    ]

    lines.append("\n*Monthly:*")
    lines.extend(
        f"{m.label}: {_money(m.amount)} ({m.count})" for m in views.monthly
    )

    if views.by_type:
        lines.append("\n*By utility:*")
        lines.extend(
            f"{_UTILITY_ICON[c.utility_type]} {c.utility_type.value.capitalize()}: "
            f"{_money(c.total_amount)} across {c.count} bill(s), avg {_money(c.average)}"
            for c in views.by_type
        )

    if views.by_method:
        lines.append("\n*By payment method:*")
        lines.extend(
            f"{_method_label(m.payment_method).capitalize()}: {_money(m.total_amount)}"
            for m in views.by_method
        )
    return "\n".join(lines)


@authorized_only
async def cmd_analytics(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /analytics — spending summary, monthly trend and breakdowns."""
    try:
        views = _views(context, update.effective_user.id)
    except StoreError as exc:
        logger.error("/analytics error: %s", exc)
        await update.message.reply_text("Couldn't load analytics. Please try again.")
        return

    await update.message.reply_text(_format_analytics(views), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# /addbill conversation
# ---------------------------------------------------------------------------

# ConversationHandler states for /addbill
(
    BILL_TITLE,
    BILL_TYPE,
    BILL_AMOUNT,
    BILL_DUE,
    BILL_RECURRING,
    BILL_NOTES,
) = range(6)

_BILL_KEYS = ("bill_title", "bill_type", "bill_amount", "bill_due", "bill_recurring")


def _clear_bill_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for k in _BILL_KEYS:
        context.user_data.pop(k, None)


@authorized_only
async def cmd_addbill(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Start /addbill — ask for the bill title."""
    _clear_bill_data(context)
    await update.message.reply_text("What's the bill called? (e.g. 'City Water')\n/cancel to stop.")
    return BILL_TITLE


async def addbill_title(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    title = update.message.text.strip()
    if not title:
        await update.message.reply_text("Bill title is required.")
        return BILL_TITLE
    context.user_data["bill_title"] = title
    types = ", ".join(t.value for t in UtilityType)
    await update.message.reply_text(f"Which utility? ({types})")
    return BILL_TYPE


async def addbill_type(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        utility_type = UtilityType(update.message.text.strip().lower())
    except ValueError:
        types = ", ".join(t.value for t in UtilityType)
        await update.message.reply_text(f"Please choose one of: {types}")
        return BILL_TYPE
    context.user_data["bill_type"] = utility_type
    await update.message.reply_text("How much is it?")
    return BILL_AMOUNT


async def addbill_amount(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    amount = _parse_amount(update.message.text)
    if amount is None:
        await update.message.reply_text("Amount must be a positive number, e.g. 42.50")
        return BILL_AMOUNT
    context.user_data["bill_amount"] = amount
    await update.message.reply_text("When is it due? (YYYY-MM-DD)")
    return BILL_DUE


async def addbill_due(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    due = _parse_due_date(update.message.text)
    if due is None:
        await update.message.reply_text("Please send a date like 2026-11-05.")
        return BILL_DUE
    context.user_data["bill_due"] = due
    await update.message.reply_text("Does it repeat? (no, monthly, quarterly, annually)")
    return BILL_RECURRING


async def addbill_recurring(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    parsed = _parse_recurrence(update.message.text)
    if parsed is None:
        await update.message.reply_text("Please answer no, monthly, quarterly or annually.")
        return BILL_RECURRING
    context.user_data["bill_recurring"] = parsed
    await update.message.reply_text("Any notes? Send '-' for none.")
    return BILL_NOTES


async def addbill_notes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    is_recurring, period = context.user_data["bill_recurring"]

    bill_db: BillDB = context.bot_data["bill_db"]
    try:
        bill = bill_db.add_bill(
            title=context.user_data["bill_title"],
            utility_type=context.user_data["bill_type"],
            amount=context.user_data["bill_amount"],
            due_date=context.user_data["bill_due"],
            user_id=update.effective_user.id,
            is_recurring=is_recurring,
            recurring_period=period,
            notes=_parse_notes(update.message.text),
        )
    except (StoreError, ValueError) as exc:
        logger.error("/addbill error: %s", exc)
        await update.message.reply_text("Couldn't save the bill. Please try again.")
        _clear_bill_data(context)
        return ConversationHandler.END

    _clear_bill_data(context)
    await update.message.reply_text(
        f"✅ Added bill `{bill.id}`: *{_md(bill.title)}* — {_money(bill.amount)} "
        f"due {bill.due_date.isoformat()}.",
        parse_mode="Markdown",
    )
    return ConversationHandler.END


async def addbill_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_bill_data(context)
    await update.message.reply_text("Bill creation cancelled.")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    bill_db: BillDB | None = None,
    payment_db: PaymentDB | None = None,
    state_db: NotificationStateDB | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Stores default to SQLite at DATABASE_PATH; the notifier defaults to a
    TelegramNotifier around the app's own bot.
    """
    from src.data.db import BillDB, NotificationStateDB, PaymentDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    app.bot_data["bill_db"] = bill_db or BillDB()
    app.bot_data["payment_db"] = payment_db or PaymentDB()
    app.bot_data["state_db"] = state_db or NotificationStateDB()
    app.bot_data["notifier"] = notifier
    app.bot_data["pipelines"] = {}

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("bills", cmd_bills))
    app.add_handler(CommandHandler("paid", cmd_paid))
    app.add_handler(CommandHandler("editbill", cmd_editbill))
    app.add_handler(CommandHandler("deletebill", cmd_deletebill))
    app.add_handler(CommandHandler("pay", cmd_pay))
    app.add_handler(CommandHandler("payments", cmd_payments))
    app.add_handler(CommandHandler("editpayment", cmd_editpayment))
    app.add_handler(CommandHandler("deletepayment", cmd_deletepayment))
    app.add_handler(CommandHandler("notifications", cmd_notifications))
    app.add_handler(CommandHandler("readall", cmd_readall))
    app.add_handler(CommandHandler("analytics", cmd_analytics))
    app.add_handler(CallbackQueryHandler(_handle_deletebill_callback, pattern=r"^delbill:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_deletepayment_callback, pattern=r"^delpay:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_notification_callback, pattern=r"^notif:(read|dismiss):"))

    # /addbill conversation handler
    _text = filters.TEXT & ~filters.COMMAND
    addbill_conv = ConversationHandler(
        entry_points=[CommandHandler("addbill", cmd_addbill)],
        states={
            BILL_TITLE: [MessageHandler(_text, addbill_title)],
            BILL_TYPE: [MessageHandler(_text, addbill_type)],
            BILL_AMOUNT: [MessageHandler(_text, addbill_amount)],
            BILL_DUE: [MessageHandler(_text, addbill_due)],
            BILL_RECURRING: [MessageHandler(_text, addbill_recurring)],
            BILL_NOTES: [MessageHandler(_text, addbill_notes)],
        },
        fallbacks=[CommandHandler("cancel", addbill_cancel)],
    )
    app.add_handler(addbill_conv)

    _setup_daily_reminders(app, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_daily_reminders(app: Application, notifier: NotificationPort) -> None:
    """Register the daily bill reminder job at REMINDER_HOUR in TIMEZONE."""
    from src.core.scheduler import send_daily_reminders

    tz = ZoneInfo(settings.TIMEZONE)
    reminder_time = dt_time(hour=settings.REMINDER_HOUR, minute=0, tzinfo=tz)

    async def _reminder_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_daily_reminders(
            notifier,
            context.bot_data["bill_db"],
            context.bot_data["state_db"],
        )

    app.job_queue.run_daily(
        _reminder_job_callback,
        time=reminder_time,
        name="daily_bill_reminders",
    )

    logger.info(
        "Daily bill reminders scheduled at %02d:00 %s",
        settings.REMINDER_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting BillTrack bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
