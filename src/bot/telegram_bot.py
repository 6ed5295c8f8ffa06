"""
Life Admin — Telegram Bot.

Telegram is the user surface and the push channel. Users paste free text to
capture obligations, and /start subscribes their chat to deadline alerts.
All lifecycle logic lives in ObligationService; handlers here only parse
arguments and format replies.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.helpers import escape_markdown
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core.errors import ObligationNotFound
from src.data.models import ObligationStatus, RiskLevel

if TYPE_CHECKING:
    from src.core.dispatcher import NotificationDispatcher
    from src.core.lifecycle import ObligationService
    from src.data.models import Obligation
    from src.ports.notification_port import PushTransport

logger = logging.getLogger(__name__)

_RISK_BADGES = {RiskLevel.HIGH: "🔴", RiskLevel.MEDIUM: "🟡", RiskLevel.LOW: "🟢"}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_obligation(obligation: Obligation) -> str:
    local_due = obligation.due_date.astimezone(ZoneInfo(settings.TIMEZONE))
    title = escape_markdown(obligation.title)
    line = (
        f"`{obligation.id}` {_RISK_BADGES[obligation.risk_level]} {title} "
        f"— due {local_due:%Y-%m-%d %H:%M}"
    )
    if obligation.status is ObligationStatus.OVERDUE:
        line += " *(overdue)*"
    if obligation.frequency is not None:
        line += f" ↻ {obligation.frequency.value}"
    return line


def _parse_id(args: list[str] | None) -> int | None:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


def _service(context: ContextTypes.DEFAULT_TYPE) -> ObligationService:
    return context.bot_data["service"]


def _dispatcher(context: ContextTypes.DEFAULT_TYPE) -> NotificationDispatcher:
    return context.bot_data["dispatcher"]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — subscribe this chat to deadline alerts."""
    await _dispatcher(context).subscribe(
        update.effective_user.id, {"chat_id": update.effective_chat.id},
    )
    await update.message.reply_text(
        "Welcome to *Life Admin*!\n\n"
        "I keep track of your renewals, payments and deadlines:\n"
        "• Send me a message describing an obligation and I'll track it\n"
        "• Use /obligations to see what's open, /done to complete one\n"
        "• You'll get alerts here when something high-risk is overdue\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stop — unsubscribe from push alerts."""
    removed = await _dispatcher(context).unsubscribe(update.effective_user.id)
    if removed:
        await update.message.reply_text("Alerts turned off. Use /start to turn them back on.")
    else:
        await update.message.reply_text("Alerts were already off.")


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/obligations — List open obligations\n"
        "/reminders — List upcoming reminders\n"
        "/done <id> — Mark an obligation as completed\n"
        "/delete <id> — Delete an obligation\n"
        "/stats — Show your obligation summary\n"
        "/check — Run the deadline check now\n"
        "/start — Turn alerts on\n"
        "/stop — Turn alerts off\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_obligations(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /obligations — list overdue then active obligations."""
    service = _service(context)
    owner_id = update.effective_user.id
    try:
        overdue = await service.list_obligations(owner_id, status=ObligationStatus.OVERDUE)
        active = await service.list_obligations(owner_id, status=ObligationStatus.ACTIVE)
    except Exception as exc:
        logger.error("/obligations error: %s", exc)
        await update.message.reply_text("Couldn't load obligations. Please try again.")
        return

    if not overdue and not active:
        await update.message.reply_text("Nothing open. Enjoy the quiet!")
        return

    lines = ["*Open obligations:*\n"]
    lines.extend(_format_obligation(o) for o in [*overdue, *active])
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_reminders(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reminders — list active reminders by fire time."""
    reminders = await _service(context).list_reminders(update.effective_user.id)
    if not reminders:
        await update.message.reply_text("No reminders scheduled.")
        return

    tz = ZoneInfo(settings.TIMEZONE)
    lines = ["*Upcoming reminders:*\n"]
    lines.extend(
        f"{r.reminder_time.astimezone(tz):%Y-%m-%d %H:%M} {escape_markdown(r.title)}"
        for r in reminders
    )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <id> — complete an obligation."""
    obligation_id = _parse_id(context.args)
    if obligation_id is None:
        await update.message.reply_text("Usage: /done <id>\nUse /obligations to see IDs.")
        return

    try:
        obligation = await _service(context).complete_obligation(
            update.effective_user.id, obligation_id,
        )
    except ObligationNotFound:
        await update.message.reply_text(f"No obligation with ID {obligation_id}.")
        return
    except Exception as exc:
        logger.error("/done error: %s", exc)
        await update.message.reply_text("Couldn't complete that obligation. Please try again.")
        return

    reply = f"✅ Completed '*{escape_markdown(obligation.title)}*'."
    if obligation.frequency is not None:
        reply += f" The next {obligation.frequency.value} cycle is scheduled."
    await update.message.reply_text(reply, parse_mode="Markdown")


@authorized_only
async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete <id> — permanently delete an obligation."""
    obligation_id = _parse_id(context.args)
    if obligation_id is None:
        await update.message.reply_text("Usage: /delete <id>\nUse /obligations to see IDs.")
        return

    try:
        await _service(context).delete_obligation(update.effective_user.id, obligation_id)
    except ObligationNotFound:
        await update.message.reply_text(f"No obligation with ID {obligation_id}.")
        return
    await update.message.reply_text(f"Deleted obligation {obligation_id}.")


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats — obligation summary."""
    stats = await _service(context).get_stats(update.effective_user.id)
    await update.message.reply_text(
        "*Your obligations:*\n"
        f"Total: {stats.total}\n"
        f"Active: {stats.active}\n"
        f"Overdue: {stats.overdue}\n"
        f"Completed: {stats.completed}\n"
        f"High risk: {stats.high_risk}\n"
        f"Due within {settings.DUE_SOON_DAYS} days: {stats.due_soon}",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_check(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /check — run the deadline sweep on demand."""
    from src.core.scheduler import run_deadline_sweep

    try:
        report = await run_deadline_sweep(_service(context), _dispatcher(context))
    except Exception as exc:
        logger.error("/check error: %s", exc)
        await update.message.reply_text("Deadline check failed. Please try again later.")
        return

    await update.message.reply_text(
        f"Deadline check done: {report.overdue_count} newly overdue, "
        f"{report.urgent_count} urgent, {report.escalated_count} escalated."
    )


# ---------------------------------------------------------------------------
# Capture: free text → obligations
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Extract obligations and tasks from a free-text message."""
    try:
        result = await _service(context).import_from_text(
            update.effective_user.id, update.message.text,
        )
    except Exception as exc:
        logger.error("Import error: %s", exc)
        await update.message.reply_text(
            "Sorry, something went wrong while reading your message. Please try again."
        )
        return

    if not result.obligations and not result.tasks:
        reply = "I couldn't find any deadline or task in that message."
        if result.rejected:
            reply += " Try including a title and a due date."
        await update.message.reply_text(reply)
        return

    lines: list[str] = []
    if result.obligations:
        lines.append("*Now tracking:*")
        lines.extend(_format_obligation(o) for o in result.obligations)
    if result.tasks:
        lines.append("*Tasks added:*")
        lines.extend(f"• {escape_markdown(t.title)}" for t in result.tasks)
    if result.rejected:
        lines.append(f"\n_{result.rejected} item(s) skipped: missing or invalid details._")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    service: ObligationService | None = None,
    transport: PushTransport | None = None,
) -> Application:
    """Build the Telegram Application, wire the core services and start the scheduler jobs.

    Args:
        service: Obligation service. Defaults to one backed by DATABASE_PATH.
        transport: Push transport. Defaults to TelegramNotifier on this bot.
    """
    from src.core.dispatcher import NotificationDispatcher
    from src.core.scheduler import ObligationScheduler
    from src.data.db import SubscriptionDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if service is None:
        from src.core.lifecycle import ObligationService
        from src.data.db import ObligationDB, ReminderDB, TaskDB
        service = ObligationService(ObligationDB(), ReminderDB(), TaskDB())

    if transport is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        transport = TelegramNotifier(app.bot)

    dispatcher = NotificationDispatcher(SubscriptionDB(), transport)
    scheduler = ObligationScheduler(app.job_queue, service, dispatcher)

    app.bot_data["service"] = service
    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["scheduler"] = scheduler

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("stop", cmd_stop))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("obligations", cmd_obligations))
    app.add_handler(CommandHandler("reminders", cmd_reminders))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("delete", cmd_delete))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CommandHandler("check", cmd_check))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    scheduler.start()

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting Life Admin bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
