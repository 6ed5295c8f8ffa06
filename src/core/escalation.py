"""
Life Admin — Escalation Policy.

Pure functions that decide which reminders an obligation deserves:

- at creation time, day-denominated reminders at fixed lead times that get
  denser with risk level;
- in the hourly sweep, an hour-denominated reminder for anything due within
  the next 24 hours;
- in the daily sweep, an immediate escalation (reminder + push payload) for
  high-risk obligations that have just gone overdue.

Lead times already in the past are skipped, never back-filled.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.data.models import Obligation, ReminderDraft, RiskLevel

LEAD_TIMES: dict[RiskLevel, tuple[int, ...]] = {
    RiskLevel.HIGH: (14, 7, 3, 1),
    RiskLevel.MEDIUM: (7, 3, 1),
    RiskLevel.LOW: (3, 1),
}

URGENT_WINDOW = timedelta(hours=24)

_DAY = timedelta(days=1)
_HOUR = timedelta(hours=1)


@dataclass(frozen=True)
class Escalation:
    """An overdue escalation: the reminder to persist and the push payload to send."""

    reminder: ReminderDraft
    notification: dict


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''}"


def days_until(due: datetime, now: datetime) -> int:
    """Whole days until `due`, rounded up (negative once past)."""
    return math.ceil((due - now) / _DAY)


def hours_until(due: datetime, now: datetime) -> int:
    """Whole hours until `due`, rounded up (negative once past)."""
    return math.ceil((due - now) / _HOUR)


def build_reminders(obligation: Obligation, days_until_due: int) -> list[ReminderDraft]:
    """Creation-time reminders for every lead time that is still in the future."""
    reminders: list[ReminderDraft] = []
    for lead in LEAD_TIMES[obligation.risk_level]:
        if days_until_due <= lead:
            continue
        description = f"{obligation.title} is due in {_plural(lead, 'day')}."
        if obligation.consequence:
            description += f" Consequence: {obligation.consequence}"
        reminders.append(
            ReminderDraft(
                title=f"Reminder: {obligation.title}",
                description=description,
                reminder_time=obligation.due_date - timedelta(days=lead),
                obligation_id=obligation.id,
            )
        )
    return reminders


def is_urgent(obligation: Obligation, now: datetime) -> bool:
    """Due within the next 24 hours, or high risk regardless of due date."""
    if obligation.risk_level is RiskLevel.HIGH:
        return True
    return now < obligation.due_date <= now + URGENT_WINDOW


def build_urgent_reminder(obligation: Obligation, now: datetime) -> ReminderDraft | None:
    """Hour-denominated reminder, or None when the obligation is not inside the window.

    The hour count is measured from the top of the current clock hour, so every
    run within one hour produces the same title and the title dedupe in the
    urgent sweep holds. The next clock hour yields a new count and a new reminder.
    """
    if not now < obligation.due_date <= now + URGENT_WINDOW:
        return None
    hour_start = now.replace(minute=0, second=0, microsecond=0)
    hours = min(hours_until(obligation.due_date, hour_start), 24)
    return ReminderDraft(
        title=f"URGENT: {obligation.title} due in {_plural(hours, 'hour')}",
        description=obligation.consequence or "Action required soon.",
        reminder_time=now,
        obligation_id=obligation.id,
    )


def build_overdue_escalation(obligation: Obligation, now: datetime) -> Escalation | None:
    """Immediate escalation for a high-risk overdue obligation; None for lower risk."""
    if obligation.risk_level is not RiskLevel.HIGH:
        return None

    days_overdue = max(1, math.ceil((now - obligation.due_date) / _DAY))
    overdue_text = f"{obligation.title} is {_plural(days_overdue, 'day')} overdue"
    reminder = ReminderDraft(
        title=f"URGENT: {overdue_text}",
        description=(
            "High-risk obligation overdue. "
            f"{obligation.consequence or 'Immediate action required.'}"
        ),
        reminder_time=now,
        obligation_id=obligation.id,
    )
    notification = {
        "title": "Urgent: Overdue Obligation",
        "body": overdue_text,
        "data": {"obligation_id": obligation.id, "type": "overdue"},
    }
    return Escalation(reminder=reminder, notification=notification)
