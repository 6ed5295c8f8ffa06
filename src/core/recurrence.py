"""
Life Admin — Recurrence Generator.

Pure date arithmetic for recurring obligations. Periods are calendar-aware:
monthly on the 31st lands on the last day of a shorter month, yearly on
Feb 29 lands on Feb 28. Steps are taken on the local calendar of the
configured TIMEZONE, so "the 31st" means the 31st where the user lives,
not in UTC. The same arithmetic is used both when an obligation
is completed and when the renewal sweep decides whether a renewal is due.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from src.data.models import (
    Frequency,
    Obligation,
    ObligationDraft,
    ObligationStatus,
)

_PERIODS: dict[Frequency, relativedelta] = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.YEARLY: relativedelta(years=1),
}


def advance(when: datetime, frequency: Frequency, tz_name: str | None = None) -> datetime:
    """Return `when` moved forward by one period of `frequency`, in UTC.

    The step is applied to the local wall-clock time in `tz_name`
    (default: settings.TIMEZONE) and converted back afterwards.
    """
    if tz_name is None:
        from src.config import settings
        tz_name = settings.TIMEZONE
    local = when.astimezone(ZoneInfo(tz_name))
    return (local + _PERIODS[Frequency(frequency)]).astimezone(timezone.utc)


def build_next_occurrence(obligation: Obligation) -> ObligationDraft:
    """Draft the next-cycle obligation. Has no store access and does no dedupe."""
    if not obligation.is_recurring:
        raise ValueError(f"Obligation {obligation.id} is not recurring")

    return ObligationDraft(
        title=obligation.title,
        category=obligation.category,
        type=obligation.type,
        frequency=obligation.frequency,
        due_date=advance(obligation.due_date, obligation.frequency),
        risk_level=obligation.risk_level,
        consequence=obligation.consequence,
    )


def renewal_due(obligation: Obligation, now: datetime) -> bool:
    """True once a full period has passed since the obligation was last completed."""
    if obligation.status is not ObligationStatus.COMPLETED:
        return False
    if not obligation.is_recurring or obligation.last_completed_at is None:
        return False
    return now >= advance(obligation.last_completed_at, obligation.frequency)
