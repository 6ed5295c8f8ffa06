"""
Life Admin — Deadline Scheduler.

Three independent recurring jobs:

- Deadline sweep (daily): flips overdue obligations and escalates the
  high-risk ones with an immediate reminder and a push notification.
- Urgent sweep (hourly): hour-denominated reminders for obligations due
  within the next 24 hours.
- Renewal sweep (daily): backstop that spawns the next cycle of completed
  recurring obligations whose period has elapsed.

Every sweep is safe to re-run: status filters and dedupe checks make a second
pass over the same window a no-op. Each owner (or obligation) is an
independent unit of work; units run concurrently and a failing unit is
logged without stopping the others. Only a failure of the initial store scan
aborts a tick, and the next tick simply rescans.

The sweeps are plain coroutines so they can also be triggered on demand;
ObligationScheduler binds them to the python-telegram-bot JobQueue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from datetime import time as dt_time
from typing import TYPE_CHECKING, Any, Awaitable, Iterable
from zoneinfo import ZoneInfo

from src.core.escalation import (
    build_overdue_escalation,
    build_urgent_reminder,
    is_urgent,
)
from src.core.recurrence import renewal_due
from src.data.models import Obligation, RiskLevel, utcnow

if TYPE_CHECKING:
    from telegram.ext import ContextTypes, Job, JobQueue

    from src.core.dispatcher import NotificationDispatcher
    from src.core.lifecycle import ObligationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeadlineSweepReport:
    overdue_count: int
    urgent_count: int
    escalated_count: int


@dataclass(frozen=True)
class UrgentSweepReport:
    urgent_count: int
    reminders_created: int


@dataclass(frozen=True)
class RenewalSweepReport:
    renewed_count: int


def _group_by_owner(obligations: Iterable[Obligation]) -> dict[int, list[Obligation]]:
    grouped: dict[int, list[Obligation]] = defaultdict(list)
    for obligation in obligations:
        grouped[obligation.owner_id].append(obligation)
    return dict(grouped)


async def _run_units(label: str, units: dict[int, Awaitable[Any]]) -> dict[int, Any]:
    """Await independent units concurrently; failed units are logged and left out."""
    keys = list(units)
    results = await asyncio.gather(*units.values(), return_exceptions=True)
    succeeded: dict[int, Any] = {}
    for key, result in zip(keys, results):
        if isinstance(result, Exception):
            logger.error("%s: unit %s failed: %s", label, key, result)
            continue
        succeeded[key] = result
    return succeeded


# ---------------------------------------------------------------------------
# Deadline sweep (daily)
# ---------------------------------------------------------------------------


async def _escalate_owner(
    service: ObligationService,
    dispatcher: NotificationDispatcher,
    owner_id: int,
    obligations: list[Obligation],
    now: datetime,
) -> int:
    escalations = [
        escalation
        for escalation in (build_overdue_escalation(o, now) for o in obligations)
        if escalation is not None
    ]
    if not escalations:
        return 0

    await service.create_reminders(owner_id, [e.reminder for e in escalations])
    for escalation in escalations:
        await dispatcher.deliver(owner_id, escalation.notification)
    return len(escalations)


async def run_deadline_sweep(
    service: ObligationService,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> DeadlineSweepReport:
    """Flip overdue obligations, then escalate the newly overdue high-risk ones per owner."""
    now = now or utcnow()
    logger.info("Running deadline sweep...")

    overdue = await service.check_overdue_obligations(now)
    high_risk = _group_by_owner(o for o in overdue if o.risk_level is RiskLevel.HIGH)
    escalated = await _run_units(
        "deadline sweep",
        {
            owner_id: _escalate_owner(service, dispatcher, owner_id, obligations, now)
            for owner_id, obligations in high_risk.items()
        },
    )

    active = await service.scan_active()
    report = DeadlineSweepReport(
        overdue_count=len(overdue),
        urgent_count=sum(1 for o in active if is_urgent(o, now)),
        escalated_count=sum(escalated.values()),
    )
    logger.info(
        "Deadline sweep completed: %d overdue, %d urgent, %d escalated",
        report.overdue_count, report.urgent_count, report.escalated_count,
    )
    return report


# ---------------------------------------------------------------------------
# Urgent sweep (hourly)
# ---------------------------------------------------------------------------


async def _remind_owner(
    service: ObligationService, owner_id: int, obligations: list[Obligation], now: datetime,
) -> int:
    drafts = [
        draft
        for draft in (build_urgent_reminder(o, now) for o in obligations)
        if draft is not None
    ]
    created = await service.create_reminders(owner_id, drafts, dedupe=True)
    return len(created)


async def run_urgent_sweep(
    service: ObligationService, now: datetime | None = None,
) -> UrgentSweepReport:
    """Create "due in N hours" reminders for urgent obligations inside the 24h window."""
    now = now or utcnow()
    logger.info("Running urgent deadline sweep...")

    urgent = [o for o in await service.scan_active() if is_urgent(o, now)]
    created = await _run_units(
        "urgent sweep",
        {
            owner_id: _remind_owner(service, owner_id, obligations, now)
            for owner_id, obligations in _group_by_owner(urgent).items()
        },
    )

    report = UrgentSweepReport(
        urgent_count=len(urgent),
        reminders_created=sum(created.values()),
    )
    logger.info(
        "Urgent sweep completed: %d urgent, %d reminders created",
        report.urgent_count, report.reminders_created,
    )
    return report


# ---------------------------------------------------------------------------
# Renewal sweep (daily)
# ---------------------------------------------------------------------------


async def run_renewal_sweep(
    service: ObligationService, now: datetime | None = None,
) -> RenewalSweepReport:
    """Spawn missing next cycles for completed recurring obligations whose period elapsed."""
    now = now or utcnow()
    logger.info("Running recurring obligations renewal...")

    due = [o for o in await service.scan_completed_recurring() if renewal_due(o, now)]
    renewed = await _run_units(
        "renewal sweep",
        {o.id: service.generate_next_recurrence(o, now=now) for o in due},
    )

    report = RenewalSweepReport(
        renewed_count=sum(1 for successor in renewed.values() if successor is not None),
    )
    logger.info("Recurring renewal completed: %d renewed", report.renewed_count)
    return report


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------


def _next_top_of_hour(now: datetime) -> datetime:
    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)


class ObligationScheduler:
    """Owns the three named sweep jobs on a python-telegram-bot JobQueue."""

    DEADLINE_JOB = "deadline_sweep"
    URGENT_JOB = "urgent_sweep"
    RENEWAL_JOB = "renewal_sweep"

    def __init__(
        self,
        job_queue: JobQueue,
        service: ObligationService,
        dispatcher: NotificationDispatcher,
        timezone_name: str | None = None,
        deadline_hour: int | None = None,
        renewal_hour: int | None = None,
        urgent_interval_minutes: int | None = None,
    ) -> None:
        from src.config import settings

        self._job_queue = job_queue
        self._service = service
        self._dispatcher = dispatcher
        self._tz = ZoneInfo(timezone_name or settings.TIMEZONE)
        self._deadline_hour = (
            settings.DEADLINE_SWEEP_HOUR if deadline_hour is None else deadline_hour
        )
        self._renewal_hour = (
            settings.RENEWAL_SWEEP_HOUR if renewal_hour is None else renewal_hour
        )
        self._urgent_interval = timedelta(
            minutes=urgent_interval_minutes or settings.URGENT_SWEEP_INTERVAL_MINUTES
        )
        self._jobs: list[Job] = []

    @property
    def running(self) -> bool:
        return bool(self._jobs)

    def start(self) -> None:
        """Register the three jobs. Calling start() twice does not double-register."""
        if self._jobs:
            logger.warning("Scheduler already started, ignoring")
            return

        self._jobs = [
            self._job_queue.run_daily(
                self._deadline_job,
                time=dt_time(hour=self._deadline_hour, minute=0, tzinfo=self._tz),
                name=self.DEADLINE_JOB,
            ),
            self._job_queue.run_repeating(
                self._urgent_job,
                interval=self._urgent_interval,
                first=_next_top_of_hour(datetime.now(timezone.utc)),
                name=self.URGENT_JOB,
            ),
            self._job_queue.run_daily(
                self._renewal_job,
                time=dt_time(hour=self._renewal_hour, minute=0, tzinfo=self._tz),
                name=self.RENEWAL_JOB,
            ),
        ]
        logger.info(
            "Scheduler started: deadline sweep %02d:00, renewal sweep %02d:00 %s, "
            "urgent sweep every %d min",
            self._deadline_hour, self._renewal_hour, self._tz.key,
            self._urgent_interval.total_seconds() // 60,
        )

    def stop(self) -> None:
        """Remove the jobs. An in-flight sweep is abandoned; the next start rescans."""
        for job in self._jobs:
            job.schedule_removal()
        self._jobs = []
        logger.info("Scheduler stopped")

    # Each job callback contains its own failure so one job never affects the others.

    async def _deadline_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await run_deadline_sweep(self._service, self._dispatcher)
        except Exception as exc:
            logger.error("Deadline sweep tick failed: %s", exc)

    async def _urgent_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await run_urgent_sweep(self._service)
        except Exception as exc:
            logger.error("Urgent sweep tick failed: %s", exc)

    async def _renewal_job(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await run_renewal_sweep(self._service)
        except Exception as exc:
            logger.error("Renewal sweep tick failed: %s", exc)
