"""
Life Admin — Obligation Lifecycle.

ObligationService owns the obligation state machine:

    active ──complete──▶ completed   (recurring: spawns the next cycle)
    active ──sweep─────▶ overdue     (due date passed)
    overdue ─complete──▶ completed

Completed is terminal. Creating an obligation also generates its
preparation tasks and escalation reminders once; edits never regenerate
them, so reminders are not duplicated on every update.

Store calls are synchronous SQLite calls run in worker threads, so every
public method here is a coroutine and sweeps can process owners
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from pydantic import ValidationError

from src.core.errors import ObligationNotFound, ObligationValidationError
from src.core.escalation import build_reminders, days_until, is_urgent
from src.core.preparation import build_preparation_tasks
from src.core.recurrence import build_next_occurrence
from src.data.models import (
    Category,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    ObligationType,
    ObligationUpdate,
    Reminder,
    ReminderDraft,
    RiskLevel,
    Task,
    TaskDraft,
    utcnow,
)

if TYPE_CHECKING:
    from src.data.db import ObligationDB, ReminderDB, TaskDB

logger = logging.getLogger(__name__)

_PAGE_SIZE = 500
_PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class ObligationStats:
    total: int
    active: int
    completed: int
    overdue: int
    high_risk: int
    due_soon: int


@dataclass
class ImportResult:
    """What import_from_text created, and how many candidates it rejected."""

    obligations: list[Obligation] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    rejected: int = 0


def _validate_draft(draft: ObligationDraft | dict) -> ObligationDraft:
    if isinstance(draft, ObligationDraft):
        return draft
    try:
        return ObligationDraft.model_validate(draft)
    except ValidationError as exc:
        raise ObligationValidationError(str(exc)) from exc


class ObligationService:
    """Create, edit, complete and sweep obligations."""

    def __init__(
        self,
        obligations: ObligationDB,
        reminders: ReminderDB,
        tasks: TaskDB,
        extractor: Callable[[str], Awaitable[list[dict]]] | None = None,
        preparation_threshold_days: int | None = None,
        due_soon_days: int | None = None,
    ) -> None:
        if preparation_threshold_days is None or due_soon_days is None:
            from src.config import settings
            if preparation_threshold_days is None:
                preparation_threshold_days = settings.PREPARATION_THRESHOLD_DAYS
            if due_soon_days is None:
                due_soon_days = settings.DUE_SOON_DAYS
        if extractor is None:
            from src.core.extractor import extract_candidates
            extractor = extract_candidates

        self._obligations = obligations
        self._reminders = reminders
        self._tasks = tasks
        self._extract = extractor
        self._preparation_threshold_days = preparation_threshold_days
        self._due_soon_days = due_soon_days

    # ------------------------------------------------------------------
    # Owner-scoped CRUD
    # ------------------------------------------------------------------

    async def create_obligation(
        self,
        owner_id: int,
        draft: ObligationDraft | dict,
        now: datetime | None = None,
    ) -> Obligation:
        """Validate and store a new obligation, then generate its preparation items.

        Raises ObligationValidationError for a bad draft.
        """
        draft = _validate_draft(draft)
        obligation = await asyncio.to_thread(self._obligations.add_obligation, owner_id, draft)
        await self._generate_preparation_items(obligation, now or utcnow())
        return obligation

    async def get_obligation(self, owner_id: int, obligation_id: int) -> Obligation:
        obligation = await asyncio.to_thread(
            self._obligations.get_obligation, owner_id, obligation_id,
        )
        if obligation is None:
            raise ObligationNotFound(owner_id, obligation_id)
        return obligation

    async def list_obligations(
        self,
        owner_id: int,
        status: ObligationStatus | None = None,
        category: Category | None = None,
        type: ObligationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Obligation]:
        return await asyncio.to_thread(
            self._obligations.list_obligations,
            owner_id, status, category, type, limit, offset,
        )

    async def update_obligation(
        self,
        owner_id: int,
        obligation_id: int,
        changes: ObligationUpdate | dict,
    ) -> Obligation:
        """Apply a field-level edit. Preparation tasks and reminders are not regenerated."""
        existing = await self.get_obligation(owner_id, obligation_id)
        try:
            if not isinstance(changes, ObligationUpdate):
                changes = ObligationUpdate.model_validate(changes)
            merged = changes.apply_to(existing)
        except ValidationError as exc:
            raise ObligationValidationError(str(exc)) from exc

        updated = await asyncio.to_thread(
            self._obligations.update_obligation, owner_id, obligation_id, merged,
        )
        if updated is None:
            raise ObligationNotFound(owner_id, obligation_id)
        return updated

    async def delete_obligation(self, owner_id: int, obligation_id: int) -> None:
        deleted = await asyncio.to_thread(
            self._obligations.delete_obligation, owner_id, obligation_id,
        )
        if not deleted:
            raise ObligationNotFound(owner_id, obligation_id)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    async def complete_obligation(
        self, owner_id: int, obligation_id: int, now: datetime | None = None,
    ) -> Obligation:
        """Mark an active or overdue obligation completed.

        Recurring obligations immediately get their next cycle. Completing an
        already-completed obligation returns it unchanged and spawns nothing.
        """
        now = now or utcnow()
        obligation = await self.get_obligation(owner_id, obligation_id)

        flipped = await asyncio.to_thread(
            self._obligations.mark_completed, owner_id, obligation_id, now,
        )
        if not flipped:
            logger.info("Obligation #%d already completed, nothing to do", obligation_id)
            return await self.get_obligation(owner_id, obligation_id)

        if obligation.is_recurring:
            await self.generate_next_recurrence(obligation, now=now)

        return await self.get_obligation(owner_id, obligation_id)

    async def generate_next_recurrence(
        self, obligation: Obligation, now: datetime | None = None,
    ) -> Obligation | None:
        """Create the next cycle of a recurring obligation unless it already exists."""
        draft = build_next_occurrence(obligation)
        existing = await asyncio.to_thread(
            self._obligations.find_successor,
            obligation.owner_id, draft.title, draft.due_date, obligation.id,
        )
        if existing is not None:
            logger.info(
                "Next cycle of #%d already exists as #%d, skipping",
                obligation.id, existing.id,
            )
            return None

        successor = await self.create_obligation(obligation.owner_id, draft, now=now)
        logger.info(
            "Recurring obligation #%d renewed as #%d (%s)",
            obligation.id, successor.id, obligation.frequency.value,
        )
        return successor

    async def check_overdue_obligations(self, now: datetime | None = None) -> list[Obligation]:
        """Flip every active obligation past its due date to overdue, across all owners.

        Returns only the obligations flipped by this call, so running it again
        without time passing returns an empty list.
        """
        now = now or utcnow()
        candidates = await asyncio.to_thread(
            self._obligations.admin_scan, ObligationStatus.ACTIVE, None, now,
        )
        if not candidates:
            return []

        flipped_ids = set(
            await asyncio.to_thread(
                self._obligations.mark_overdue, [o.id for o in candidates], now,
            )
        )
        return [
            replace(o, status=ObligationStatus.OVERDUE, updated_at=now)
            for o in candidates
            if o.id in flipped_ids
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _all_for_owner(
        self, owner_id: int, status: ObligationStatus | None = None,
    ) -> list[Obligation]:
        results: list[Obligation] = []
        offset = 0
        while True:
            page = await self.list_obligations(
                owner_id, status=status, limit=_PAGE_SIZE, offset=offset,
            )
            results.extend(page)
            if len(page) < _PAGE_SIZE:
                return results
            offset += _PAGE_SIZE

    async def get_urgent_obligations(
        self, owner_id: int, now: datetime | None = None,
    ) -> list[Obligation]:
        """Active obligations due within 24 hours, or high risk."""
        now = now or utcnow()
        active = await self._all_for_owner(owner_id, ObligationStatus.ACTIVE)
        return [o for o in active if is_urgent(o, now)]

    async def get_stats(self, owner_id: int, now: datetime | None = None) -> ObligationStats:
        now = now or utcnow()
        obligations = await self._all_for_owner(owner_id)
        active = [o for o in obligations if o.status is ObligationStatus.ACTIVE]
        return ObligationStats(
            total=len(obligations),
            active=len(active),
            completed=sum(1 for o in obligations if o.status is ObligationStatus.COMPLETED),
            overdue=sum(1 for o in obligations if o.status is ObligationStatus.OVERDUE),
            high_risk=sum(1 for o in obligations if o.risk_level is RiskLevel.HIGH),
            due_soon=sum(
                1 for o in active if days_until(o.due_date, now) <= self._due_soon_days
            ),
        )

    # ------------------------------------------------------------------
    # Administrative scans (scheduler only)
    # ------------------------------------------------------------------

    async def scan_active(self) -> list[Obligation]:
        return await asyncio.to_thread(
            self._obligations.admin_scan, ObligationStatus.ACTIVE,
        )

    async def scan_completed_recurring(self) -> list[Obligation]:
        return await asyncio.to_thread(
            self._obligations.admin_scan,
            ObligationStatus.COMPLETED, ObligationType.RECURRING,
        )

    # ------------------------------------------------------------------
    # Reminders and tasks
    # ------------------------------------------------------------------

    async def create_reminders(
        self, owner_id: int, drafts: list[ReminderDraft], dedupe: bool = False,
    ) -> list[Reminder]:
        """Persist reminder drafts.

        With dedupe, a draft is dropped when the same obligation already has an
        active reminder with the same title.
        """
        if dedupe:
            kept: list[ReminderDraft] = []
            for draft in drafts:
                if draft.obligation_id is not None and await asyncio.to_thread(
                    self._reminders.exists_active, owner_id, draft.obligation_id, draft.title,
                ):
                    logger.debug("Reminder '%s' already exists, skipping", draft.title)
                    continue
                kept.append(draft)
            drafts = kept
        if not drafts:
            return []
        return await asyncio.to_thread(self._reminders.create_many, owner_id, drafts)

    async def list_reminders(self, owner_id: int, active_only: bool = True) -> list[Reminder]:
        return await asyncio.to_thread(self._reminders.list_reminders, owner_id, active_only)

    async def _generate_preparation_items(self, obligation: Obligation, now: datetime) -> None:
        """Best-effort: a failure here is logged and never undoes the obligation."""
        days_until_due = days_until(obligation.due_date, now)

        if days_until_due > self._preparation_threshold_days:
            tasks = build_preparation_tasks(obligation, days_until_due)
            if tasks:
                try:
                    await asyncio.to_thread(self._tasks.create_many, obligation.owner_id, tasks)
                except Exception as exc:
                    logger.error(
                        "Failed to create preparation tasks for #%d: %s", obligation.id, exc,
                    )

        reminders = build_reminders(obligation, days_until_due)
        if reminders:
            try:
                await asyncio.to_thread(
                    self._reminders.create_many, obligation.owner_id, reminders,
                )
            except Exception as exc:
                logger.error("Failed to create reminders for #%d: %s", obligation.id, exc)

    # ------------------------------------------------------------------
    # Free-text import
    # ------------------------------------------------------------------

    async def import_from_text(
        self, owner_id: int, raw_text: str, now: datetime | None = None,
    ) -> ImportResult:
        """Extract obligations and tasks from free text and store the valid ones.

        Extracted items get the same validation as manual entry; invalid ones
        are counted in `rejected` and never raise.
        """
        result = ImportResult()
        task_drafts: list[TaskDraft] = []

        for candidate in await self._extract(raw_text):
            payload = {k: v for k, v in candidate.items() if k != "kind"}
            if candidate.get("kind") == "obligation":
                try:
                    obligation = await self.create_obligation(owner_id, payload, now=now)
                except ObligationValidationError as exc:
                    logger.warning("Rejected extracted obligation %s: %s", payload, exc)
                    result.rejected += 1
                    continue
                result.obligations.append(obligation)
            else:
                title = str(payload.get("title") or "").strip()
                if not title:
                    logger.warning("Rejected extracted task without title: %s", payload)
                    result.rejected += 1
                    continue
                priority = payload.get("priority")
                task_drafts.append(
                    TaskDraft(
                        title=title[:200],
                        description=str(payload.get("description") or ""),
                        priority=priority if priority in _PRIORITIES else "medium",
                    )
                )

        if task_drafts:
            result.tasks = await asyncio.to_thread(self._tasks.create_many, owner_id, task_drafts)

        logger.info(
            "Imported %d obligations and %d tasks for owner %d (%d rejected)",
            len(result.obligations), len(result.tasks), owner_id, result.rejected,
        )
        return result
