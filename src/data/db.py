"""
Life Admin — Record Store.

SQLite-backed storage for obligations, reminders, preparation tasks and push
subscriptions. Every owner-facing method is keyed by (owner_id, id); the only
cross-owner reads go through ObligationDB.admin_scan, which the scheduler
sweeps use.

Each call opens its own short-lived connection, so the async layer can run
calls concurrently in worker threads without sharing a connection.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from src.data.models import (
    Category,
    Frequency,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    ObligationType,
    PushSubscription,
    Reminder,
    ReminderDraft,
    RiskLevel,
    Task,
    TaskDraft,
    utcnow,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> str | None:
    """Serialize to fixed-width UTC ISO text so string comparison matches time order."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class _SQLiteStore:
    """Shared connection handling for the table stores below."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        raise NotImplementedError


class ObligationDB(_SQLiteStore):
    """Obligations, scoped per owner, plus an explicit administrative scan."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS obligations (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id          INTEGER NOT NULL,
                    title             TEXT    NOT NULL,
                    category          TEXT    NOT NULL DEFAULT 'other',
                    type              TEXT    NOT NULL DEFAULT 'one_time',
                    frequency         TEXT,
                    due_date          TEXT    NOT NULL,
                    risk_level        TEXT    NOT NULL DEFAULT 'medium',
                    status            TEXT    NOT NULL DEFAULT 'active',
                    consequence       TEXT,
                    last_completed_at TEXT,
                    created_at        TEXT    NOT NULL,
                    updated_at        TEXT    NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_obligations_status_due "
                "ON obligations (status, due_date)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_obligations_owner "
                "ON obligations (owner_id, due_date)"
            )
        logger.debug("Obligations table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_obligation(row: sqlite3.Row) -> Obligation:
        return Obligation(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            category=Category(row["category"]),
            type=ObligationType(row["type"]),
            frequency=Frequency(row["frequency"]) if row["frequency"] else None,
            due_date=_parse_ts(row["due_date"]),
            risk_level=RiskLevel(row["risk_level"]),
            status=ObligationStatus(row["status"]),
            consequence=row["consequence"],
            last_completed_at=_parse_ts(row["last_completed_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def add_obligation(
        self,
        owner_id: int,
        draft: ObligationDraft,
        status: ObligationStatus = ObligationStatus.ACTIVE,
    ) -> Obligation:
        """Insert a validated draft and return the stored record."""
        now = _ts(utcnow())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO obligations
                    (owner_id, title, category, type, frequency, due_date,
                     risk_level, status, consequence, last_completed_at,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    owner_id, draft.title, draft.category.value, draft.type.value,
                    draft.frequency.value if draft.frequency else None,
                    _ts(draft.due_date), draft.risk_level.value, status.value,
                    draft.consequence, now, now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM obligations WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()

        obligation = self._row_to_obligation(row)
        logger.info(
            "Obligation added: #%d '%s' for owner %d, due %s",
            obligation.id, obligation.title, owner_id, row["due_date"],
        )
        return obligation

    def get_obligation(self, owner_id: int, obligation_id: int) -> Obligation | None:
        """Fetch a single obligation, or None if missing or owned by someone else."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM obligations WHERE id = ? AND owner_id = ?",
                (obligation_id, owner_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_obligation(row)

    def list_obligations(
        self,
        owner_id: int,
        status: ObligationStatus | None = None,
        category: Category | None = None,
        type: ObligationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Obligation]:
        """List one owner's obligations ordered by due date, with optional filters."""
        query = "SELECT * FROM obligations WHERE owner_id = ?"
        params: list = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(ObligationStatus(status).value)
        if category is not None:
            query += " AND category = ?"
            params.append(Category(category).value)
        if type is not None:
            query += " AND type = ?"
            params.append(ObligationType(type).value)
        query += " ORDER BY due_date, id LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_obligation(r) for r in rows]

    def update_obligation(
        self, owner_id: int, obligation_id: int, draft: ObligationDraft,
    ) -> Obligation | None:
        """Overwrite the editable fields. Status and completion time are untouched."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE obligations
                   SET title = ?, category = ?, type = ?, frequency = ?,
                       due_date = ?, risk_level = ?, consequence = ?,
                       updated_at = ?
                 WHERE id = ? AND owner_id = ?
                """,
                (
                    draft.title, draft.category.value, draft.type.value,
                    draft.frequency.value if draft.frequency else None,
                    _ts(draft.due_date), draft.risk_level.value, draft.consequence,
                    _ts(utcnow()), obligation_id, owner_id,
                ),
            )
        if cursor.rowcount == 0:
            return None
        logger.info("Obligation #%d updated", obligation_id)
        return self.get_obligation(owner_id, obligation_id)

    def mark_completed(
        self, owner_id: int, obligation_id: int, completed_at: datetime,
    ) -> bool:
        """Flip an active or overdue obligation to completed.

        Returns False when the row is missing or already completed, which
        makes a second completion a no-op.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE obligations
                   SET status = 'completed', last_completed_at = ?, updated_at = ?
                 WHERE id = ? AND owner_id = ? AND status IN ('active', 'overdue')
                """,
                (_ts(completed_at), _ts(completed_at), obligation_id, owner_id),
            )
        completed = cursor.rowcount > 0
        if completed:
            logger.info("Obligation #%d marked completed", obligation_id)
        return completed

    def mark_overdue(self, obligation_ids: list[int], now: datetime) -> list[int]:
        """Flip the given rows to overdue, skipping any that are no longer active.

        Returns the ids that were actually flipped by this call. Each row is a
        single conditional UPDATE judged by its rowcount, so when two sweeps
        overlap only one of them sees a given row flip.
        """
        flipped: list[int] = []
        if not obligation_ids:
            return flipped
        with self._connect() as conn:
            for obligation_id in obligation_ids:
                cursor = conn.execute(
                    """
                    UPDATE obligations SET status = 'overdue', updated_at = ?
                     WHERE id = ? AND status = 'active'
                    """,
                    (_ts(now), obligation_id),
                )
                if cursor.rowcount > 0:
                    flipped.append(obligation_id)
        if flipped:
            logger.info("Marked %d obligations overdue", len(flipped))
        return flipped

    def delete_obligation(self, owner_id: int, obligation_id: int) -> bool:
        """Permanently delete an obligation. Tasks and reminders are left alone."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM obligations WHERE id = ? AND owner_id = ?",
                (obligation_id, owner_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Obligation #%d deleted", obligation_id)
        return deleted

    def find_successor(
        self,
        owner_id: int,
        title: str,
        due_date: datetime,
        exclude_id: int | None = None,
    ) -> Obligation | None:
        """Find an existing obligation with the same owner, title and due date."""
        query = (
            "SELECT * FROM obligations WHERE owner_id = ? AND title = ? AND due_date = ?"
        )
        params: list = [owner_id, title, _ts(due_date)]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        with self._connect() as conn:
            row = conn.execute(query + " LIMIT 1", params).fetchone()
        if row is None:
            return None
        return self._row_to_obligation(row)

    def admin_scan(
        self,
        status: ObligationStatus | None = None,
        type: ObligationType | None = None,
        due_before: datetime | None = None,
    ) -> list[Obligation]:
        """Administrative read across all owners, for scheduler sweeps only."""
        conditions: list[str] = []
        params: list = []
        if status is not None:
            conditions.append("status = ?")
            params.append(ObligationStatus(status).value)
        if type is not None:
            conditions.append("type = ?")
            params.append(ObligationType(type).value)
        if due_before is not None:
            conditions.append("due_date < ?")
            params.append(_ts(due_before))

        query = "SELECT * FROM obligations"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY due_date, id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_obligation(r) for r in rows]


class ReminderDB(_SQLiteStore):
    """Reminders: created in batches, retired by deactivation only."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id      INTEGER NOT NULL,
                    title         TEXT    NOT NULL,
                    description   TEXT    NOT NULL DEFAULT '',
                    reminder_time TEXT    NOT NULL,
                    ai_generated  INTEGER NOT NULL DEFAULT 1,
                    is_active     INTEGER NOT NULL DEFAULT 1,
                    obligation_id INTEGER,
                    created_at    TEXT    NOT NULL
                )
            """)
        logger.debug("Reminders table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            description=row["description"],
            reminder_time=_parse_ts(row["reminder_time"]),
            ai_generated=bool(row["ai_generated"]),
            is_active=bool(row["is_active"]),
            obligation_id=row["obligation_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    def create_many(self, owner_id: int, drafts: list[ReminderDraft]) -> list[Reminder]:
        """Insert a batch of reminders in one transaction."""
        if not drafts:
            return []
        now = _ts(utcnow())
        ids: list[int] = []
        with self._connect() as conn:
            for draft in drafts:
                cursor = conn.execute(
                    """
                    INSERT INTO reminders
                        (owner_id, title, description, reminder_time,
                         ai_generated, is_active, obligation_id, created_at)
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                    """,
                    (
                        owner_id, draft.title, draft.description,
                        _ts(draft.reminder_time), int(draft.ai_generated),
                        draft.obligation_id, now,
                    ),
                )
                ids.append(cursor.lastrowid)

        reminders = [
            Reminder(
                id=reminder_id,
                owner_id=owner_id,
                title=draft.title,
                description=draft.description,
                reminder_time=draft.reminder_time,
                ai_generated=draft.ai_generated,
                is_active=True,
                obligation_id=draft.obligation_id,
                created_at=_parse_ts(now),
            )
            for reminder_id, draft in zip(ids, drafts)
        ]
        logger.info("Created %d reminders for owner %d", len(reminders), owner_id)
        return reminders

    def list_reminders(
        self,
        owner_id: int,
        active_only: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Reminder]:
        """List one owner's reminders ordered by fire time."""
        query = "SELECT * FROM reminders WHERE owner_id = ?"
        params: list = [owner_id]
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY reminder_time, id LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def exists_active(self, owner_id: int, obligation_id: int, title: str) -> bool:
        """Check for an active reminder with the same title for the same obligation."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM reminders
                 WHERE owner_id = ? AND obligation_id = ? AND title = ? AND is_active = 1
                """,
                (owner_id, obligation_id, title),
            ).fetchone()
        return row is not None

    def deactivate(self, owner_id: int, reminder_id: int) -> bool:
        """Retire a reminder."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET is_active = 0 WHERE id = ? AND owner_id = ? AND is_active = 1",
                (reminder_id, owner_id),
            )
        return cursor.rowcount > 0


class TaskDB(_SQLiteStore):
    """Preparation tasks generated ahead of obligations."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id      INTEGER NOT NULL,
                    title         TEXT    NOT NULL,
                    description   TEXT    NOT NULL DEFAULT '',
                    priority      TEXT    NOT NULL DEFAULT 'medium',
                    status        TEXT    NOT NULL DEFAULT 'pending',
                    ai_generated  INTEGER NOT NULL DEFAULT 1,
                    obligation_id INTEGER,
                    created_at    TEXT    NOT NULL
                )
            """)
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            status=row["status"],
            ai_generated=bool(row["ai_generated"]),
            obligation_id=row["obligation_id"],
            created_at=_parse_ts(row["created_at"]),
        )

    def create_many(self, owner_id: int, drafts: list[TaskDraft]) -> list[Task]:
        """Insert a batch of tasks in one transaction."""
        if not drafts:
            return []
        now = _ts(utcnow())
        ids: list[int] = []
        with self._connect() as conn:
            for draft in drafts:
                cursor = conn.execute(
                    """
                    INSERT INTO tasks
                        (owner_id, title, description, priority, status,
                         ai_generated, obligation_id, created_at)
                    VALUES (?, ?, ?, ?, 'pending', ?, ?, ?)
                    """,
                    (
                        owner_id, draft.title, draft.description, draft.priority,
                        int(draft.ai_generated), draft.obligation_id, now,
                    ),
                )
                ids.append(cursor.lastrowid)

        tasks = [
            Task(
                id=task_id,
                owner_id=owner_id,
                title=draft.title,
                description=draft.description,
                priority=draft.priority,
                status="pending",
                ai_generated=draft.ai_generated,
                obligation_id=draft.obligation_id,
                created_at=_parse_ts(now),
            )
            for task_id, draft in zip(ids, drafts)
        ]
        logger.info("Created %d tasks for owner %d", len(tasks), owner_id)
        return tasks

    def list_tasks(
        self, owner_id: int, status: str | None = None, limit: int = 50, offset: int = 0,
    ) -> list[Task]:
        query = "SELECT * FROM tasks WHERE owner_id = ?"
        params: list = [owner_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY id LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]


class SubscriptionDB(_SQLiteStore):
    """Push subscriptions: at most one per owner."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS push_subscriptions (
                    owner_id    INTEGER PRIMARY KEY,
                    destination TEXT    NOT NULL,
                    created_at  TEXT    NOT NULL
                )
            """)
        logger.debug("Push subscriptions table initialized at %s", self._db_path)

    def upsert(self, owner_id: int, destination: dict) -> PushSubscription:
        """Store a subscription, replacing any existing one for the owner."""
        now = utcnow()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO push_subscriptions (owner_id, destination, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    destination = excluded.destination,
                    created_at = excluded.created_at
                """,
                (owner_id, json.dumps(destination), _ts(now)),
            )
        logger.info("Push subscription stored for owner %d", owner_id)
        return PushSubscription(owner_id=owner_id, destination=destination, created_at=now)

    def get(self, owner_id: int) -> PushSubscription | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM push_subscriptions WHERE owner_id = ?", (owner_id,),
            ).fetchone()
        if row is None:
            return None
        return PushSubscription(
            owner_id=row["owner_id"],
            destination=json.loads(row["destination"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def delete(self, owner_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM push_subscriptions WHERE owner_id = ?", (owner_id,),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Push subscription removed for owner %d", owner_id)
        return deleted
