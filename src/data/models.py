"""
Life Admin — Data Models.

Obligations are the tracked real-world deadlines (renewals, payments, exams).
Reminders and preparation tasks are independent records generated from them;
they are linked by obligation_id for lookup only, never owned.

Stored records are plain dataclasses. Drafts coming from users or from the
LLM pass through the pydantic models at the bottom, which are the single
validation boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from pydantic import BaseModel, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    EDUCATION = "education"
    FINANCE = "finance"
    WORK = "work"
    PERSONAL = "personal"
    HEALTH = "health"
    OTHER = "other"


class ObligationType(str, Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ObligationStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


@dataclass
class Obligation:
    """A tracked real-world responsibility with a deadline and a consequence."""

    id: int
    owner_id: int
    title: str
    category: Category
    type: ObligationType
    due_date: datetime                      # always timezone-aware UTC
    risk_level: RiskLevel = RiskLevel.MEDIUM
    status: ObligationStatus = ObligationStatus.ACTIVE
    frequency: Frequency | None = None      # set iff type is recurring
    consequence: str | None = None
    last_completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.type is ObligationType.RECURRING and self.frequency is not None


@dataclass
class Reminder:
    """An escalation artifact: fires once at reminder_time, retired by deactivation."""

    id: int
    owner_id: int
    title: str
    description: str
    reminder_time: datetime
    ai_generated: bool = True
    is_active: bool = True
    obligation_id: int | None = None
    created_at: datetime | None = None


@dataclass
class Task:
    """A preparation item generated ahead of an obligation."""

    id: int
    owner_id: int
    title: str
    description: str = ""
    priority: str = "medium"
    status: str = "pending"
    ai_generated: bool = True
    obligation_id: int | None = None
    created_at: datetime | None = None


@dataclass
class PushSubscription:
    """One push destination per owner. Newest subscription overwrites the old one."""

    owner_id: int
    destination: dict
    created_at: datetime | None = None


@dataclass
class ReminderDraft:
    title: str
    description: str
    reminder_time: datetime
    ai_generated: bool = True
    obligation_id: int | None = None


@dataclass
class TaskDraft:
    title: str
    description: str = ""
    priority: str = "medium"
    ai_generated: bool = True
    obligation_id: int | None = None


# ---------------------------------------------------------------------------
# Validation boundary
# ---------------------------------------------------------------------------


def _to_utc(value: datetime) -> datetime:
    """Interpret naive datetimes in the configured timezone and convert to UTC."""
    if value.tzinfo is None:
        from src.config import settings
        value = value.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return value.astimezone(timezone.utc)


def _coerce_due_date(value: object) -> object:
    """Accept plain dates ("2026-03-01" or date objects) as local midnight."""
    if isinstance(value, str) and len(value.strip()) == 10:
        value = date.fromisoformat(value.strip())
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    return value


class ObligationDraft(BaseModel):
    """Input for creating an obligation, from a user or from the LLM.

    JSON example:
    {
        "title": "Renew passport",
        "category": "personal",
        "type": "one_time",
        "due_date": "2026-11-01T09:00:00",
        "risk_level": "high",
        "consequence": "Cannot travel"
    }
    """

    title: str
    category: Category = Category.OTHER
    type: ObligationType = ObligationType.ONE_TIME
    due_date: datetime
    frequency: Frequency | None = None
    risk_level: RiskLevel = RiskLevel.MEDIUM
    consequence: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def clean_title(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("title must not be blank")
            if len(v) > 200:
                raise ValueError("title must be at most 200 characters")
        return v

    @field_validator("consequence", mode="before")
    @classmethod
    def clean_consequence(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: object) -> object:
        return _coerce_due_date(v)

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: datetime) -> datetime:
        return _to_utc(v)

    @model_validator(mode="after")
    def check_frequency(self) -> ObligationDraft:
        if self.type is ObligationType.RECURRING and self.frequency is None:
            raise ValueError("recurring obligations require a frequency")
        if self.type is ObligationType.ONE_TIME and self.frequency is not None:
            raise ValueError("frequency is only allowed on recurring obligations")
        return self


class ObligationUpdate(BaseModel):
    """Field-level edit. Status is not editable here; use the lifecycle operations."""

    title: str | None = None
    category: Category | None = None
    type: ObligationType | None = None
    due_date: datetime | None = None
    frequency: Frequency | None = None
    risk_level: RiskLevel | None = None
    consequence: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: object) -> object:
        return _coerce_due_date(v)

    def apply_to(self, obligation: Obligation) -> ObligationDraft:
        """Merge the set fields onto an existing obligation and re-validate."""
        merged = {
            "title": obligation.title,
            "category": obligation.category,
            "type": obligation.type,
            "due_date": obligation.due_date,
            "frequency": obligation.frequency,
            "risk_level": obligation.risk_level,
            "consequence": obligation.consequence,
        }
        merged.update(self.model_dump(exclude_unset=True))
        return ObligationDraft(**merged)
