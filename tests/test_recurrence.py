"""Tests for src.core.recurrence — calendar-aware next-cycle computation."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.recurrence import advance, build_next_occurrence, renewal_due
from src.data.models import (
    Category,
    Frequency,
    Obligation,
    ObligationStatus,
    ObligationType,
    RiskLevel,
)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _recurring(frequency=Frequency.MONTHLY, due=None, **overrides):
    fields = dict(
        id=7,
        owner_id=12345,
        title="Pay rent",
        category=Category.FINANCE,
        type=ObligationType.RECURRING,
        frequency=frequency,
        due_date=due or _utc(2026, 1, 31, 9, 0),
        risk_level=RiskLevel.HIGH,
        consequence="Late fee",
    )
    fields.update(overrides)
    return Obligation(**fields)


class TestAdvance:
    @pytest.mark.parametrize(
        "frequency, expected",
        [
            (Frequency.DAILY, _utc(2026, 3, 16, 9, 0)),
            (Frequency.WEEKLY, _utc(2026, 3, 22, 9, 0)),
            (Frequency.MONTHLY, _utc(2026, 4, 15, 9, 0)),
            (Frequency.YEARLY, _utc(2027, 3, 15, 9, 0)),
        ],
    )
    def test_one_period(self, frequency, expected):
        assert advance(_utc(2026, 3, 15, 9, 0), frequency) == expected

    def test_monthly_from_jan_31_clamps_to_end_of_february(self):
        assert advance(_utc(2026, 1, 31, 9, 0), Frequency.MONTHLY) == _utc(2026, 2, 28, 9, 0)

    def test_monthly_from_jan_31_in_leap_year(self):
        assert advance(_utc(2028, 1, 31, 9, 0), Frequency.MONTHLY) == _utc(2028, 2, 29, 9, 0)

    def test_yearly_from_leap_day(self):
        assert advance(_utc(2028, 2, 29, 9, 0), Frequency.YEARLY) == _utc(2029, 2, 28, 9, 0)

    def test_monthly_steps_on_local_calendar(self):
        # Jan 31 00:00 in Jerusalem is Jan 30 22:00 UTC
        local_jan_31 = _utc(2026, 1, 30, 22, 0)
        assert advance(local_jan_31, Frequency.MONTHLY, "Asia/Jerusalem") == _utc(2026, 2, 27, 22, 0)

    def test_first_of_month_stays_on_the_first(self):
        local_feb_1 = _utc(2026, 1, 31, 22, 0)
        assert advance(local_feb_1, Frequency.MONTHLY, "Asia/Jerusalem") == _utc(2026, 2, 28, 22, 0)

    def test_weekly_keeps_wall_clock_across_dst(self):
        # 09:00 local before and after the 2026-03-27 switch to summer time
        before = _utc(2026, 3, 23, 7, 0)
        assert advance(before, Frequency.WEEKLY, "Asia/Jerusalem") == _utc(2026, 3, 30, 6, 0)

    def test_default_timezone_comes_from_settings(self, local_timezone):
        assert advance(_utc(2026, 1, 30, 22, 0), Frequency.MONTHLY) == _utc(2026, 2, 27, 22, 0)

    def test_accepts_string_frequency(self):
        assert advance(_utc(2026, 3, 15), "weekly") == _utc(2026, 3, 22)


class TestBuildNextOccurrence:
    def test_copies_fields_and_advances_due_date(self):
        draft = build_next_occurrence(_recurring())
        assert draft.title == "Pay rent"
        assert draft.category is Category.FINANCE
        assert draft.type is ObligationType.RECURRING
        assert draft.frequency is Frequency.MONTHLY
        assert draft.risk_level is RiskLevel.HIGH
        assert draft.consequence == "Late fee"
        assert draft.due_date == _utc(2026, 2, 28, 9, 0)

    def test_one_time_raises(self):
        one_time = _recurring(type=ObligationType.ONE_TIME, frequency=None)
        with pytest.raises(ValueError):
            build_next_occurrence(one_time)


class TestRenewalDue:
    def test_due_after_full_period(self):
        completed = _recurring(
            frequency=Frequency.WEEKLY,
            status=ObligationStatus.COMPLETED,
            last_completed_at=_utc(2026, 3, 1, 9, 0),
        )
        assert renewal_due(completed, _utc(2026, 3, 8, 9, 0)) is True
        assert renewal_due(completed, _utc(2026, 3, 8, 8, 59)) is False

    def test_monthly_uses_calendar_months(self):
        completed = _recurring(
            status=ObligationStatus.COMPLETED,
            last_completed_at=_utc(2026, 1, 31, 9, 0),
        )
        assert renewal_due(completed, _utc(2026, 2, 28, 9, 0)) is True

    def test_never_completed(self):
        completed = _recurring(status=ObligationStatus.COMPLETED, last_completed_at=None)
        assert renewal_due(completed, _utc(2030, 1, 1)) is False

    def test_not_completed(self):
        active = _recurring(last_completed_at=_utc(2025, 1, 1))
        assert renewal_due(active, _utc(2030, 1, 1)) is False

    def test_one_time(self):
        one_time = _recurring(
            type=ObligationType.ONE_TIME,
            frequency=None,
            status=ObligationStatus.COMPLETED,
            last_completed_at=_utc(2025, 1, 1),
        )
        assert renewal_due(one_time, _utc(2030, 1, 1) + timedelta(days=1)) is False

    def test_renewal_uses_local_calendar(self, local_timezone):
        completed = _recurring(
            status=ObligationStatus.COMPLETED,
            last_completed_at=_utc(2026, 1, 30, 22, 0),
        )
        assert renewal_due(completed, _utc(2026, 2, 27, 22, 0)) is True
        assert renewal_due(completed, _utc(2026, 2, 27, 21, 59)) is False
