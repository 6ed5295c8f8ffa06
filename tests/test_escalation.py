"""Tests for src.core.escalation and src.core.preparation — pure reminder policy."""

from datetime import datetime, timedelta, timezone

from src.core.escalation import (
    build_overdue_escalation,
    build_reminders,
    build_urgent_reminder,
    days_until,
    hours_until,
    is_urgent,
)
from src.core.preparation import build_preparation_tasks
from src.data.models import Category, Obligation, ObligationType, RiskLevel

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _obligation(risk=RiskLevel.MEDIUM, due=None, consequence=None, category=Category.OTHER):
    return Obligation(
        id=42,
        owner_id=12345,
        title="Renew Passport",
        category=category,
        type=ObligationType.ONE_TIME,
        due_date=due or NOW + timedelta(days=10),
        risk_level=risk,
        consequence=consequence,
    )


class TestTimeHelpers:
    def test_days_until_rounds_up(self):
        assert days_until(NOW + timedelta(days=2, hours=1), NOW) == 3
        assert days_until(NOW + timedelta(days=2), NOW) == 2

    def test_days_until_negative_when_past(self):
        assert days_until(NOW - timedelta(days=2), NOW) == -2

    def test_hours_until(self):
        assert hours_until(NOW + timedelta(hours=5, minutes=10), NOW) == 6


class TestBuildReminders:
    def test_high_risk_ten_days_out_skips_fourteen(self):
        ob = _obligation(risk=RiskLevel.HIGH)
        reminders = build_reminders(ob, days_until_due=10)
        assert [r.reminder_time for r in reminders] == [
            ob.due_date - timedelta(days=7),
            ob.due_date - timedelta(days=3),
            ob.due_date - timedelta(days=1),
        ]

    def test_high_risk_two_days_out_only_gets_one_day_reminder(self):
        ob = _obligation(risk=RiskLevel.HIGH, due=NOW + timedelta(days=2))
        reminders = build_reminders(ob, days_until_due=2)
        assert len(reminders) == 1
        assert reminders[0].reminder_time == ob.due_date - timedelta(days=1)
        assert "due in 1 day." in reminders[0].description

    def test_schedule_by_risk(self):
        assert len(build_reminders(_obligation(risk=RiskLevel.HIGH), 30)) == 4
        assert len(build_reminders(_obligation(risk=RiskLevel.MEDIUM), 30)) == 3
        assert len(build_reminders(_obligation(risk=RiskLevel.LOW), 30)) == 2

    def test_lead_time_equal_to_days_is_skipped(self):
        reminders = build_reminders(_obligation(risk=RiskLevel.LOW), days_until_due=3)
        assert len(reminders) == 1

    def test_nothing_when_due_within_a_day(self):
        assert build_reminders(_obligation(risk=RiskLevel.HIGH), days_until_due=1) == []

    def test_title_and_description(self):
        ob = _obligation(consequence="Cannot travel abroad")
        first = build_reminders(ob, days_until_due=10)[0]
        assert first.title == "Reminder: Renew Passport"
        assert first.description == (
            "Renew Passport is due in 7 days. Consequence: Cannot travel abroad"
        )
        assert first.obligation_id == 42
        assert first.ai_generated is True

    def test_description_without_consequence(self):
        first = build_reminders(_obligation(), days_until_due=10)[0]
        assert first.description == "Renew Passport is due in 7 days."


class TestUrgency:
    def test_due_within_24_hours_is_urgent(self):
        assert is_urgent(_obligation(due=NOW + timedelta(hours=5)), NOW)

    def test_far_future_low_risk_is_not_urgent(self):
        assert not is_urgent(_obligation(risk=RiskLevel.LOW), NOW)

    def test_high_risk_is_always_urgent(self):
        assert is_urgent(_obligation(risk=RiskLevel.HIGH, due=NOW + timedelta(days=60)), NOW)

    def test_past_due_is_not_urgent_by_window(self):
        assert not is_urgent(_obligation(due=NOW - timedelta(hours=1)), NOW)

    def test_urgent_reminder_inside_window(self):
        reminder = build_urgent_reminder(_obligation(due=NOW + timedelta(hours=5)), NOW)
        assert reminder.title == "URGENT: Renew Passport due in 5 hours"
        assert reminder.description == "Action required soon."
        assert reminder.reminder_time == NOW

    def test_urgent_reminder_singular_hour(self):
        reminder = build_urgent_reminder(_obligation(due=NOW + timedelta(minutes=30)), NOW)
        assert reminder.title == "URGENT: Renew Passport due in 1 hour"

    def test_urgent_reminder_uses_consequence(self):
        ob = _obligation(due=NOW + timedelta(hours=2), consequence="Fine")
        assert build_urgent_reminder(ob, NOW).description == "Fine"

    def test_runs_within_one_clock_hour_share_a_title(self):
        ob = _obligation(due=NOW + timedelta(hours=5))
        early = build_urgent_reminder(ob, NOW + timedelta(minutes=5))
        late = build_urgent_reminder(ob, NOW + timedelta(minutes=55))
        next_hour = build_urgent_reminder(ob, NOW + timedelta(hours=1, minutes=5))
        assert early.title == late.title == "URGENT: Renew Passport due in 5 hours"
        assert next_hour.title == "URGENT: Renew Passport due in 4 hours"

    def test_hour_count_capped_at_window(self):
        ob = _obligation(due=NOW + timedelta(hours=24, minutes=20))
        reminder = build_urgent_reminder(ob, NOW + timedelta(minutes=40))
        assert reminder.title == "URGENT: Renew Passport due in 24 hours"

    def test_no_urgent_reminder_outside_window(self):
        assert build_urgent_reminder(_obligation(due=NOW + timedelta(hours=30)), NOW) is None
        assert build_urgent_reminder(_obligation(due=NOW - timedelta(hours=1)), NOW) is None


class TestOverdueEscalation:
    def test_high_risk_escalation(self):
        ob = _obligation(risk=RiskLevel.HIGH, due=NOW - timedelta(days=2, hours=3))
        escalation = build_overdue_escalation(ob, NOW)
        assert escalation.reminder.title == "URGENT: Renew Passport is 3 days overdue"
        assert escalation.reminder.reminder_time == NOW
        assert escalation.reminder.description == (
            "High-risk obligation overdue. Immediate action required."
        )
        assert escalation.notification == {
            "title": "Urgent: Overdue Obligation",
            "body": "Renew Passport is 3 days overdue",
            "data": {"obligation_id": 42, "type": "overdue"},
        }

    def test_just_overdue_counts_as_one_day(self):
        ob = _obligation(risk=RiskLevel.HIGH, due=NOW - timedelta(minutes=5))
        assert "is 1 day overdue" in build_overdue_escalation(ob, NOW).reminder.title

    def test_consequence_in_description(self):
        ob = _obligation(risk=RiskLevel.HIGH, due=NOW - timedelta(days=1), consequence="Fine")
        assert build_overdue_escalation(ob, NOW).reminder.description.endswith("Fine")

    def test_lower_risk_is_not_escalated(self):
        ob = _obligation(risk=RiskLevel.MEDIUM, due=NOW - timedelta(days=1))
        assert build_overdue_escalation(ob, NOW) is None


class TestPreparationTasks:
    def test_education_far_out_gets_both_steps(self):
        tasks = build_preparation_tasks(_obligation(category=Category.EDUCATION), 10)
        assert [t.title for t in tasks] == [
            "Gather documents for Renew Passport",
            "Review requirements for Renew Passport",
        ]
        assert all(t.obligation_id == 42 and t.ai_generated for t in tasks)

    def test_education_five_days_out_only_review(self):
        tasks = build_preparation_tasks(_obligation(category=Category.EDUCATION), 5)
        assert [t.priority for t in tasks] == ["high"]

    def test_work_needs_more_than_five_days(self):
        assert build_preparation_tasks(_obligation(category=Category.WORK), 5) == []
        assert len(build_preparation_tasks(_obligation(category=Category.WORK), 6)) == 1

    def test_personal_has_no_template(self):
        assert build_preparation_tasks(_obligation(category=Category.PERSONAL), 30) == []
