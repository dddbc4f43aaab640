from datetime import datetime, timedelta, timezone

import pytest

from taskreminder.reminders.exceptions import InvalidOffset
from taskreminder.reminders.recurrence_models import (
    FirePlan, RecurrenceCalculator, RecurrenceMode, ReminderOffset,
    offset_ms, parse_offset, resolve_offset,
)

UTC = timezone.utc
WEEK_MS = 604_800_000


def utc(*args):
    return datetime(*args, tzinfo=UTC)


class TestOffsets:
    def test_offset_ms_values(self):
        assert offset_ms("3d") == 3 * 24 * 60 * 60 * 1000
        assert offset_ms("1d") == 24 * 60 * 60 * 1000
        assert offset_ms("3h") == 3 * 60 * 60 * 1000

    @pytest.mark.parametrize("token", list(ReminderOffset))
    def test_every_offset_is_strictly_positive(self, token):
        assert resolve_offset(token) > timedelta(0)
        assert offset_ms(token) > 0

    @pytest.mark.parametrize("token,expected", [
        ("short", ReminderOffset.SHORT),
        ("MEDIUM", ReminderOffset.MEDIUM),
        ("long", ReminderOffset.LONG),
        ("3h", ReminderOffset.SHORT),
        (ReminderOffset.LONG, ReminderOffset.LONG),
    ])
    def test_parse_offset_accepts_names_and_values(self, token, expected):
        assert parse_offset(token) is expected

    @pytest.mark.parametrize("token", ["2d", "", "weekly", None, 3])
    def test_unknown_offset_raises(self, token):
        with pytest.raises(InvalidOffset):
            resolve_offset(token)


class TestInitialFireTime:
    def test_single_future_deadline_fires_offset_before(self):
        now = utc(2025, 1, 1)
        deadline = now + timedelta(days=5)
        plan = RecurrenceCalculator.compute_initial_fire_time(deadline, "3d", "once", now=now)
        assert plan.fire_at == deadline - timedelta(days=3)
        assert plan.deadline == deadline
        assert plan.fire_at > now

    def test_single_late_reminder_fires_sixty_seconds_from_now(self):
        now = utc(2025, 1, 4, 23, 59, 30)
        deadline = now + timedelta(seconds=30)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            deadline, ReminderOffset.SHORT, RecurrenceMode.SINGLE, now=now
        )
        assert plan.fire_at == now + timedelta(seconds=60)
        assert plan.deadline == deadline

    def test_candidate_equal_to_now_counts_as_late(self):
        now = utc(2025, 1, 1, 12)
        deadline = now + timedelta(hours=3)
        plan = RecurrenceCalculator.compute_initial_fire_time(deadline, "3h", "once", now=now)
        assert plan.fire_at == now + timedelta(seconds=60)

    def test_weekly_past_deadline_rolls_forward_in_whole_weeks(self):
        now = utc(2025, 3, 12, 9, 30)
        deadline = now - timedelta(days=1)
        end_date = now + timedelta(days=60)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            deadline, "medium", "weekly", end_date=end_date, now=now
        )
        assert plan.has_occurrence
        assert plan.fire_at > now
        assert plan.fire_at - timedelta(weeks=1) <= now
        assert plan.fire_at == plan.deadline - timedelta(days=1)
        assert (plan.deadline - deadline) % timedelta(weeks=1) == timedelta(0)
        assert plan.deadline.weekday() == deadline.weekday()
        assert plan.deadline.time() == deadline.time()

    def test_weekly_advances_and_respects_end_date(self):
        now = utc(2025, 1, 10)
        start = utc(2025, 1, 1)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            start, "3d", "weekly", end_date=utc(2025, 2, 1), now=now
        )
        assert plan.fire_at > now
        assert plan.deadline > start

    def test_weekly_beyond_end_date_has_no_occurrence(self):
        now = utc(2025, 3, 10)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            utc(2025, 2, 1), "3d", "weekly", end_date=utc(2025, 2, 5), now=now
        )
        assert plan.fire_at is None
        assert not plan.has_occurrence

    def test_weekly_future_candidate_is_returned_unchanged(self):
        now = utc(2025, 1, 1)
        deadline = utc(2025, 1, 9)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            deadline, "1d", "weekly", end_date=utc(2025, 3, 1), now=now
        )
        assert plan == FirePlan(fire_at=utc(2025, 1, 8), deadline=deadline)

    def test_large_gap_without_end_date_terminates(self):
        now = utc(2035, 6, 1)
        deadline = utc(2015, 6, 1, 8)
        plan = RecurrenceCalculator.compute_initial_fire_time(deadline, "3h", "weekly", now=now)
        assert now < plan.fire_at <= now + timedelta(weeks=1)

    def test_naive_datetimes_are_treated_as_utc(self):
        now = utc(2025, 1, 1)
        plan = RecurrenceCalculator.compute_initial_fire_time(
            datetime(2025, 1, 5), "3d", "once", now=now
        )
        assert plan.fire_at == utc(2025, 1, 2)

    @pytest.mark.parametrize("mode", ["once", "weekly"])
    @pytest.mark.parametrize("offset", ["3h", "1d", "3d"])
    @pytest.mark.parametrize("gap", [
        -timedelta(days=400), -timedelta(days=7), -timedelta(hours=1), timedelta(0),
        timedelta(seconds=1), timedelta(hours=3), timedelta(days=2), timedelta(days=30),
    ])
    def test_fire_time_is_always_in_the_future(self, mode, offset, gap):
        now = utc(2025, 6, 15, 10, 0, 0)
        plan = RecurrenceCalculator.compute_initial_fire_time(now + gap, offset, mode, now=now)
        assert plan.fire_at > now


class TestNextPeriodic:
    def test_next_week(self):
        plan = RecurrenceCalculator.compute_next_periodic(utc(2025, 1, 1), "1d")
        assert plan.deadline == utc(2025, 1, 8)
        assert plan.fire_at == utc(2025, 1, 7)

    def test_beyond_end_date_returns_none(self):
        plan = RecurrenceCalculator.compute_next_periodic(utc(2025, 1, 25), "3h", utc(2025, 1, 28))
        assert plan.deadline is None
        assert plan.fire_at is None

    def test_end_date_is_inclusive(self):
        plan = RecurrenceCalculator.compute_next_periodic(utc(2025, 1, 1), "3h", utc(2025, 1, 8))
        assert plan.deadline == utc(2025, 1, 8)
        assert plan.has_occurrence

    def test_same_inputs_same_result(self):
        args = (utc(2025, 5, 5, 7, 45), ReminderOffset.MEDIUM, utc(2025, 12, 31))
        assert RecurrenceCalculator.compute_next_periodic(*args) == RecurrenceCalculator.compute_next_periodic(*args)

    def test_each_advance_is_exactly_one_week(self):
        deadline = utc(2025, 3, 1, 18)
        previous = RecurrenceCalculator.compute_next_periodic(deadline, "3d")
        for _ in range(10):
            current = RecurrenceCalculator.compute_next_periodic(previous.deadline, "3d")
            assert (current.deadline - previous.deadline) / timedelta(milliseconds=1) == WEEK_MS
            assert (current.fire_at - previous.fire_at) / timedelta(milliseconds=1) == WEEK_MS
            previous = current

    def test_cadence_ignores_daylight_saving(self):
        # 2025-03-09 is a DST change in the US; the instant arithmetic must not notice
        deadline = datetime(2025, 3, 5, 12, tzinfo=timezone(timedelta(hours=-5)))
        plan = RecurrenceCalculator.compute_next_periodic(deadline, "3h")
        assert plan.deadline - deadline == timedelta(weeks=1)
