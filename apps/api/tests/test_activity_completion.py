"""
Tests for the activity completion evaluator.

Pure functions: records are plain namespaces, `now` is always explicit.
"""
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from models import TASK_FIELDS
from services.activity_completion import (
    build_activity_summary,
    completion_percentage,
    computed_week_bounds,
    current_week_number,
    done_count,
    is_complete,
    is_overdue_by_computed_week,
    is_overdue_by_stored_dates,
    stored_date_cutoff,
)

NOW = datetime(2025, 3, 12, 10, 0)  # Wednesday


def _record(done=0, pending=0, week_number=1, week_end_date=None, submitted_at=None):
    statuses = ["Done"] * done + ["Pending"] * pending
    statuses += ["Not Started"] * (len(TASK_FIELDS) - len(statuses))
    week_end_date = week_end_date or date(2025, 3, 15)
    return SimpleNamespace(
        week_number=week_number,
        week_start_date=week_end_date - timedelta(days=7),
        week_end_date=week_end_date,
        submitted_at=submitted_at,
        **dict(zip(TASK_FIELDS, statuses)),
    )


class TestCompletionPercentage:
    @pytest.mark.parametrize("done,expected", [
        (0, 0),
        (1, 17),
        (2, 33),
        (3, 50),
        (4, 67),
        (5, 83),
        (6, 100),
    ])
    def test_rounded_share_of_done_tasks(self, done, expected):
        assert completion_percentage(_record(done=done)) == expected

    def test_one_of_six_rounds_up_not_down(self):
        """16.67% must come out as 17, not truncated to 16."""
        assert completion_percentage(_record(done=1)) == 17

    def test_pending_does_not_count_as_done(self):
        record = _record(done=2, pending=4)
        assert done_count(record) == 2
        assert completion_percentage(record) == 33

    @pytest.mark.parametrize("done", range(7))
    def test_complete_iff_one_hundred_percent(self, done):
        record = _record(done=done)
        assert is_complete(record) == (completion_percentage(record) == 100)


class TestOverdueByStoredDates:
    def test_week_ended_yesterday_is_overdue(self):
        assert is_overdue_by_stored_dates(_record(week_end_date=date(2025, 3, 11)), NOW) is True

    def test_week_ending_later_is_not_overdue(self):
        assert is_overdue_by_stored_dates(_record(week_end_date=date(2025, 3, 13)), NOW) is False

    def test_end_day_counts_once_past_midnight(self):
        assert is_overdue_by_stored_dates(_record(week_end_date=date(2025, 3, 12)), NOW) is True

    def test_exactly_midnight_of_end_day_is_not_overdue(self):
        midnight = datetime(2025, 3, 12, 0, 0)
        assert stored_date_cutoff(midnight) == date(2025, 3, 11)
        assert is_overdue_by_stored_dates(_record(week_end_date=date(2025, 3, 12)), midnight) is False

    def test_submitted_record_is_never_overdue(self):
        record = _record(week_end_date=date(2025, 1, 1), submitted_at=datetime(2025, 1, 20))
        assert is_overdue_by_stored_dates(record, NOW) is False


class TestComputedWeek:
    def test_bounds_anchor_on_sunday_of_current_week(self):
        assert computed_week_bounds(1, NOW) == (date(2025, 3, 9), date(2025, 3, 15))
        assert computed_week_bounds(3, NOW) == (date(2025, 3, 23), date(2025, 3, 29))

    def test_sunday_is_its_own_anchor(self):
        sunday = datetime(2025, 3, 9, 8, 0)
        assert computed_week_bounds(1, sunday) == (date(2025, 3, 9), date(2025, 3, 15))

    def test_modes_disagree_on_stale_stored_dates(self):
        """Stored dates say the week is long over; the computed window does not."""
        record = _record(week_number=1, week_end_date=date(2025, 1, 14))
        assert is_overdue_by_stored_dates(record, NOW) is True
        assert is_overdue_by_computed_week(record, NOW) is False

    def test_submitted_record_is_never_overdue(self):
        record = _record(submitted_at=datetime(2025, 3, 10))
        assert is_overdue_by_computed_week(record, NOW) is False


class TestCurrentWeekNumber:
    @pytest.mark.parametrize("day,expected", [
        (date(2025, 1, 1), 1),   # Wednesday
        (date(2025, 1, 4), 1),   # Saturday
        (date(2025, 1, 5), 2),   # Sunday starts week 2
        (date(2025, 3, 10), 11),
        (date(2023, 1, 1), 1),   # Jan 1 on a Sunday
        (date(2023, 1, 8), 2),
    ])
    def test_calendar_week(self, day, expected):
        assert current_week_number(datetime(day.year, day.month, day.day, 9, 0)) == expected


class TestActivitySummary:
    def test_empty(self):
        summary = build_activity_summary([], NOW)
        assert summary["total_logs"] == 0
        assert summary["weekly_breakdown"] == []

    def test_task_totals_and_weekly_breakdown(self):
        records = [
            _record(done=6, week_number=1, submitted_at=datetime(2025, 3, 10, 9, 0)),
            _record(done=3, pending=2, week_number=2),
            _record(done=1, week_number=2),
        ]
        summary = build_activity_summary(records, NOW)

        assert summary["total_logs"] == 3
        assert summary["completed_tasks"] == 10
        assert summary["pending_tasks"] == 2
        assert summary["not_started_tasks"] == 6
        assert summary["weekly_breakdown"] == [
            {"week": 1, "total_tasks": 6, "completed_tasks": 6, "completion_percentage": 100},
            {"week": 2, "total_tasks": 12, "completed_tasks": 4, "completion_percentage": 33},
        ]

    def test_submission_timeliness_against_computed_week(self):
        records = [
            _record(week_number=1, submitted_at=datetime(2025, 3, 14, 17, 0)),  # before Sat 15th
            _record(week_number=1, submitted_at=datetime(2025, 3, 16, 9, 0)),   # after the window
            _record(week_number=2),                                              # not yet due
        ]
        summary = build_activity_summary(records, NOW)

        assert summary["on_time_submissions"] == 1
        assert summary["late_submissions"] == 1
        assert summary["overdue_logs"] == 0
        assert summary["awaiting_submission"] == 1

    def test_unsubmitted_logs_are_never_counted_as_on_time(self):
        summary = build_activity_summary([_record(week_number=1), _record(week_number=4)], NOW)
        assert summary["on_time_submissions"] == 0
        assert summary["awaiting_submission"] == 2
