"""
Activity Completion Evaluator

Read-only views derived from an activity log's six task statuses:
- completion percentage and completeness
- overdue status, in two deliberately separate flavours

Two overdue definitions exist because their callers need different things:

    is_overdue_by_stored_dates   detail/list endpoints; trusts week_end_date
    is_overdue_by_computed_week  dashboard summary; recomputes the week window
                                 from week_number relative to "today"

They disagree whenever the stored dates do not line up with the computed
window. Both are kept as-is; see DESIGN.md.

All functions are pure: they only read the record and the supplied `now`.
"""
import math
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Tuple

from models import TASK_FIELDS, TaskStatus

DONE = TaskStatus.DONE.value
PENDING = TaskStatus.PENDING.value


def _statuses(record) -> List[str]:
    return [getattr(record, field) for field in TASK_FIELDS]


def done_count(record) -> int:
    return sum(1 for status in _statuses(record) if status == DONE)


def is_complete(record) -> bool:
    """True iff all six task statuses are Done."""
    return done_count(record) == len(TASK_FIELDS)


def completion_percentage(record) -> int:
    """
    Share of Done statuses as an integer 0..100, rounded half up.

    1 of 6 -> 17, 3 of 6 -> 50, 6 of 6 -> 100.
    """
    return int(math.floor(done_count(record) * 100 / len(TASK_FIELDS) + 0.5))


def stored_date_cutoff(now: datetime) -> date:
    """
    Latest week_end_date that has already passed at `now`.

    A stored end date counts from its midnight, so the end day itself is
    past as soon as `now` is later than 00:00 on that day.
    """
    if now.time() == time.min:
        return now.date() - timedelta(days=1)
    return now.date()


def is_overdue_by_stored_dates(record, now: datetime) -> bool:
    """Unsubmitted and the stored week_end_date lies before `now`."""
    if record.submitted_at is not None:
        return False
    return record.week_end_date <= stored_date_cutoff(now)


def computed_week_bounds(week_number: int, now: datetime) -> Tuple[date, date]:
    """
    Week window used by the dashboard summary.

    Anchored on the Sunday of the week containing `now`; week N starts
    7 * (N - 1) days after that Sunday and ends six days later.
    """
    today = now.date()
    days_since_sunday = (today.weekday() + 1) % 7
    anchor = today - timedelta(days=days_since_sunday)
    week_start = anchor + timedelta(days=7 * (week_number - 1))
    return week_start, week_start + timedelta(days=6)


def is_overdue_by_computed_week(record, now: datetime) -> bool:
    """Unsubmitted and the computed week window has fully elapsed."""
    if record.submitted_at is not None:
        return False
    _, week_end = computed_week_bounds(record.week_number, now)
    return now.date() > week_end


def current_week_number(now: datetime) -> int:
    """Calendar-year week number (weeks start on Sunday, Jan 1 is in week 1)."""
    jan_first = date(now.year, 1, 1)
    days = (now.date() - jan_first).days
    jan_first_weekday = (jan_first.weekday() + 1) % 7  # Sunday = 0
    return math.ceil((days + jan_first_weekday + 1) / 7)


def build_activity_summary(records: Iterable, now: datetime) -> Dict:
    """
    Dashboard summary over a set of activity logs.

    Submission timeliness is judged against the computed week window:
    on time if submitted on or before the computed week end, late if after;
    unsubmitted logs are either overdue (window elapsed) or awaiting submission.
    """
    summary = {
        "total_logs": 0,
        "completed_tasks": 0,
        "pending_tasks": 0,
        "not_started_tasks": 0,
        "on_time_submissions": 0,
        "late_submissions": 0,
        "overdue_logs": 0,
        "awaiting_submission": 0,
    }
    weekly: Dict[int, Dict] = {}

    for record in records:
        summary["total_logs"] += 1
        statuses = _statuses(record)
        completed = sum(1 for s in statuses if s == DONE)
        pending = sum(1 for s in statuses if s == PENDING)
        summary["completed_tasks"] += completed
        summary["pending_tasks"] += pending
        summary["not_started_tasks"] += len(statuses) - completed - pending

        _, week_end = computed_week_bounds(record.week_number, now)
        if record.submitted_at is not None:
            if record.submitted_at.date() <= week_end:
                summary["on_time_submissions"] += 1
            else:
                summary["late_submissions"] += 1
        elif is_overdue_by_computed_week(record, now):
            summary["overdue_logs"] += 1
        else:
            summary["awaiting_submission"] += 1

        bucket = weekly.setdefault(
            record.week_number,
            {"week": record.week_number, "total_tasks": 0, "completed_tasks": 0},
        )
        bucket["total_tasks"] += len(statuses)
        bucket["completed_tasks"] += completed

    breakdown = []
    for week in sorted(weekly):
        bucket = weekly[week]
        bucket["completion_percentage"] = int(
            math.floor(bucket["completed_tasks"] * 100 / bucket["total_tasks"] + 0.5)
        )
        breakdown.append(bucket)

    summary["weekly_breakdown"] = breakdown
    return summary
