"""
Activity Log Store

Persistence operations for weekly activity logs (ActivityTracker rows).

Field-level rules (week range, status values, attendance shape) live on the
model and raise ValueError; this layer surfaces them as ValidationError and
turns the (allocation, week) uniqueness violation into ConflictError.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import ActivityTracker, CourseOffering, Facilitator, TASK_FIELDS, TaskStatus
from services.activity_completion import (
    completion_percentage,
    is_complete,
    is_overdue_by_stored_dates,
    stored_date_cutoff,
)

logger = logging.getLogger(__name__)

WEEK_LENGTH = timedelta(days=7)

UPDATABLE_FIELDS = frozenset(TASK_FIELDS) | {"attendance", "notes", "week_start_date", "week_end_date"}

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _with_relations(query):
    return query.options(
        joinedload(ActivityTracker.course_offering).joinedload(CourseOffering.module),
        joinedload(ActivityTracker.facilitator).joinedload(Facilitator.user),
    )


def _check_week_dates(week_start_date: date, week_end_date: date) -> None:
    if week_end_date <= week_start_date:
        raise ValidationError("week_end_date must be after week_start_date", field="week_end_date")
    if week_end_date - week_start_date != WEEK_LENGTH:
        raise ValidationError(
            "week_end_date must be exactly 7 days after week_start_date",
            field="week_end_date",
        )


def _build_log(facilitator_id: UUID, data: Dict) -> ActivityTracker:
    _check_week_dates(data["week_start_date"], data["week_end_date"])
    fields = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
    try:
        return ActivityTracker(
            allocation_id=data["allocation_id"],
            facilitator_id=facilitator_id,
            week_number=data["week_number"],
            **fields,
        )
    except ValueError as e:
        raise ValidationError(str(e))


def _assert_assigned(db: Session, facilitator_id: UUID, allocation_id: UUID) -> None:
    offering = db.query(CourseOffering).filter(
        CourseOffering.id == allocation_id,
        CourseOffering.facilitator_id == facilitator_id,
    ).first()
    if not offering:
        raise ForbiddenError("Facilitator is not assigned to this course offering")


def _commit_or_conflict(db: Session, detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Activity log write rejected by constraint: {e.orig}")
        raise ConflictError(detail)


def create_activity_log(db: Session, facilitator_id: UUID, data: Dict) -> ActivityTracker:
    """
    Create the log for one (course offering, week).

    All task statuses default to Not Started unless supplied.
    """
    _assert_assigned(db, facilitator_id, data["allocation_id"])

    existing = db.query(ActivityTracker.id).filter(
        ActivityTracker.allocation_id == data["allocation_id"],
        ActivityTracker.week_number == data["week_number"],
    ).first()
    if existing:
        raise ConflictError(f"Activity log for week {data['week_number']} already exists")

    log = _build_log(facilitator_id, data)
    db.add(log)
    _commit_or_conflict(db, f"Activity log for week {data['week_number']} already exists")
    db.refresh(log)

    logger.info(f"Activity log created: {log.id} (allocation {log.allocation_id}, week {log.week_number})")
    return log


def bulk_create_activity_logs(db: Session, facilitator_id: UUID, items: Iterable[Dict]) -> List[ActivityTracker]:
    """Create several weekly logs at once; nothing is written if any of them is rejected."""
    items = list(items)
    seen = set()
    for item in items:
        key = (item["allocation_id"], item["week_number"])
        if key in seen:
            raise ConflictError(f"Duplicate week {item['week_number']} in request")
        seen.add(key)
        _assert_assigned(db, facilitator_id, item["allocation_id"])

    logs = [_build_log(facilitator_id, item) for item in items]
    db.add_all(logs)
    _commit_or_conflict(db, "One or more weeks already have an activity log")
    for log in logs:
        db.refresh(log)

    logger.info(f"Bulk-created {len(logs)} activity logs for facilitator {facilitator_id}")
    return logs


def get_activity_log(db: Session, log_id: UUID, facilitator_id: Optional[UUID] = None) -> ActivityTracker:
    """Load one log; a facilitator only sees their own."""
    query = _with_relations(db.query(ActivityTracker)).filter(ActivityTracker.id == log_id)
    if facilitator_id is not None:
        query = query.filter(ActivityTracker.facilitator_id == facilitator_id)
    log = query.first()
    if not log:
        raise NotFoundError("Activity log", str(log_id))
    return log


def list_activity_logs(
    db: Session,
    facilitator_id: Optional[UUID] = None,
    allocation_id: Optional[UUID] = None,
    week_number: Optional[int] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    now: Optional[datetime] = None,
) -> Tuple[List[ActivityTracker], int]:
    """
    Filtered, paginated listing ordered by week (newest first).

    status:
        complete    all six tasks Done
        incomplete  at least one task not Done
        overdue     unsubmitted and the stored week end has passed
    """
    now = now or datetime.now(timezone.utc)
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    query = db.query(ActivityTracker)
    if facilitator_id is not None:
        query = query.filter(ActivityTracker.facilitator_id == facilitator_id)
    if allocation_id is not None:
        query = query.filter(ActivityTracker.allocation_id == allocation_id)
    if week_number is not None:
        query = query.filter(ActivityTracker.week_number == week_number)

    done = TaskStatus.DONE.value
    columns = [getattr(ActivityTracker, field) for field in TASK_FIELDS]
    if status == "complete":
        query = query.filter(and_(*[column == done for column in columns]))
    elif status == "incomplete":
        query = query.filter(or_(*[column != done for column in columns]))
    elif status == "overdue":
        query = query.filter(
            ActivityTracker.submitted_at.is_(None),
            ActivityTracker.week_end_date <= stored_date_cutoff(now),
        )
    elif status is not None:
        raise ValidationError(f"Unknown status filter: {status}", field="status")

    total = query.count()
    rows = (
        _with_relations(query)
        .order_by(ActivityTracker.week_number.desc(), ActivityTracker.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_logs_for_summary(
    db: Session,
    facilitator_id: Optional[UUID] = None,
    start_week: Optional[int] = None,
    end_week: Optional[int] = None,
) -> List[ActivityTracker]:
    """Logs of active course offerings, optionally bounded by week range."""
    query = db.query(ActivityTracker).join(ActivityTracker.course_offering).filter(
        CourseOffering.is_active.is_(True)
    )
    if facilitator_id is not None:
        query = query.filter(ActivityTracker.facilitator_id == facilitator_id)
    if start_week is not None:
        query = query.filter(ActivityTracker.week_number >= start_week)
    if end_week is not None:
        query = query.filter(ActivityTracker.week_number <= end_week)
    return query.order_by(ActivityTracker.week_number.asc()).all()


def update_activity_log(db: Session, log: ActivityTracker, changes: Dict) -> ActivityTracker:
    """
    Apply field changes to a log.

    Never touches submitted_at: edits after submission are corrections, not a
    new submission.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    if "week_start_date" in changes or "week_end_date" in changes:
        _check_week_dates(
            changes.get("week_start_date", log.week_start_date),
            changes.get("week_end_date", log.week_end_date),
        )

    try:
        for field, value in changes.items():
            setattr(log, field, value)
    except ValueError as e:
        db.rollback()
        raise ValidationError(str(e))

    _commit_or_conflict(db, "Activity log update conflicts with an existing log")
    db.refresh(log)
    logger.info(f"Activity log updated: {log.id} ({', '.join(sorted(changes))})")
    return log


def submit_activity_log(db: Session, log: ActivityTracker, now: Optional[datetime] = None) -> ActivityTracker:
    """Stamp submitted_at once; a second submission is rejected."""
    if log.submitted_at is not None:
        raise ConflictError("Activity log already submitted")

    log.submitted_at = now or datetime.now(timezone.utc)
    db.commit()
    db.refresh(log)
    logger.info(f"Activity log submitted: {log.id} (week {log.week_number})")
    return log


def delete_activity_log(db: Session, log: ActivityTracker) -> None:
    db.delete(log)
    db.commit()
    logger.info(f"Activity log deleted: {log.id}")


def find_overdue_activity_logs(db: Session, cutoff_date: date) -> List[ActivityTracker]:
    """Unsubmitted logs whose week ended on or before cutoff_date, with offering and facilitator loaded."""
    query = db.query(ActivityTracker).filter(
        ActivityTracker.submitted_at.is_(None),
        ActivityTracker.week_end_date <= cutoff_date,
    )
    return (
        _with_relations(query)
        .order_by(ActivityTracker.facilitator_id, ActivityTracker.week_number)
        .all()
    )


def serialize_activity_log(log: ActivityTracker, now: Optional[datetime] = None) -> Dict:
    """Record fields plus the derived completion/overdue view returned by read endpoints."""
    now = now or datetime.now(timezone.utc)
    offering = log.course_offering
    facilitator = log.facilitator
    return {
        "id": log.id,
        "allocation_id": log.allocation_id,
        "facilitator_id": log.facilitator_id,
        "week_number": log.week_number,
        "week_start_date": log.week_start_date,
        "week_end_date": log.week_end_date,
        "attendance": log.attendance or [],
        **{field: getattr(log, field) for field in TASK_FIELDS},
        "submitted_at": log.submitted_at,
        "notes": log.notes,
        "course": offering.display_name if offering is not None else None,
        "facilitator_name": facilitator.user.full_name if facilitator is not None and facilitator.user else None,
        "completion_percentage": completion_percentage(log),
        "is_complete": is_complete(log),
        "is_overdue": is_overdue_by_stored_dates(log, now),
    }
