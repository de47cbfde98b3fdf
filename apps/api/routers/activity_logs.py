"""
Activity Logs API Router

Weekly activity logs: facilitators record and submit their task checklist per
course offering; managers review, summarize and delete.
"""
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from core.auth import get_current_facilitator, require_manager, require_role
from core.cache import cache_key, get_cache, invalidate_activity_summary_cache, set_cache
from core.config import settings
from core.database import get_db
from core.exceptions import ForbiddenError
from models import Facilitator, User
from schemas import (
    ActivityLogCreate,
    ActivityLogListResponse,
    ActivityLogResponse,
    ActivityLogSubmitResponse,
    ActivityLogUpdate,
    ActivitySummaryResponse,
    StatusFilter,
)
from services.activity_completion import build_activity_summary
from services.activity_log_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    bulk_create_activity_logs,
    create_activity_log,
    delete_activity_log,
    get_activity_log,
    list_activity_logs,
    list_logs_for_summary,
    serialize_activity_log,
    submit_activity_log,
    update_activity_log,
)
from services.notification_service import NotificationService, get_notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/activity-logs", tags=["activity-logs"])

staff = require_role(["manager", "facilitator"])


def _facilitator_scope(user: User, db: Session) -> Optional[UUID]:
    """Facilitators only ever see their own logs; managers see everything (None)."""
    if user.role != "facilitator":
        return None
    facilitator = db.query(Facilitator).filter(Facilitator.user_id == user.id).first()
    if not facilitator or not facilitator.is_active:
        raise ForbiddenError("Facilitator profile not found")
    return facilitator.id


@router.get("", response_model=ActivityLogListResponse)
def list_activity_logs_endpoint(
    allocation_id: Optional[UUID] = Query(None, description="Filter by course offering"),
    week_number: Optional[int] = Query(None, ge=1, le=52),
    status_filter: Optional[StatusFilter] = Query(None, alias="status", description="complete, incomplete or overdue"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(staff),
    db: Session = Depends(get_db)
):
    now = datetime.now(timezone.utc)
    rows, total = list_activity_logs(
        db,
        facilitator_id=_facilitator_scope(current_user, db),
        allocation_id=allocation_id,
        week_number=week_number,
        status=status_filter,
        page=page,
        limit=limit,
        now=now,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "data": [serialize_activity_log(row, now) for row in rows],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_items": total,
            "items_per_page": limit,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


@router.get("/summary", response_model=ActivitySummaryResponse)
def get_activity_summary(
    facilitator_id: Optional[UUID] = Query(None, description="Managers only: restrict to one facilitator"),
    start_week: Optional[int] = Query(None, ge=1, le=52),
    end_week: Optional[int] = Query(None, ge=1, le=52),
    current_user: User = Depends(staff),
    db: Session = Depends(get_db)
):
    """
    Dashboard summary of task progress and submission timeliness.

    Cached briefly; any write to a log drops every cached summary.
    """
    scope = _facilitator_scope(current_user, db)
    if scope is not None:
        facilitator_id = scope

    key = cache_key("activity_summary", facilitator_id, start_week=start_week, end_week=end_week)
    cached = get_cache(key)
    if cached is not None:
        return cached

    records = list_logs_for_summary(db, facilitator_id=facilitator_id, start_week=start_week, end_week=end_week)
    summary = build_activity_summary(records, datetime.now(timezone.utc))
    set_cache(key, summary, ttl=settings.CACHE_TTL_SUMMARY)
    return summary


@router.post("", response_model=ActivityLogResponse, status_code=201)
def create_activity_log_endpoint(
    payload: ActivityLogCreate,
    facilitator: Facilitator = Depends(get_current_facilitator),
    db: Session = Depends(get_db)
):
    """
    Log a new week for one of the caller's course offerings.

    409 if the week is already logged for that offering.
    """
    log = create_activity_log(db, facilitator.id, payload.model_dump())
    invalidate_activity_summary_cache()
    return serialize_activity_log(log)


# NOTE: /bulk must be defined BEFORE /{log_id} routes
@router.post("/bulk", response_model=List[ActivityLogResponse], status_code=201)
def bulk_create_activity_logs_endpoint(
    payload: List[ActivityLogCreate],
    facilitator: Facilitator = Depends(get_current_facilitator),
    db: Session = Depends(get_db)
):
    """Log several weeks at once; all-or-nothing."""
    logs = bulk_create_activity_logs(db, facilitator.id, [item.model_dump() for item in payload])
    invalidate_activity_summary_cache()
    return [serialize_activity_log(log) for log in logs]


@router.get("/{log_id}", response_model=ActivityLogResponse)
def get_activity_log_endpoint(
    log_id: UUID,
    current_user: User = Depends(staff),
    db: Session = Depends(get_db)
):
    log = get_activity_log(db, log_id, facilitator_id=_facilitator_scope(current_user, db))
    return serialize_activity_log(log)


@router.put("/{log_id}", response_model=ActivityLogResponse)
def update_activity_log_endpoint(
    log_id: UUID,
    payload: ActivityLogUpdate,
    current_user: User = Depends(staff),
    db: Session = Depends(get_db)
):
    """Update task statuses, attendance, notes or week dates. Does not submit."""
    log = get_activity_log(db, log_id, facilitator_id=_facilitator_scope(current_user, db))
    log = update_activity_log(db, log, payload.model_dump(exclude_unset=True))
    invalidate_activity_summary_cache()
    return serialize_activity_log(log)


@router.post("/{log_id}/submit", response_model=ActivityLogSubmitResponse)
def submit_activity_log_endpoint(
    log_id: UUID,
    facilitator: Facilitator = Depends(get_current_facilitator),
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """
    Submit a week's log and notify every active manager.

    Notification is queued, not delivered inline. The submission is committed
    before queueing, so a queue outage (503) leaves the log submitted.
    """
    log = get_activity_log(db, log_id, facilitator_id=facilitator.id)
    log = submit_activity_log(db, log)
    invalidate_activity_summary_cache()

    job_ids = notification_service.notify_activity_log_submission(log, facilitator.user, db)
    logger.info(f"Activity log {log.id} submitted, {len(job_ids)} manager alerts queued")

    return {"id": log.id, "submitted_at": log.submitted_at, "notified_managers": len(job_ids)}


@router.delete("/{log_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity_log_endpoint(
    log_id: UUID,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db)
):
    log = get_activity_log(db, log_id)
    delete_activity_log(db, log)
    invalidate_activity_summary_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
