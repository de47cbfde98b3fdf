"""
Notifications API Router

Operational endpoints for the notification pipeline (managers only):
worker status and manual triggers, delivery-status lookup, manual reminders.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from core.auth import require_manager
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError, WorkerNotRunningError
from models import User
from schemas import (
    DeliveryStatusResponse,
    OverdueCheckResponse,
    ProcessQueueResponse,
    ReminderRequest,
    ReminderResponse,
    WorkerStatusResponse,
)
from services.notification_queue import NotificationType
from services.notification_service import NotificationService, get_notification_service
from services.notification_worker import NotificationWorker

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


def get_notification_worker(request: Request) -> Optional[NotificationWorker]:
    """The in-process worker, when this API instance owns one."""
    return getattr(request.app.state, "notification_worker", None)


def _parse_type(queue_type: str) -> NotificationType:
    try:
        return NotificationType(queue_type.upper())
    except ValueError:
        raise ValidationError(
            f"Unknown notification type: {queue_type}. Expected one of: "
            f"{', '.join(t.value.lower() for t in NotificationType)}",
            field="type",
        )


@router.get("/worker/status", response_model=WorkerStatusResponse)
def get_worker_status(
    current_user: User = Depends(require_manager),
    worker: Optional[NotificationWorker] = Depends(get_notification_worker)
):
    if worker is None:
        return {
            "is_running": False,
            "workers": [{"type": t.value, "is_active": False} for t in NotificationType],
            "overdue_check_active": False,
        }
    return worker.get_status()


@router.post("/worker/overdue-check", response_model=OverdueCheckResponse)
def trigger_overdue_check(
    current_user: User = Depends(require_manager),
    worker: Optional[NotificationWorker] = Depends(get_notification_worker)
):
    """
    Run the overdue scan now.

    Runs inline when this process owns a running worker; otherwise the scan
    is handed to Celery.
    """
    if worker is not None and worker.is_running:
        return {"mode": "in_process", "overdue_count": worker.trigger_overdue_check()}

    from tasks.reminder_tasks import check_overdue_activity_logs_task

    result = check_overdue_activity_logs_task.delay()
    return {"mode": "queued", "task_id": result.id}


@router.post("/worker/queues/{queue_type}/process", response_model=ProcessQueueResponse)
def process_queue(
    queue_type: str,
    current_user: User = Depends(require_manager),
    worker: Optional[NotificationWorker] = Depends(get_notification_worker)
):
    """Deliver at most one job from a queue now (reminder, alert or deadline)."""
    job_type = _parse_type(queue_type)
    if worker is None:
        raise WorkerNotRunningError()

    outcome = worker.process_queue(job_type)
    if outcome is None:
        return {"queue": job_type.queue_name, "processed": False}

    job, delivery_status = outcome
    return {
        "queue": job_type.queue_name,
        "processed": True,
        "job_id": job.id,
        "status": delivery_status.value,
    }


@router.get("/delivery-status/{job_id}", response_model=DeliveryStatusResponse)
def get_delivery_status(
    job_id: str,
    current_user: User = Depends(require_manager),
    notification_service: NotificationService = Depends(get_notification_service)
):
    entry = notification_service.queue.get_delivery_status(job_id)
    if entry is None:
        raise NotFoundError("Delivery status", job_id)
    return entry


@router.post("/reminders", response_model=ReminderResponse, status_code=202)
def send_reminder(
    payload: ReminderRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Queue a reminder to one facilitator about one week."""
    job_id = notification_service.send_activity_log_reminder(payload.facilitator_id, payload.week_number, db)
    return {"job_id": job_id}
