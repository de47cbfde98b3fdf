"""
Scheduled Activity Log Reminder Tasks

Runs via Celery Beat scheduler; the overdue check can also be enqueued on
demand from the notifications ops endpoint.
"""

from typing import Dict
from sqlalchemy.orm import Session
from core.database import get_db_sync
from tasks import celery_app
from services.notification_service import NotificationService
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.send_weekly_activity_reminders")
def send_weekly_activity_reminders_task() -> Dict:
    """
    Queue Monday deadline notices for facilitators with grading not started.

    This task is called by Celery Beat every Monday morning.
    """
    db: Session = get_db_sync()

    try:
        job_ids = NotificationService().send_weekly_reminders(db)
        return {"status": "success", "reminders_queued": len(job_ids)}
    except Exception as e:
        logger.error(f"Error in send_weekly_activity_reminders_task: {str(e)}")
        return {"status": "error", "message": str(e)}
    finally:
        db.close()


@celery_app.task(name="tasks.check_overdue_activity_logs")
def check_overdue_activity_logs_task() -> Dict:
    """Remind facilitators about overdue logs and alert managers."""
    db: Session = get_db_sync()

    try:
        overdue_count = NotificationService().check_overdue_activity_logs(db)
        return {"status": "success", "overdue_count": overdue_count}
    except Exception as e:
        logger.error(f"Error in check_overdue_activity_logs_task: {str(e)}")
        return {"status": "error", "message": str(e)}
    finally:
        db.close()
