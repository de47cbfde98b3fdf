"""
Notification Service

Turns activity-log events into queued notification jobs:
- reminders to a facilitator about a week's log
- alerts to every active manager (submissions, missed deadlines)
- Monday deadline notices for facilitators with unfinished grading

Nothing here talks to the email transport; jobs are delivered later by the
notification worker.
"""
import logging
from datetime import datetime, timedelta, timezone
from itertools import groupby
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from core.config import settings
from core.exceptions import NotFoundError
from models import (
    ActivityTracker,
    CourseOffering,
    Facilitator,
    GRADING_TASK_FIELDS,
    MAX_WEEK_NUMBER,
    Manager,
    TaskStatus,
    User,
)
from services.activity_completion import current_week_number, stored_date_cutoff
from services.activity_log_service import find_overdue_activity_logs
from services.notification_queue import (
    AlertMetadata,
    AlertPayload,
    DeadlineMetadata,
    DeadlinePayload,
    Message,
    NotificationQueue,
    NotificationType,
    Priority,
    Recipient,
    ReminderMetadata,
    ReminderPayload,
)

logger = logging.getLogger(__name__)


def _recipient(person_id: UUID, user: User) -> Recipient:
    return Recipient(id=str(person_id), email=user.email, name=user.full_name)


class NotificationService:
    def __init__(self, queue: Optional[NotificationQueue] = None, grace_days: Optional[int] = None):
        self.queue = queue or NotificationQueue()
        self.grace_days = settings.OVERDUE_GRACE_DAYS if grace_days is None else grace_days

    def _active_managers(self, db: Session) -> List[Manager]:
        return (
            db.query(Manager)
            .join(Manager.user)
            .options(joinedload(Manager.user))
            .filter(Manager.is_active.is_(True), User.is_active.is_(True))
            .all()
        )

    def send_activity_log_reminder(
        self,
        facilitator_id: UUID,
        week_number: int,
        db: Session,
        record_id: Optional[UUID] = None,
    ) -> str:
        """Queue a reminder to one facilitator about one week. NotFoundError if they don't resolve."""
        facilitator = (
            db.query(Facilitator)
            .options(joinedload(Facilitator.user))
            .filter(Facilitator.id == facilitator_id)
            .first()
        )
        if not facilitator or not facilitator.user:
            raise NotFoundError("Facilitator", str(facilitator_id))

        payload = ReminderPayload(
            recipient=_recipient(facilitator.id, facilitator.user),
            message=Message(
                subject=f"Activity Log Reminder - Week {week_number}",
                body=(
                    f"Hi {facilitator.user.first_name},\n\n"
                    f"Your activity log for week {week_number} has not been submitted yet. "
                    f"Please update your task statuses and submit it as soon as possible."
                ),
                priority=Priority.NORMAL,
            ),
            metadata=ReminderMetadata(
                facilitator_id=str(facilitator.id),
                week_number=week_number,
                record_id=str(record_id) if record_id else None,
            ),
        )
        return self.queue.enqueue(NotificationType.REMINDER, payload)

    def send_deadline_alert(self, missed_records: Sequence[ActivityTracker], db: Session) -> List[str]:
        """One missed-deadline alert per active manager. Returns the job ids."""
        if not missed_records:
            return []

        facilitator_count = len({record.facilitator_id for record in missed_records})
        job_ids = []
        for manager in self._active_managers(db):
            payload = AlertPayload(
                recipient=_recipient(manager.id, manager.user),
                message=Message(
                    subject=f"Missed Activity Log Deadlines ({len(missed_records)})",
                    body=(
                        f"Hi {manager.user.first_name},\n\n"
                        f"{len(missed_records)} activity log(s) from {facilitator_count} facilitator(s) "
                        f"are more than {self.grace_days} days past their week end and still unsubmitted."
                    ),
                    priority=Priority.HIGH,
                ),
                metadata=AlertMetadata(
                    alert_kind="missed_deadlines",
                    manager_id=str(manager.id),
                    missed_count=len(missed_records),
                    missed_record_ids=[str(record.id) for record in missed_records],
                ),
            )
            job_ids.append(self.queue.enqueue(NotificationType.ALERT, payload))

        logger.info(f"Deadline alert queued for {len(job_ids)} managers ({len(missed_records)} missed logs)")
        return job_ids

    def notify_activity_log_submission(self, record: ActivityTracker, submitter: User, db: Session) -> List[str]:
        """One submission alert per active manager. Returns the job ids."""
        offering = record.course_offering
        course = offering.display_name if offering is not None else "Module"

        job_ids = []
        for manager in self._active_managers(db):
            payload = AlertPayload(
                recipient=_recipient(manager.id, manager.user),
                message=Message(
                    subject=f"Activity Log Submitted - Week {record.week_number}",
                    body=(
                        f"{submitter.full_name} submitted the week {record.week_number} "
                        f"activity log for {course}."
                    ),
                    priority=Priority.LOW,
                ),
                metadata=AlertMetadata(
                    alert_kind="submission",
                    manager_id=str(manager.id),
                    record_id=str(record.id),
                    facilitator_id=str(record.facilitator_id),
                    week_number=record.week_number,
                    course=course,
                ),
            )
            job_ids.append(self.queue.enqueue(NotificationType.ALERT, payload))

        logger.info(f"Submission of {record.id} announced to {len(job_ids)} managers")
        return job_ids

    def check_overdue_activity_logs(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Remind facilitators about every overdue log, then alert managers once.

        Overdue: unsubmitted and the week end had passed `grace_days` before now,
        with end dates counting from their midnight as in the read endpoints.
        A facilitator that cannot be resolved is logged and skipped; queue
        failures abort the run. Returns the number of overdue logs found.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = stored_date_cutoff(now - timedelta(days=self.grace_days))

        overdue = find_overdue_activity_logs(db, cutoff)
        if not overdue:
            logger.info("Overdue check: no overdue activity logs")
            return 0

        for facilitator_id, records in groupby(overdue, key=lambda record: record.facilitator_id):
            for record in records:
                try:
                    self.send_activity_log_reminder(facilitator_id, record.week_number, db, record_id=record.id)
                except NotFoundError as e:
                    logger.error(
                        f"Overdue reminder skipped for activity log {record.id}: {e}",
                        extra={"extra_fields": {"activity_log_id": str(record.id), "week_number": record.week_number}},
                    )

        try:
            self.send_deadline_alert(overdue, db)
        except NotFoundError as e:
            logger.error(f"Deadline alert skipped: {e}")

        logger.info(f"Overdue check: {len(overdue)} overdue activity logs (week ends up to {cutoff})")
        return len(overdue)

    def send_weekly_reminders(self, db: Session, now: Optional[datetime] = None) -> List[str]:
        """
        Monday reminder: one deadline notice per active facilitator with pending grading.

        An active course offering is pending when the current week has no log yet,
        or its log still has a grading task Not Started.
        """
        now = now or datetime.now(timezone.utc)
        week_number = min(current_week_number(now), MAX_WEEK_NUMBER)
        not_started = TaskStatus.NOT_STARTED.value

        facilitators = (
            db.query(Facilitator)
            .join(Facilitator.user)
            .options(joinedload(Facilitator.user))
            .filter(Facilitator.is_active.is_(True), User.is_active.is_(True))
            .all()
        )

        job_ids = []
        for facilitator in facilitators:
            offerings = db.query(CourseOffering).filter(
                CourseOffering.facilitator_id == facilitator.id,
                CourseOffering.is_active.is_(True),
            ).all()
            if not offerings:
                continue

            logs = {
                log.allocation_id: log
                for log in db.query(ActivityTracker).filter(
                    ActivityTracker.allocation_id.in_([offering.id for offering in offerings]),
                    ActivityTracker.week_number == week_number,
                )
            }
            pending = [
                offering for offering in offerings
                if offering.id not in logs
                or any(getattr(logs[offering.id], field) == not_started for field in GRADING_TASK_FIELDS)
            ]
            if not pending:
                continue

            courses = ", ".join(offering.display_name for offering in pending)
            payload = DeadlinePayload(
                recipient=_recipient(facilitator.id, facilitator.user),
                message=Message(
                    subject=f"Weekly Activity Log Reminder - Week {week_number}",
                    body=(
                        f"Hi {facilitator.user.first_name},\n\n"
                        f"Grading for week {week_number} has not started yet for "
                        f"{len(pending)} course(s): {courses}. Please update your activity logs."
                    ),
                    priority=Priority.NORMAL,
                ),
                metadata=DeadlineMetadata(
                    facilitator_id=str(facilitator.id),
                    week_number=week_number,
                    pending_courses=len(pending),
                ),
            )
            job_ids.append(self.queue.enqueue(NotificationType.DEADLINE, payload))

        logger.info(f"Weekly reminders: {len(job_ids)} facilitators notified for week {week_number}")
        return job_ids


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """FastAPI dependency: process-wide service over the shared queue client."""
    global _notification_service

    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
