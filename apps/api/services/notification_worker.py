"""
Notification Worker

Long-lived background object running an APScheduler BackgroundScheduler with
two kinds of interval jobs ("lanes"):
- one queue-drain lane per notification type, every poll interval:
  pop at most one job, hand it to the email transport, record the outcome
- one overdue-scan lane: runs right after start, then every
  overdue-check interval

States are Stopped and Running. stop() shuts the scheduler down without
waiting; a tick already in progress finishes but nothing is scheduled after it.

The worker is constructed and owned by whoever runs it (apps/worker/main.py
or the API's startup hook); it installs no signal handlers itself.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db_sync
from core.exceptions import DeliveryError, WorkerNotRunningError
from services.email_service import EmailService, email_service
from services.notification_queue import DeliveryStatus, NotificationJob, NotificationType
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)

OVERDUE_LANE = "overdue_check"


def _setting(value, default):
    return default if value is None else value


class NotificationWorker:
    def __init__(
        self,
        notification_service: Optional[NotificationService] = None,
        transport: Optional[EmailService] = None,
        session_factory: Callable[[], Session] = get_db_sync,
        poll_interval_s: Optional[float] = None,
        overdue_check_interval_s: Optional[float] = None,
        block_timeout_s: Optional[int] = None,
    ):
        self.notification_service = notification_service or NotificationService()
        self.queue = self.notification_service.queue
        self.transport = transport or email_service
        self.session_factory = session_factory
        self.poll_interval_s = _setting(poll_interval_s, settings.NOTIFICATION_POLL_INTERVAL_S)
        self.overdue_check_interval_s = _setting(
            overdue_check_interval_s, settings.NOTIFICATION_OVERDUE_CHECK_INTERVAL_S
        )
        self.block_timeout_s = _setting(block_timeout_s, settings.NOTIFICATION_QUEUE_BLOCK_TIMEOUT_S)

        self._scheduler: Optional[BackgroundScheduler] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._scheduler is not None:
                logger.warning("Notification worker already running")
                return

            scheduler = BackgroundScheduler(timezone="UTC")
            for job_type in NotificationType:
                self._add_lane(scheduler, job_type.value, self._drain_once, self.poll_interval_s, args=[job_type])
            self._add_lane(
                scheduler,
                OVERDUE_LANE,
                self._check_overdue,
                self.overdue_check_interval_s,
                next_run_time=datetime.now(timezone.utc),
            )
            scheduler.start()
            self._scheduler = scheduler

        logger.info(
            f"Notification worker started (poll every {self.poll_interval_s}s, "
            f"overdue check every {self.overdue_check_interval_s}s)"
        )

    def stop(self) -> None:
        with self._lock:
            if self._scheduler is None:
                logger.warning("Notification worker is not running")
                return
            scheduler, self._scheduler = self._scheduler, None

        scheduler.shutdown(wait=False)
        logger.info("Notification worker stopped")

    def get_status(self) -> Dict:
        with self._lock:
            scheduler = self._scheduler
            active = {job.id for job in scheduler.get_jobs()} if scheduler is not None else set()
        return {
            "is_running": scheduler is not None,
            "workers": [{"type": job_type.value, "is_active": job_type.value in active} for job_type in NotificationType],
            "overdue_check_active": OVERDUE_LANE in active,
        }

    # ------------------------------------------------------------------
    # Manual triggers
    # ------------------------------------------------------------------

    def trigger_overdue_check(self) -> int:
        self._require_running()
        return self._check_overdue()

    def process_queue(self, job_type: NotificationType) -> Optional[Tuple[NotificationJob, DeliveryStatus]]:
        """Drain one job of a type right now. None when the queue is empty."""
        self._require_running()
        return self._drain_once(NotificationType(job_type))

    def _require_running(self) -> None:
        if not self.is_running:
            raise WorkerNotRunningError()

    # ------------------------------------------------------------------
    # Lanes
    # ------------------------------------------------------------------

    def _add_lane(self, scheduler, name: str, callback: Callable, interval_s: float, args=None, **kwargs) -> None:
        scheduler.add_job(
            self._run_lane,
            trigger="interval",
            seconds=interval_s,
            args=[name, callback, *(args or [])],
            id=name,
            replace_existing=True,
            max_instances=1,  # a slow tick delays the lane instead of overlapping it
            coalesce=True,
            **kwargs,
        )

    def _run_lane(self, name: str, callback: Callable, *args):
        try:
            return callback(*args)
        except Exception as e:
            # A failing tick must never take the lane down
            logger.exception(f"Notification worker lane {name} failed: {e}")
            return None

    def _drain_once(self, job_type: NotificationType) -> Optional[Tuple[NotificationJob, DeliveryStatus]]:
        job = self.queue.dequeue_blocking(job_type, timeout=self.block_timeout_s)
        if job is None:
            return None
        return job, self._deliver(job)

    def _deliver(self, job: NotificationJob) -> DeliveryStatus:
        recipient = job.data.recipient
        message = job.data.message
        logger.info(
            f"Delivering {job.type.value} {job.id}: {message.subject}",
            extra={"extra_fields": {"job_id": job.id, "recipient": recipient.email, "body": message.body}},
        )

        try:
            message_id = self.transport.send_notification(
                to_email=recipient.email,
                to_name=recipient.name,
                subject=message.subject,
                body=message.body,
            )
        except DeliveryError as e:
            # Not requeued: delivery is at-most-once
            logger.error(f"Notification {job.id} dropped: {e}", extra={"extra_fields": {"job_id": job.id}})
            self.queue.record_delivery_status(job.id, DeliveryStatus.FAILED, error=str(e))
            return DeliveryStatus.FAILED

        self.queue.record_delivery_status(job.id, DeliveryStatus.DELIVERED)
        logger.info(f"Notification {job.id} delivered ({message_id})", extra={"extra_fields": {"job_id": job.id}})
        return DeliveryStatus.DELIVERED

    def _check_overdue(self) -> int:
        db = self.session_factory()
        try:
            return self.notification_service.check_overdue_activity_logs(db)
        finally:
            db.close()
