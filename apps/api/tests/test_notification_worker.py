"""
Tests for the notification worker lifecycle and its manual triggers.

Lanes run on a real background scheduler; poll intervals are an hour so only
the immediate overdue scan fires during a test.
"""
import threading
from unittest.mock import MagicMock

import pytest

from core.exceptions import DeliveryError, WorkerNotRunningError
from services.notification_queue import (
    DeliveryStatus,
    Message,
    NotificationType,
    Recipient,
    ReminderMetadata,
    ReminderPayload,
)
from services.notification_worker import NotificationWorker


def _reminder():
    return ReminderPayload(
        recipient=Recipient(id="fac-1", email="alex@example.com", name="Alex Facilitator"),
        message=Message(subject="Activity Log Reminder - Week 2", body="Please submit week 2."),
        metadata=ReminderMetadata(facilitator_id="fac-1", week_number=2),
    )


@pytest.fixture
def overdue_ran():
    return threading.Event()


@pytest.fixture
def service(queue, overdue_ran):
    service = MagicMock()
    service.queue = queue

    def _check(db):
        overdue_ran.set()
        return 4

    service.check_overdue_activity_logs.side_effect = _check
    return service


@pytest.fixture
def transport():
    transport = MagicMock()
    transport.send_notification.return_value = "<msg-1@course-activity.local>"
    return transport


@pytest.fixture
def worker(service, transport):
    worker = NotificationWorker(
        notification_service=service,
        transport=transport,
        session_factory=MagicMock,
        poll_interval_s=3600,
        overdue_check_interval_s=3600,
        block_timeout_s=1,
    )
    yield worker
    if worker.is_running:
        worker.stop()


class TestLifecycle:
    def test_starts_stopped(self, worker):
        status = worker.get_status()

        assert status["is_running"] is False
        assert status["overdue_check_active"] is False
        assert [lane["type"] for lane in status["workers"]] == ["REMINDER", "ALERT", "DEADLINE"]
        assert not any(lane["is_active"] for lane in status["workers"])

    def test_start_activates_every_lane(self, worker):
        worker.start()
        status = worker.get_status()

        assert status["is_running"] is True
        assert status["overdue_check_active"] is True
        assert all(lane["is_active"] for lane in status["workers"])

    def test_overdue_scan_runs_immediately_on_start(self, worker, service, overdue_ran):
        worker.start()

        assert overdue_ran.wait(timeout=5)
        service.check_overdue_activity_logs.assert_called()

    def test_start_twice_is_a_no_op(self, worker, caplog):
        worker.start()
        scheduler = worker._scheduler

        worker.start()

        assert worker._scheduler is scheduler
        assert len(scheduler.get_jobs()) == 4
        assert "already running" in caplog.text

    def test_stop_cancels_every_lane(self, worker):
        worker.start()
        worker.stop()
        status = worker.get_status()

        assert status["is_running"] is False
        assert status["overdue_check_active"] is False
        assert not any(lane["is_active"] for lane in status["workers"])

    def test_stop_when_stopped_is_a_no_op(self, worker, caplog):
        worker.stop()

        assert worker.is_running is False
        assert "not running" in caplog.text

    def test_restart(self, worker):
        worker.start()
        worker.stop()
        worker.start()

        assert worker.get_status()["is_running"] is True


class TestManualTriggers:
    def test_require_running_worker(self, worker):
        with pytest.raises(WorkerNotRunningError):
            worker.trigger_overdue_check()
        with pytest.raises(WorkerNotRunningError):
            worker.process_queue(NotificationType.ALERT)

    def test_trigger_overdue_check_returns_count(self, worker, overdue_ran):
        worker.start()
        overdue_ran.wait(timeout=5)

        assert worker.trigger_overdue_check() == 4

    def test_process_queue_delivers_and_records(self, worker, queue, transport):
        job_id = queue.enqueue(NotificationType.REMINDER, _reminder())
        worker.start()

        job, delivery_status = worker.process_queue(NotificationType.REMINDER)

        assert job.id == job_id
        assert delivery_status is DeliveryStatus.DELIVERED
        transport.send_notification.assert_called_once_with(
            to_email="alex@example.com",
            to_name="Alex Facilitator",
            subject="Activity Log Reminder - Week 2",
            body="Please submit week 2.",
        )
        assert queue.get_delivery_status(job_id)["status"] == "delivered"

    def test_delivery_failure_is_recorded_and_job_dropped(self, worker, queue, transport):
        transport.send_notification.side_effect = DeliveryError("alex@example.com", "Connection refused")
        job_id = queue.enqueue(NotificationType.REMINDER, _reminder())
        worker.start()

        _, delivery_status = worker.process_queue(NotificationType.REMINDER)

        assert delivery_status is DeliveryStatus.FAILED
        entry = queue.get_delivery_status(job_id)
        assert entry["status"] == "failed"
        assert "Connection refused" in entry["error"]
        assert queue.queue_length(NotificationType.REMINDER) == 0

    def test_empty_queue(self, worker):
        worker.start()

        assert worker.process_queue(NotificationType.DEADLINE) is None

    def test_only_the_requested_queue_is_drained(self, worker, queue):
        queue.enqueue(NotificationType.REMINDER, _reminder())
        worker.start()

        assert worker.process_queue(NotificationType.ALERT) is None
        assert queue.queue_length(NotificationType.REMINDER) == 1


class TestLaneResilience:
    def test_failing_tick_reschedules(self, worker, service, overdue_ran):
        service.check_overdue_activity_logs.side_effect = lambda db: (overdue_ran.set(), 1 / 0)
        worker.start()

        assert overdue_ran.wait(timeout=5)
        # The lane catches the error and stays scheduled
        assert worker.get_status()["overdue_check_active"] is True
        assert worker._scheduler.get_job("overdue_check").next_run_time is not None


def test_explicit_zero_settings_are_kept(service, transport):
    worker = NotificationWorker(
        notification_service=service,
        transport=transport,
        poll_interval_s=0,
        overdue_check_interval_s=0,
        block_timeout_s=0,
    )

    assert worker.poll_interval_s == 0
    assert worker.overdue_check_interval_s == 0
    assert worker.block_timeout_s == 0
