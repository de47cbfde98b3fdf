"""
Tests for the Redis-backed notification queue.

Uses the in-memory FakeRedis from conftest; a BrokenRedis double simulates
an unreachable server.
"""
import json
import re
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ConnectionError

from core.exceptions import StoreUnavailableError
from services.notification_queue import (
    AlertMetadata,
    AlertPayload,
    DeliveryStatus,
    Message,
    NotificationJob,
    NotificationQueue,
    NotificationType,
    Recipient,
    ReminderMetadata,
    ReminderPayload,
)


class BrokenRedis:
    """Every call fails the way redis-py does when the server is down."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise ConnectionError("Error 111 connecting to redis:6379. Connection refused.")
        return _fail


def _reminder(week_number=1, email="alex@example.com"):
    return ReminderPayload(
        recipient=Recipient(id="fac-1", email=email, name="Alex Facilitator"),
        message=Message(subject=f"Activity Log Reminder - Week {week_number}", body="Please submit."),
        metadata=ReminderMetadata(facilitator_id="fac-1", week_number=week_number),
    )


def _alert():
    return AlertPayload(
        recipient=Recipient(id="mgr-1", email="morgan@example.com", name="Morgan Manager"),
        message=Message(subject="Activity Log Submitted - Week 1", body="Submitted."),
        metadata=AlertMetadata(alert_kind="submission", manager_id="mgr-1", week_number=1),
    )


class TestEnqueue:
    def test_job_id_format(self, queue):
        job_id = queue.enqueue(NotificationType.REMINDER, _reminder())
        assert re.fullmatch(r"REMINDER_\d{13}_[a-z0-9]{9}", job_id)

    def test_job_ids_are_unique(self, queue):
        ids = {queue.enqueue(NotificationType.REMINDER, _reminder()) for _ in range(20)}
        assert len(ids) == 20

    def test_pushes_onto_the_type_list(self, queue, fake_redis):
        queue.enqueue(NotificationType.ALERT, _alert())

        assert fake_redis.llen("notification:alert") == 1
        assert queue.queue_length(NotificationType.ALERT) == 1
        stored = json.loads(fake_redis._lists["notification:alert"][0])
        assert stored["type"] == "ALERT"
        assert stored["attempts"] == 0
        assert stored["max_attempts"] == 3
        assert stored["data"]["recipient"]["email"] == "morgan@example.com"

    def test_payload_must_match_job_type(self, queue):
        with pytest.raises(PydanticValidationError):
            queue.enqueue(NotificationType.ALERT, _reminder())

    def test_store_unavailable(self):
        queue = NotificationQueue(client=BrokenRedis())

        with pytest.raises(StoreUnavailableError) as exc_info:
            queue.enqueue(NotificationType.REMINDER, _reminder())
        assert exc_info.value.status_code == 503


class TestDequeue:
    def test_types_are_isolated(self, queue):
        queue.enqueue(NotificationType.REMINDER, _reminder())

        assert queue.dequeue_blocking(NotificationType.ALERT, timeout=1) is None
        assert queue.dequeue_blocking(NotificationType.DEADLINE, timeout=1) is None
        assert queue.dequeue_blocking(NotificationType.REMINDER, timeout=1) is not None

    def test_oldest_job_first(self, queue):
        ids = [queue.enqueue(NotificationType.REMINDER, _reminder(week_number=n)) for n in (1, 2, 3)]

        popped = [queue.dequeue_blocking(NotificationType.REMINDER, timeout=1).id for _ in ids]

        assert popped == ids

    def test_popped_job_is_gone(self, queue):
        queue.enqueue(NotificationType.REMINDER, _reminder())
        job = queue.dequeue_blocking(NotificationType.REMINDER, timeout=1)

        assert isinstance(job, NotificationJob)
        assert isinstance(job.data, ReminderPayload)
        assert job.data.metadata.week_number == 1
        assert queue.queue_length(NotificationType.REMINDER) == 0
        assert queue.dequeue_blocking(NotificationType.REMINDER, timeout=1) is None

    def test_malformed_entry_dropped(self, queue, fake_redis):
        fake_redis.lpush("notification:deadline", "{not json")

        assert queue.dequeue_blocking(NotificationType.DEADLINE, timeout=1) is None
        assert fake_redis.llen("notification:deadline") == 0

    def test_store_unavailable(self):
        queue = NotificationQueue(client=BrokenRedis())

        with pytest.raises(StoreUnavailableError):
            queue.dequeue_blocking(NotificationType.REMINDER, timeout=1)


class TestDeliveryStatus:
    def test_recording_twice_leaves_one_entry(self, queue, fake_redis):
        queue.record_delivery_status("REMINDER_1_abc", DeliveryStatus.DELIVERED)
        queue.record_delivery_status("REMINDER_1_abc", DeliveryStatus.DELIVERED)

        assert fake_redis.keys("notification:status:*") == ["notification:status:REMINDER_1_abc"]
        assert queue.get_delivery_status("REMINDER_1_abc")["status"] == "delivered"

    def test_last_write_wins(self, queue):
        queue.record_delivery_status("ALERT_1_abc", DeliveryStatus.FAILED, error="timeout")
        queue.record_delivery_status("ALERT_1_abc", DeliveryStatus.DELIVERED)

        entry = queue.get_delivery_status("ALERT_1_abc")
        assert entry["status"] == "delivered"
        assert entry["error"] is None

    def test_expires_after_seven_days(self, queue, fake_redis):
        queue.record_delivery_status("ALERT_1_abc", "failed", error="refused")

        assert fake_redis._ttls["notification:status:ALERT_1_abc"] == 7 * 24 * 3600
        entry = queue.get_delivery_status("ALERT_1_abc")
        assert entry["job_id"] == "ALERT_1_abc"
        assert entry["error"] == "refused"
        assert datetime.fromisoformat(entry["recorded_at"]) <= datetime.now(timezone.utc)

    def test_missing_status_is_none(self, queue):
        assert queue.get_delivery_status("DEADLINE_1_missing") is None
