"""
Notification Queue (Redis lists)

One list per notification type:
    notification:reminder | notification:alert | notification:deadline

Contract:
- enqueue:  LPUSH (newest at head), never blocks
- dequeue:  BRPOP (oldest first); popping IS claiming - there is no
            visibility timeout, ack or redelivery
- status:   SETEX notification:status:<job id>, 7-day TTL, last write wins

Jobs are typed: `data` is a tagged union selected by the job type, so every
payload carries exactly the metadata its type defines.

`attempts` / `max_attempts` are carried on every job but nothing increments
or checks them yet; delivery is at-most-once.
"""
import json
import logging
import secrets
import string
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

import redis
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator
from redis.exceptions import ConnectionError, TimeoutError

from core.cache import get_queue_client
from core.config import settings
from core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

QUEUE_PREFIX = "notification"
STATUS_PREFIX = f"{QUEUE_PREFIX}:status"
_ID_ALPHABET = string.ascii_lowercase + string.digits


class NotificationType(str, Enum):
    REMINDER = "REMINDER"
    ALERT = "ALERT"
    DEADLINE = "DEADLINE"

    @property
    def queue_name(self) -> str:
        return f"{QUEUE_PREFIX}:{self.value.lower()}"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


class Recipient(BaseModel):
    id: str
    email: str
    name: str


class Message(BaseModel):
    subject: str
    body: str
    priority: Priority = Priority.NORMAL


class ReminderMetadata(BaseModel):
    facilitator_id: str
    week_number: int
    record_id: Optional[str] = None


class AlertMetadata(BaseModel):
    alert_kind: Literal["submission", "missed_deadlines"]
    manager_id: str
    # submission alerts
    record_id: Optional[str] = None
    facilitator_id: Optional[str] = None
    week_number: Optional[int] = None
    course: Optional[str] = None
    # missed-deadline alerts
    missed_count: Optional[int] = None
    missed_record_ids: List[str] = Field(default_factory=list)


class DeadlineMetadata(BaseModel):
    facilitator_id: str
    week_number: int
    pending_courses: int


class ReminderPayload(BaseModel):
    kind: Literal["REMINDER"] = "REMINDER"
    recipient: Recipient
    message: Message
    metadata: ReminderMetadata


class AlertPayload(BaseModel):
    kind: Literal["ALERT"] = "ALERT"
    recipient: Recipient
    message: Message
    metadata: AlertMetadata


class DeadlinePayload(BaseModel):
    kind: Literal["DEADLINE"] = "DEADLINE"
    recipient: Recipient
    message: Message
    metadata: DeadlineMetadata


NotificationPayload = Annotated[
    Union[ReminderPayload, AlertPayload, DeadlinePayload],
    Field(discriminator="kind"),
]


class NotificationJob(BaseModel):
    id: str
    type: NotificationType
    data: NotificationPayload
    timestamp: datetime
    attempts: int = 0
    max_attempts: int = 3

    @model_validator(mode="after")
    def _payload_matches_type(self):
        if self.data.kind != self.type.value:
            raise ValueError(f"{self.data.kind} payload cannot be queued as {self.type.value}")
        return self


def new_job_id(job_type: NotificationType) -> str:
    """<TYPE>_<epoch ms>_<9 random base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{job_type.value}_{int(time.time() * 1000)}_{suffix}"


def _status_key(job_id: str) -> str:
    return f"{STATUS_PREFIX}:{job_id}"


@contextmanager
def _redis_call(operation: str):
    try:
        yield
    except (ConnectionError, TimeoutError) as e:
        logger.error(f"Redis unavailable during {operation}: {e}")
        raise StoreUnavailableError("Redis", str(e)) from e


class NotificationQueue:
    """Redis-backed per-type work lists plus the delivery-status log."""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        status_ttl_s: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self._client = client
        self.status_ttl_s = status_ttl_s or settings.NOTIFICATION_STATUS_TTL_S
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_queue_client()
        return self._client

    def enqueue(self, job_type: NotificationType, payload: NotificationPayload) -> str:
        """Wrap payload in a fresh job, push it onto the head of its type's list, return the id."""
        job_type = NotificationType(job_type)
        job = NotificationJob(
            id=new_job_id(job_type),
            type=job_type,
            data=payload,
            timestamp=datetime.now(timezone.utc),
            max_attempts=self.max_attempts,
        )
        with _redis_call("enqueue"):
            self.client.lpush(job_type.queue_name, job.model_dump_json())

        logger.info(f"Notification queued: {job.id} -> {job.data.recipient.email}")
        return job.id

    def dequeue_blocking(self, job_type: NotificationType, timeout: int = 0) -> Optional[NotificationJob]:
        """
        Pop the oldest job of a type, blocking until one arrives.

        timeout=0 blocks indefinitely; otherwise returns None after `timeout`
        seconds with nothing queued. A popped job is gone from the queue
        whatever happens to it next.
        """
        job_type = NotificationType(job_type)
        with _redis_call("dequeue"):
            item = self.client.brpop(job_type.queue_name, timeout=timeout)
        if item is None:
            return None

        _, raw = item
        try:
            return NotificationJob.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.error(f"Dropping malformed job from {job_type.queue_name}: {e}")
            return None

    def record_delivery_status(self, job_id: str, status: DeliveryStatus, error: Optional[str] = None) -> None:
        entry = {
            "job_id": job_id,
            "status": DeliveryStatus(status).value,
            "error": error,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
        }
        with _redis_call("record_delivery_status"):
            self.client.setex(_status_key(job_id), self.status_ttl_s, json.dumps(entry))

    def get_delivery_status(self, job_id: str) -> Optional[dict]:
        """Status entry for a job, or None if never written or expired."""
        with _redis_call("get_delivery_status"):
            raw = self.client.get(_status_key(job_id))
        if not raw:
            return None
        return json.loads(raw)

    def queue_length(self, job_type: NotificationType) -> int:
        with _redis_call("queue_length"):
            return self.client.llen(NotificationType(job_type).queue_name)
