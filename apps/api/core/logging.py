"""
Logging setup shared by the API, the notification worker and Celery tasks.

JSON lines in production (one object per record), plain text otherwise.
Notification and activity-log context travels in `extra={"extra_fields": {...}}`;
the keys listed in CONTEXT_FIELDS become top-level JSON keys so log search
can filter on them, anything else is nested under "context".
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from core.config import settings

CONTEXT_FIELDS = ("job_id", "recipient", "activity_log_id", "week_number", "facilitator_id")

# Chatty at INFO; only their warnings are worth keeping
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "redis", "apscheduler", "celery.worker.strategy")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
            "environment": settings.ENVIRONMENT,
        }

        fields = dict(getattr(record, "extra_fields", None) or {})
        for key in CONTEXT_FIELDS:
            if key in fields:
                entry[key] = fields.pop(key)
        if fields:
            entry["context"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging() -> logging.Logger:
    """Install a single stdout handler on the root logger. Safe to call more than once."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
