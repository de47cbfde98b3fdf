"""
Worker entry point.

Two ways to run:
- as a Celery worker: `celery -A main worker` picks up `celery_app` from here
  (scheduled reminder and overdue tasks)
- as the notification worker: `python main.py` drains the notification
  queues and runs the hourly overdue scan until SIGTERM/SIGINT

The API code is imported from API_DIR when set (the container mounts it at
/api), otherwise from the sibling apps/api checkout.
"""
import os
import sys
import signal
import threading
import logging

# Add API directory to path so we can import tasks
API_DIR = os.environ.get("API_DIR") or os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "api")
sys.path.insert(0, API_DIR)

# Import Celery app and tasks from API
from tasks import celery_app  # noqa: E402

# This makes Celery discover tasks
celery_app.autodiscover_tasks(['tasks'])

logger = logging.getLogger(__name__)


# Health check task
@celery_app.task(name="worker.health_check")
def health_check():
    """Health check task"""
    return {"status": "ok"}


def run_notification_worker() -> None:
    from core.logging import setup_logging
    from services.notification_worker import NotificationWorker

    setup_logging()
    worker = NotificationWorker()
    stopped = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, stopping notification worker")
        worker.stop()
        stopped.set()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    worker.start()
    while not stopped.wait(1):
        pass


if __name__ == "__main__":
    run_notification_worker()
