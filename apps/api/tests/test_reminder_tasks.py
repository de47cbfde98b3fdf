"""
Tests for the scheduled reminder tasks and their beat schedule.
"""
from unittest.mock import MagicMock, patch

from celery.schedules import crontab

from celerybeat_schedule import beat_schedule
from tasks import celery_app
from tasks.reminder_tasks import check_overdue_activity_logs_task, send_weekly_activity_reminders_task


class TestBeatSchedule:
    def test_weekly_reminders_every_monday_morning(self):
        entry = beat_schedule["send-weekly-activity-reminders"]
        assert entry["task"] == "tasks.send_weekly_activity_reminders"
        assert entry["schedule"] == crontab(hour=9, minute=0, day_of_week=1)

    def test_daily_overdue_check(self):
        entry = beat_schedule["check-overdue-activity-logs"]
        assert entry["task"] == "tasks.check_overdue_activity_logs"
        assert entry["schedule"] == crontab(hour=18, minute=0)

    def test_scheduled_tasks_are_registered(self):
        for entry in beat_schedule.values():
            assert entry["task"] in celery_app.tasks


@patch("tasks.reminder_tasks.NotificationService")
@patch("tasks.reminder_tasks.get_db_sync")
class TestTasks:
    def test_weekly_reminders(self, mock_get_db, mock_service):
        db = MagicMock()
        mock_get_db.return_value = db
        mock_service.return_value.send_weekly_reminders.return_value = ["DEADLINE_1_a", "DEADLINE_2_b"]

        result = send_weekly_activity_reminders_task()

        assert result == {"status": "success", "reminders_queued": 2}
        mock_service.return_value.send_weekly_reminders.assert_called_once_with(db)
        db.close.assert_called_once()

    def test_overdue_check(self, mock_get_db, mock_service):
        db = MagicMock()
        mock_get_db.return_value = db
        mock_service.return_value.check_overdue_activity_logs.return_value = 3

        result = check_overdue_activity_logs_task()

        assert result == {"status": "success", "overdue_count": 3}
        db.close.assert_called_once()

    def test_failure_is_reported_and_session_closed(self, mock_get_db, mock_service):
        db = MagicMock()
        mock_get_db.return_value = db
        mock_service.return_value.check_overdue_activity_logs.side_effect = RuntimeError("redis down")

        result = check_overdue_activity_logs_task()

        assert result == {"status": "error", "message": "redis down"}
        db.close.assert_called_once()
