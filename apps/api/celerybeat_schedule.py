"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Weekly grading reminders - every Monday at 9 AM UTC
    'send-weekly-activity-reminders': {
        'task': 'tasks.send_weekly_activity_reminders',
        'schedule': crontab(hour=9, minute=0, day_of_week=1),  # Monday
    },
    # Overdue activity logs - daily at 6 PM UTC.
    # Deployments running the notification worker also scan hourly.
    'check-overdue-activity-logs': {
        'task': 'tasks.check_overdue_activity_logs',
        'schedule': crontab(hour=18, minute=0),
    },
}
