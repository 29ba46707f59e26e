"""Celery Beat schedule and task routing.

Tasks:
- Every 5 minutes: open/close sub-events whose enrollment dates were reached
- Hourly: expire abandoned enrollment carts
"""

from celery.schedules import crontab


CELERY_BEAT_SCHEDULE = {
    # ==========================================================================
    # Enrollment maintenance
    # ==========================================================================

    "sweep-enrollment-windows": {
        "task": "badman.tasks.enrollment_tasks.sweep_enrollment_windows_task",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": "enrollment"},
    },

    "cleanup-expired-carts-hourly": {
        "task": "badman.tasks.enrollment_tasks.cleanup_expired_carts_task",
        "schedule": crontab(minute=10),  # Every hour at :10
        "options": {"queue": "enrollment"},
    },
}


CELERY_TASK_ROUTES = {
    # Vendor sync hits an external API and can be slow
    "badman.tasks.sync_tasks.*": {"queue": "sync"},
    "badman.tasks.enrollment_tasks.*": {"queue": "enrollment"},
}
