"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

# Schedule configuration
beat_schedule = {
    # Check-in forms past their deadline stop showing as pending.
    'expire-check-in-forms': {
        'task': 'tasks.expire_check_in_forms',
        'schedule': crontab(minute=5),  # Hourly
    },
    # Expired instances are kept for a while so coaches can see what lapsed.
    'purge-expired-check-in-forms': {
        'task': 'tasks.purge_expired_check_in_forms',
        'schedule': crontab(hour=9, minute=30),  # Daily, 09:30 UTC
    },
}
