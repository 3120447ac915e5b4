"""
Celery worker entry point.

    celery -A main worker --beat --loglevel=info

The API package provides the Celery app and its tasks.
"""
from tasks import celery_app  # noqa: F401


@celery_app.task(name="worker.health_check")
def health_check():
    """Health check task"""
    return {"status": "ok"}
