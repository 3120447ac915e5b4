"""
Celery tasks for check-in form housekeeping.
"""
import logging
from typing import Dict, Optional

from celery import Task
from sqlalchemy.orm import Session

from core.database import get_db_sync
from services.check_in_forms import expire_overdue_instances, purge_expired_instances
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.expire_check_in_forms", bind=True)
def expire_check_in_forms_task(self: Task) -> Dict:
    """Mark sent instances whose deadline has passed as expired."""
    db: Session = get_db_sync()
    try:
        expired = expire_overdue_instances(db)
        db.commit()
        if expired:
            logger.info(f"Expired {expired} check-in form instances")
        return {"status": "success", "expired": expired}
    except Exception as e:
        db.rollback()
        logger.error(f"Check-in form expiry failed: {e}", exc_info=True)
        raise
    finally:
        db.close()


@celery_app.task(name="tasks.purge_expired_check_in_forms", bind=True)
def purge_expired_check_in_forms_task(self: Task, older_than_days: Optional[int] = None) -> Dict:
    """
    Delete expired instances whose deadline passed more than
    CHECK_IN_FORM_PURGE_AFTER_DAYS ago.
    """
    db: Session = get_db_sync()
    try:
        purged = purge_expired_instances(db, older_than_days=older_than_days)
        db.commit()
        logger.info(
            f"Purged {purged} expired check-in form instances",
            extra={"extra_fields": {"purged": purged, "task_id": str(self.request.id)}},
        )
        return {"status": "success", "purged": purged}
    except Exception as e:
        db.rollback()
        logger.error(f"Check-in form purge failed: {e}", exc_info=True)
        raise
    finally:
        db.close()
