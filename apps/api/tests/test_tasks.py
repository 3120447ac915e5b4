"""
Tests for the check-in form housekeeping tasks, run inline.
"""
from datetime import timedelta

import pytest

from core.database import SessionLocal
from core.timezone import utcnow
from models import CheckInForm, CheckInFormInstance
from tasks import check_in_tasks


@pytest.fixture
def task_session(monkeypatch):
    monkeypatch.setattr(check_in_tasks, "get_db_sync", SessionLocal)


def _instance(db_session, coach, client_user, expires_at, status="sent"):
    form = CheckInForm(coach_id=coach.id, title="Weekly")
    db_session.add(form)
    db_session.flush()
    db_session.add(
        CheckInFormInstance(
            form_id=form.id,
            client_id=client_user.id,
            coach_id=coach.id,
            status=status,
            sent_at=expires_at - timedelta(days=7),
            expires_at=expires_at,
        )
    )
    db_session.commit()


def test_expire_task(task_session, db_session, coach, client_user):
    _instance(db_session, coach, client_user, utcnow() - timedelta(hours=2))
    _instance(db_session, coach, client_user, utcnow() + timedelta(days=3))

    result = check_in_tasks.expire_check_in_forms_task()
    assert result == {"status": "success", "expired": 1}

    db_session.expire_all()
    statuses = sorted(i.status for i in db_session.query(CheckInFormInstance).all())
    assert statuses == ["expired", "sent"]


def test_purge_task(task_session, db_session, coach, client_user):
    _instance(db_session, coach, client_user, utcnow() - timedelta(days=45), status="expired")
    _instance(db_session, coach, client_user, utcnow() - timedelta(days=45), status="completed")

    result = check_in_tasks.purge_expired_check_in_forms_task(older_than_days=30)
    assert result == {"status": "success", "purged": 1}

    db_session.expire_all()
    assert [i.status for i in db_session.query(CheckInFormInstance).all()] == ["completed"]


def test_beat_schedule_registers_tasks():
    from tasks import celery_app

    scheduled = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert scheduled == {"tasks.expire_check_in_forms", "tasks.purge_expired_check_in_forms"}
    assert scheduled <= set(celery_app.tasks)
