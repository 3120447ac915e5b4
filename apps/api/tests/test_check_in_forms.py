"""
Tests for check-in questionnaires: authoring, sending, answering, expiry.
"""
from datetime import timedelta
from uuid import UUID

import pytest

from core.exceptions import ValidationError
from core.timezone import utcnow
from models import CheckInFormInstance, CheckInFormResponse, CoachUpdate
from services import check_in_forms

QUESTIONS = [
    {"question_text": "How was your week?", "question_type": "textarea", "is_required": True},
    {"question_text": "Body weight", "question_type": "number"},
    {"question_text": "Which meals were hard?", "question_type": "checkbox", "options": ["Breakfast", "Lunch", "Dinner"]},
]


def _create_form(client, coach_headers, title="Weekly check-in"):
    resp = client.post(
        "/api/create-check-in-form",
        json={"title": title, "questions": QUESTIONS},
        headers=coach_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _send(client, coach_headers, form_id, client_id, **extra):
    return client.post(
        "/api/send-check-in-form",
        json={"formId": form_id, "clientId": str(client_id), **extra},
        headers=coach_headers,
    )


class TestFormAuthoring:
    def test_create_keeps_question_order(self, client, coach_headers):
        form = _create_form(client, coach_headers)
        assert [q["order_index"] for q in form["questions"]] == [0, 1, 2]
        assert form["questions"][2]["options"] == ["Breakfast", "Lunch", "Dinner"]
        assert form["questions"][0]["options"] is None

    def test_choice_question_needs_options(self, client, coach_headers):
        resp = client.post(
            "/api/create-check-in-form",
            json={"title": "Bad", "questions": [{"question_text": "Pick", "question_type": "radio"}]},
            headers=coach_headers,
        )
        assert resp.status_code == 400

    def test_unknown_question_type(self, client, coach_headers):
        resp = client.post(
            "/api/create-check-in-form",
            json={"title": "Bad", "questions": [{"question_text": "Draw", "question_type": "canvas"}]},
            headers=coach_headers,
        )
        assert resp.status_code == 400

    def test_update_and_soft_delete(self, client, coach_headers):
        form = _create_form(client, coach_headers)
        updated = client.put(
            f"/api/update-check-in-form/{form['id']}",
            json={"title": "Renamed", "questions": QUESTIONS[:1]},
            headers=coach_headers,
        ).json()
        assert updated["title"] == "Renamed"
        assert len(updated["questions"]) == 1

        client.delete(f"/api/delete-check-in-form/{form['id']}", headers=coach_headers)
        assert client.get("/api/get-check-in-forms", headers=coach_headers).json()["forms"] == []
        # still readable directly
        one = client.get(f"/api/get-check-in-form/{form['id']}", headers=coach_headers).json()["form"]
        assert one["is_active"] is False


class TestSendingAndAnswering:
    def test_send_posts_coach_update_and_blocks_duplicates(self, client, coach_headers, client_user, db_session):
        form = _create_form(client, coach_headers)
        resp = _send(client, coach_headers, form["id"], client_user.id, expiresInDays=3)
        assert resp.status_code == 201
        assert resp.json()["instance"]["status"] == "sent"

        update = db_session.query(CoachUpdate).one()
        assert update.message == "Weekly check-in sent!"

        again = _send(client, coach_headers, form["id"], client_user.id)
        assert again.status_code == 400

    def test_client_answers_pending_form(self, client, coach_headers, client_headers, client_user, db_session):
        form = _create_form(client, coach_headers)
        instance_id = _send(client, coach_headers, form["id"], client_user.id).json()["instance"]["id"]

        pending = client.get("/api/get-pending-check-in-forms", headers=client_headers).json()["forms"]
        assert [p["id"] for p in pending] == [instance_id]
        questions = pending[0]["form"]["questions"]

        answers = {
            questions[0]["id"]: "Solid week",
            questions[1]["id"]: "81.5",
            questions[2]["id"]: ["Lunch"],
        }
        resp = client.post(
            "/api/submit-check-in-form",
            json={"instanceId": instance_id, "responses": answers},
            headers=client_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["completed_at"] is not None

        stored = {str(r.question_id): r for r in db_session.query(CheckInFormResponse).all()}
        assert stored[questions[0]["id"]].response_text == "Solid week"
        assert stored[questions[1]["id"]].response_number == 81.5
        assert stored[questions[2]["id"]].response_options == ["Lunch"]

        assert client.get("/api/get-pending-check-in-forms", headers=client_headers).json()["forms"] == []
        completed = client.get(
            f"/api/get-completed-check-in-forms?clientId={client_user.id}", headers=coach_headers
        ).json()["forms"]
        assert len(completed) == 1
        assert len(completed[0]["responses"]) == 3

        twice = client.post(
            "/api/submit-check-in-form",
            json={"instanceId": instance_id, "responses": answers},
            headers=client_headers,
        )
        assert twice.status_code == 400

    def test_required_question_must_be_answered(self, client, coach_headers, client_headers, client_user):
        form = _create_form(client, coach_headers)
        instance_id = _send(client, coach_headers, form["id"], client_user.id).json()["instance"]["id"]
        weight_id = form["questions"][1]["id"]

        resp = client.post(
            "/api/submit-check-in-form",
            json={"instanceId": instance_id, "responses": {weight_id: 80}},
            headers=client_headers,
        )
        assert resp.status_code == 400
        assert "How was your week?" in resp.json()["error"]

    def test_expired_form_cannot_be_submitted(self, client, coach_headers, client_headers, client_user, db_session):
        form = _create_form(client, coach_headers)
        instance_id = _send(client, coach_headers, form["id"], client_user.id).json()["instance"]["id"]
        instance = db_session.get(CheckInFormInstance, UUID(instance_id))
        instance.expires_at = utcnow() - timedelta(hours=1)
        db_session.commit()

        assert client.get("/api/get-pending-check-in-forms", headers=client_headers).json()["forms"] == []
        resp = client.post(
            "/api/submit-check-in-form",
            json={"instanceId": instance_id, "responses": {form["questions"][0]["id"]: "late"}},
            headers=client_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "This form has expired"

    def test_coach_extends_deadline(self, client, coach_headers, client_user, db_session):
        form = _create_form(client, coach_headers)
        instance_id = _send(client, coach_headers, form["id"], client_user.id).json()["instance"]["id"]
        instance = db_session.get(CheckInFormInstance, UUID(instance_id))
        instance.expires_at = utcnow() - timedelta(days=1)
        instance.status = "expired"
        db_session.commit()

        resp = client.post(
            "/api/extend-check-in-form", json={"instanceId": instance_id, "days": 5}, headers=coach_headers
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "sent"

    def test_extend_cannot_reopen_beside_a_newer_send(self, client, coach_headers, client_user, db_session):
        form = _create_form(client, coach_headers)
        first_id = _send(client, coach_headers, form["id"], client_user.id).json()["instance"]["id"]
        first = db_session.get(CheckInFormInstance, UUID(first_id))
        first.expires_at = utcnow() - timedelta(days=1)
        first.status = "expired"
        db_session.commit()
        assert _send(client, coach_headers, form["id"], client_user.id).status_code == 201

        resp = client.post("/api/extend-check-in-form", json={"instanceId": first_id}, headers=coach_headers)
        assert resp.status_code == 400
        assert "already been sent" in resp.json()["error"]

        db_session.expire_all()
        open_count = (
            db_session.query(CheckInFormInstance)
            .filter(CheckInFormInstance.client_id == client_user.id, CheckInFormInstance.status == "sent")
            .count()
        )
        assert open_count == 1

    def test_zero_expiry_days_is_rejected(self, db_session, coach, client_user):
        form = check_in_forms.create_form(db_session, coach, "Form", [])
        with pytest.raises(ValidationError):
            check_in_forms.send_form(db_session, coach, client_user, form.id, expires_in_days=0)


class TestExpiryJobs:
    def _instance(self, db_session, coach, client_user, expires_at, status="sent"):
        form = check_in_forms.create_form(db_session, coach, "Form", [])
        instance = CheckInFormInstance(
            form_id=form.id,
            client_id=client_user.id,
            coach_id=coach.id,
            status=status,
            sent_at=expires_at - timedelta(days=7),
            expires_at=expires_at,
        )
        db_session.add(instance)
        db_session.commit()
        return instance

    def test_expire_overdue(self, db_session, coach, client_user):
        now = utcnow()
        overdue = self._instance(db_session, coach, client_user, now - timedelta(minutes=5))
        open_ = self._instance(db_session, coach, client_user, now + timedelta(days=2))

        assert check_in_forms.expire_overdue_instances(db_session, now=now) == 1
        assert overdue.status == "expired"
        assert open_.status == "sent"

    def test_purge_old_expired(self, db_session, coach, client_user):
        now = utcnow()
        self._instance(db_session, coach, client_user, now - timedelta(days=40), status="expired")
        recent = self._instance(db_session, coach, client_user, now - timedelta(days=2), status="expired")

        assert check_in_forms.purge_expired_instances(db_session, older_than_days=30, now=now) == 1
        assert db_session.query(CheckInFormInstance).one().id == recent.id
