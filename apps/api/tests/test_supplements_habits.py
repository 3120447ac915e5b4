"""
Tests for supplements, habits and their weekly compliance.
"""
from datetime import timedelta
from uuid import UUID, uuid4

import pytest

from core.timezone import local_today, start_of_week, utcnow
from models import ClientHabit, HabitCompletion, HabitPreset, SupplementCompletion
from tests.auth_helpers import auth_headers


def _supplement(client, coach_headers, client_user, name="Creatine", **extra):
    resp = client.post(
        "/api/supplements",
        json={"clientId": str(client_user.id), "name": name, "dosage": "5g", **extra},
        headers=coach_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestSupplements:
    def test_coach_manages_client_list(self, client, coach_headers, client_headers, client_user):
        created = _supplement(client, coach_headers, client_user)
        assert created["active_from"] == local_today().isoformat()

        updated = client.put(
            f"/api/supplements/{created['id']}", json={"dosage": "10g"}, headers=coach_headers
        ).json()
        assert updated["dosage"] == "10g"
        assert updated["name"] == "Creatine"

        own = client.get("/api/get-supplements", headers=client_headers).json()["supplements"]
        assert [s["name"] for s in own] == ["Creatine"]

        assert client.delete(f"/api/supplements/{created['id']}", headers=coach_headers).status_code == 200
        listed = client.get(f"/api/supplements?clientId={client_user.id}", headers=coach_headers).json()
        assert listed["supplements"] == []

    def test_blank_name_rejected(self, client, coach_headers, client_user):
        created = _supplement(client, coach_headers, client_user)
        resp = client.put(f"/api/supplements/{created['id']}", json={"name": "  "}, headers=coach_headers)
        assert resp.status_code == 400

    def test_other_coach_cannot_edit(self, client, coach_headers, client_user, make_user):
        created = _supplement(client, coach_headers, client_user)
        stranger = make_user("coach")
        resp = client.delete(f"/api/supplements/{created['id']}", headers=auth_headers(stranger))
        assert resp.status_code == 404

    def test_single_tick_and_untick(self, client, coach_headers, client_headers, client_user, db_session):
        supp = _supplement(client, coach_headers, client_user)
        body = {"supplementId": supp["id"], "completed": True}

        assert client.post("/api/submit-supplement-completion", json=body, headers=client_headers).json()["message"] == (
            "Supplement completion recorded"
        )
        assert client.post("/api/submit-supplement-completion", json=body, headers=client_headers).json()["message"] == (
            "Supplement already completed for this date"
        )
        assert db_session.query(SupplementCompletion).count() == 1

        untick = client.post(
            "/api/submit-supplement-completion", json={**body, "completed": False}, headers=client_headers
        ).json()
        assert untick["message"] == "Supplement completion removed"
        assert db_session.query(SupplementCompletion).count() == 0

    def test_batch_replaces_the_day(self, client, coach_headers, client_headers, client_user):
        first = _supplement(client, coach_headers, client_user, name="Creatine")
        second = _supplement(client, coach_headers, client_user, name="Omega 3")
        today = local_today().isoformat()

        client.post(
            "/api/submit-supplement-completions",
            json={"supplementIds": [first["id"], second["id"]], "date": today},
            headers=client_headers,
        )
        resp = client.post(
            "/api/submit-supplement-completions",
            json={"supplementIds": [second["id"]], "date": today},
            headers=client_headers,
        )
        assert resp.json() == {"success": True, "count": 1}

        done = client.get(f"/api/get-supplement-completions?date={today}", headers=client_headers).json()
        assert done["completions"] == [second["id"]]

        ranged = client.get(
            f"/api/get-supplement-completions?startDate={today}&endDate={today}&userId={client_user.id}",
            headers=coach_headers,
        ).json()
        assert ranged["completions"] == {today: [second["id"]]}

    def test_foreign_supplement_rejected(self, client, client_headers):
        resp = client.post(
            "/api/submit-supplement-completions",
            json={"supplementIds": [str(uuid4())], "date": local_today().isoformat()},
            headers=client_headers,
        )
        assert resp.status_code == 404

    def test_completions_query_needs_a_date(self, client, client_headers):
        assert client.get("/api/get-supplement-completions", headers=client_headers).status_code == 400

    def test_compliance_today(self, client, coach_headers, client_headers, client_user):
        today = local_today()
        week_start = start_of_week(today)
        supp = _supplement(client, coach_headers, client_user, activeFrom=(week_start - timedelta(days=7)).isoformat())
        client.post(
            "/api/submit-supplement-completions",
            json={"supplementIds": [supp["id"]], "date": today.isoformat()},
            headers=client_headers,
        )
        data = client.get(
            f"/api/get-supplement-compliance-week?weekStart={week_start.isoformat()}", headers=client_headers
        ).json()["complianceData"]
        assert data[(today - week_start).days] == 1.0


@pytest.fixture
def system_preset(db_session):
    preset = HabitPreset(name="Daily steps", preset_type="steps", target_value=10000, unit="steps")
    db_session.add(preset)
    db_session.commit()
    return preset


def _assign(client, coach_headers, client_user, preset_id, **extra):
    return client.post(
        "/api/assign-habit",
        json={"clientId": str(client_user.id), "habitPresetId": str(preset_id), **extra},
        headers=coach_headers,
    )


class TestHabits:
    def test_presets_include_system_and_own(self, client, coach_headers, system_preset, make_user):
        other = make_user("coach")
        client.post("/api/habit-presets", json={"name": "Private"}, headers=auth_headers(other))
        client.post("/api/habit-presets", json={"name": "Cold shower"}, headers=coach_headers)

        presets = client.get("/api/habit-presets", headers=coach_headers).json()["presets"]
        assert [p["name"] for p in presets] == ["Daily steps", "Cold shower"]
        assert presets[0]["coach_id"] is None

    def test_assign_and_unassign(self, client, coach_headers, client_headers, client_user, system_preset):
        resp = _assign(client, coach_headers, client_user, system_preset.id, frequency="weekly", timesPerWeek=3)
        assert resp.status_code == 201
        assigned = resp.json()["assigned"]
        assert assigned["frequency"] == "weekly"
        assert assigned["times_per_week"] == 3
        assert assigned["preset"]["name"] == "Daily steps"

        assert _assign(client, coach_headers, client_user, system_preset.id).status_code == 409

        habits = client.get("/api/client-habits", headers=client_headers).json()["habits"]
        assert [h["id"] for h in habits] == [assigned["id"]]

        resp = client.post("/api/unassign-habit", json={"clientHabitId": assigned["id"]}, headers=coach_headers)
        assert resp.status_code == 200
        assert client.get("/api/client-habits", headers=client_headers).json()["habits"] == []

    def test_unknown_frequency_falls_back_to_daily(self, client, coach_headers, client_user, system_preset):
        assigned = _assign(client, coach_headers, client_user, system_preset.id, frequency="hourly", timesPerWeek=2)
        body = assigned.json()["assigned"]
        assert body["frequency"] == "daily"
        assert body["times_per_week"] is None

    def test_completions_replace_the_day(self, client, coach_headers, client_headers, client_user, system_preset, db_session):
        habit_id = _assign(client, coach_headers, client_user, system_preset.id).json()["assigned"]["id"]
        today = local_today().isoformat()

        client.post(
            "/api/submit-habit-completions",
            json={"date": today, "completions": [{"clientHabitId": habit_id, "value": 8000}]},
            headers=client_headers,
        )
        client.post(
            "/api/submit-habit-completions",
            json={"date": today, "completions": [{"clientHabitId": habit_id, "value": 12000}]},
            headers=client_headers,
        )
        assert db_session.query(HabitCompletion).count() == 1

        rows = client.get(
            f"/api/get-habit-completions?startDate={today}&endDate={today}&clientId={client_user.id}",
            headers=coach_headers,
        ).json()["completions"]
        assert [(r["client_habit_id"], r["value"]) for r in rows] == [(habit_id, 12000)]

        client.post("/api/submit-habit-completions", json={"date": today, "completions": []}, headers=client_headers)
        assert db_session.query(HabitCompletion).count() == 0

    def test_completing_someone_elses_habit_is_forbidden(self, client, coach_headers, client_user, system_preset, make_user, coach):
        habit_id = _assign(client, coach_headers, client_user, system_preset.id).json()["assigned"]["id"]
        other = make_user("client", coach=coach)
        resp = client.post(
            "/api/submit-habit-completions",
            json={"date": local_today().isoformat(), "completions": [{"clientHabitId": habit_id}]},
            headers=auth_headers(other),
        )
        assert resp.status_code == 403

    def test_notes(self, client, coach_headers, client_headers, client_user):
        missing = client.post("/api/habit-notes", json={"content": "Nice work"}, headers=coach_headers)
        assert missing.status_code == 400

        client.post(
            "/api/habit-notes", json={"content": "Nice work", "clientId": str(client_user.id)}, headers=coach_headers
        )
        client.post("/api/habit-notes", json={"content": "Felt tired"}, headers=client_headers)

        notes = client.get("/api/habit-notes", headers=client_headers).json()["notes"]
        assert {(n["author_role"], n["content"]) for n in notes} == {("coach", "Nice work"), ("client", "Felt tired")}

    def test_daily_habit_compliance(self, client, coach_headers, client_headers, client_user, system_preset, db_session):
        habit_id = _assign(client, coach_headers, client_user, system_preset.id).json()["assigned"]["id"]
        habit = db_session.get(ClientHabit, UUID(habit_id))
        habit.created_at = utcnow() - timedelta(days=10)
        db_session.commit()

        today = local_today()
        client.post(
            "/api/submit-habit-completions",
            json={"date": today.isoformat(), "completions": [{"clientHabitId": habit_id}]},
            headers=client_headers,
        )
        week_start = start_of_week(today)
        data = client.get(
            f"/api/get-habit-compliance-week?weekStart={week_start.isoformat()}&clientId={client_user.id}",
            headers=coach_headers,
        ).json()["complianceData"]
        assert data[(today - week_start).days] == 1.0
