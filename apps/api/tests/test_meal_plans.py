"""
Tests for meal plans, the client's meal week, completions and meal compliance.
"""
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import event

from core.database import engine
from core.timezone import local_today, start_of_week, utcnow
from models import MealCompletion, MealPlan
from services import meal_plans
from tests.auth_helpers import auth_headers

MEALS = [
    {"name": "Breakfast", "time": "08:00", "foods": [{"name": "Oats", "portion": "80g", "calories": 300}]},
    {"name": "Breakfast", "time": "08:00", "foods": [{"name": "Eggs", "portion": "3", "calories": 210}]},
    {"name": "Lunch", "time": "12:30", "foods": [{"name": "Chicken", "portion": "200g", "protein": 50}]},
]


def _create_plan(client, headers, client_id, title="Lean bulk", **extra):
    resp = client.post(
        "/api/meal-plans",
        json={"title": title, "clientId": str(client_id), "meals": MEALS, **extra},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _backdate(db_session, plan_id, days=10):
    plan = db_session.get(MealPlan, UUID(plan_id))
    plan.created_at = utcnow() - timedelta(days=days)
    plan.activated_at = utcnow() - timedelta(days=days)
    db_session.commit()


class TestMealPlanManagement:
    def test_client_plan_is_filed_in_library(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        assert plan["is_template"] is False
        assert plan["is_active"] is False
        assert plan["template_id"] is not None
        assert [m["name"] for m in plan["meals"]] == ["Breakfast", "Breakfast", "Lunch"]
        assert plan["meals"][0]["foods"][0]["name"] == "Oats"

        templates = client.get("/api/meal-plans/templates", headers=coach_headers).json()["templates"]
        assert [t["id"] for t in templates] == [plan["template_id"]]

    def test_skip_library_copy(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id, saveToLibrary=False)
        assert plan["template_id"] is None
        assert client.get("/api/meal-plans/templates", headers=coach_headers).json()["templates"] == []

    def test_activation_keeps_one_active_plan(self, client, coach_headers, client_user, db_session):
        first = _create_plan(client, coach_headers, client_user.id, title="First")
        second = _create_plan(client, coach_headers, client_user.id, title="Second")

        resp = client.post(f"/api/meal-plans/{first['id']}/activate", headers=coach_headers)
        assert resp.status_code == 200
        assert resp.json()["activated_at"] is not None

        client.post(f"/api/meal-plans/{second['id']}/activate", headers=coach_headers)
        plans = client.get(f"/api/meal-plans?clientId={client_user.id}", headers=coach_headers).json()["mealPlans"]
        active = {p["title"]: p["is_active"] for p in plans}
        assert active == {"First": False, "Second": True}
        replaced = next(p for p in plans if p["title"] == "First")
        assert replaced["deactivated_at"] is not None

    def test_templates_cannot_be_activated(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        resp = client.post(f"/api/meal-plans/{plan['template_id']}/activate", headers=coach_headers)
        assert resp.status_code == 400

    def test_copy_template_to_client(self, client, coach_headers, make_user, coach):
        other_client = make_user("client", coach=coach)
        template = client.post(
            "/api/meal-plans", json={"title": "Template", "meals": MEALS}, headers=coach_headers
        ).json()
        assert template["is_template"] is True

        resp = client.post(
            f"/api/meal-plans/{template['id']}/copy-to-client",
            json={"clientId": str(other_client.id)},
            headers=coach_headers,
        )
        assert resp.status_code == 201
        copy = resp.json()
        assert copy["user_id"] == str(other_client.id)
        assert copy["template_id"] == template["id"]
        assert len(copy["meals"]) == 3

    def test_save_as_template(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id, saveToLibrary=False)
        resp = client.post(f"/api/meal-plans/{plan['id']}/save-as-template", headers=coach_headers)
        assert resp.status_code == 201
        assert resp.json()["is_template"] is True
        assert len(resp.json()["meals"]) == 3

    def test_other_coaches_cannot_see_plan(self, client, coach_headers, client_user, make_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        stranger = make_user("coach")
        resp = client.get(f"/api/meal-plans/{plan['id']}", headers=auth_headers(stranger))
        assert resp.status_code == 404

    def test_client_reads_own_plan(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        assert client.get(f"/api/meal-plans/{plan['id']}", headers=client_headers).status_code == 200
        # the library template belongs to the coach
        assert client.get(f"/api/meal-plans/{plan['template_id']}", headers=client_headers).status_code == 404

    def test_coach_listing_requires_client(self, client, coach_headers):
        assert client.get("/api/meal-plans", headers=coach_headers).status_code == 400

    def test_delete_plan(self, client, coach_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id, saveToLibrary=False)
        assert client.delete(f"/api/meal-plans/{plan['id']}", headers=coach_headers).json() == {"success": True}
        assert db_session.query(MealPlan).count() == 0


class TestMealTracking:
    def test_week_shows_active_plan_today(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        client.post(f"/api/meal-plans/{plan['id']}/activate", headers=coach_headers)

        today = local_today()
        week_start = start_of_week(today)
        body = client.get(f"/api/get-meal-week?weekStart={week_start.isoformat()}", headers=client_headers).json()
        assert body["weekStart"] == week_start.isoformat()
        assert len(body["days"]) == 7

        today_entry = body["days"][(today - week_start).days]
        assert today_entry["plan"]["title"] == "Lean bulk"
        assert len(today_entry["meals"]) == 3
        assert not any(m["completed"] for m in today_entry["meals"])

    def test_week_loads_in_a_fixed_number_of_queries(self, client, coach_headers, client_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id)
        client.post(f"/api/meal-plans/{plan['id']}/activate", headers=coach_headers)
        _backdate(db_session, plan["id"])
        today = local_today()
        lunch_id = plan["meals"][2]["id"]
        for day in (today - timedelta(days=1), today):
            client.post(
                "/api/submit-meal-completions",
                json={"completedMealIds": [lunch_id], "date": day.isoformat()},
                headers=client_headers,
            )

        db_session.expire_all()
        assert client_user.id is not None
        statements = []

        def _count(conn, cursor, statement, *args):
            statements.append(statement)

        event.listen(engine, "before_cursor_execute", _count)
        try:
            week = meal_plans.meal_week(db_session, client_user, today - timedelta(days=3))
        finally:
            event.remove(engine, "before_cursor_execute", _count)

        # plans, meals, foods, completions
        assert len(statements) <= 4
        lunch_done = [[m["completed"] for m in d["meals"] if m["id"] == lunch_id] for d in week]
        assert lunch_done == [[False], [False], [True], [True], [False], [False], [False]]

    def test_week_requires_start(self, client, client_headers):
        resp = client.get("/api/get-meal-week", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Week start parameter is required"

    def test_completions_insert_once(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        meal_ids = [plan["meals"][0]["id"], plan["meals"][2]["id"]]
        today = local_today().isoformat()

        first = client.post(
            "/api/submit-meal-completions", json={"completedMealIds": meal_ids, "date": today}, headers=client_headers
        ).json()
        assert (first["inserted"], first["skipped"]) == (2, 0)

        again = client.post(
            "/api/submit-meal-completions", json={"completedMealIds": meal_ids, "date": today}, headers=client_headers
        ).json()
        assert (again["inserted"], again["skipped"]) == (0, 2)

        ids = client.get(f"/api/get-meal-completions?date={today}", headers=client_headers).json()["completedMealIds"]
        assert sorted(ids) == sorted(meal_ids)

        ranged = client.get(
            f"/api/get-meal-completions?start={today}&end={today}", headers=client_headers
        ).json()["completionsByDate"]
        assert sorted(ranged[today]) == sorted(meal_ids)

    def test_completions_reject_foreign_meals(self, client, client_headers):
        resp = client.post(
            "/api/submit-meal-completions",
            json={"completedMealIds": [str(uuid4())], "date": local_today().isoformat()},
            headers=client_headers,
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "Meal not found"

    def test_completions_query_needs_a_date(self, client, client_headers):
        resp = client.get("/api/get-meal-completions", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing date or start/end parameter"

    def test_replacing_meals_drops_their_completions(self, client, coach_headers, client_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id)
        client.post(
            "/api/submit-meal-completions",
            json={"completedMealIds": [plan["meals"][0]["id"]], "date": local_today().isoformat()},
            headers=client_headers,
        )
        assert db_session.query(MealCompletion).count() == 1

        resp = client.put(f"/api/meal-plans/{plan['id']}/meals", json={"meals": MEALS[:1]}, headers=coach_headers)
        assert resp.status_code == 200
        assert len(resp.json()["meals"]) == 1
        assert db_session.query(MealCompletion).count() == 0

    def test_compliance_counts_option_groups(self, client, coach_headers, client_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id)
        client.post(f"/api/meal-plans/{plan['id']}/activate", headers=coach_headers)
        _backdate(db_session, plan["id"])

        today = local_today()
        # second breakfast option plus lunch: both slots done
        client.post(
            "/api/submit-meal-completions",
            json={"completedMealIds": [plan["meals"][1]["id"], plan["meals"][2]["id"]], "date": today.isoformat()},
            headers=client_headers,
        )
        week_start = start_of_week(today)
        body = client.get(
            f"/api/get-meal-compliance-week?weekStart={week_start.isoformat()}&clientId={client_user.id}",
            headers=coach_headers,
        ).json()
        assert body["today"] == today.isoformat()
        assert len(body["complianceData"]) == 7
        assert body["complianceData"][(today - week_start).days] == 1.0

    def test_compliance_on_activation_day_is_not_applicable(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        client.post(f"/api/meal-plans/{plan['id']}/activate", headers=coach_headers)
        today = local_today()
        week_start = start_of_week(today)
        data = client.get(
            f"/api/get-meal-compliance-week?weekStart={week_start.isoformat()}", headers=client_headers
        ).json()["complianceData"]
        assert data[(today - week_start).days] == -1

    def test_compliance_requires_week_start(self, client, client_headers):
        resp = client.get("/api/get-meal-compliance-week", headers=client_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing required parameters"
