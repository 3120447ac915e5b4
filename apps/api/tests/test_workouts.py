"""
Tests for workout plans, the client's week/day views, completions and
personal bests.
"""
from datetime import timedelta
from uuid import UUID, uuid4

from core.timezone import local_today, start_of_week, utcnow
from models import WorkoutCompletion, WorkoutPlan

PUSH_DAY = {
    "day_of_week": "Monday",
    "workout_name": "Push",
    "workout_type": "Strength",
    "groups": [
        {
            "group_type": "Single",
            "exercises": [{"exercise_name": "Bench press", "sets_data": [{"set_number": 1, "reps": 8, "weight": 60}]}],
        },
        {
            "group_type": "Superset",
            "group_notes": "No rest between",
            "exercises": [
                {"exercise_name": "Dips", "sets_data": [{"set_number": 1, "reps": 12}]},
                {"exercise_name": "Push-ups", "sets_data": [{"set_number": 1, "reps": 20}]},
            ],
        },
    ],
}
LEG_DAY = {
    "day_of_week": "Wednesday",
    "workout_name": "Legs",
    "groups": [{"group_type": "Single", "exercises": [{"exercise_name": "Squat"}]}],
}


def _create_plan(client, headers, client_id, **extra):
    body = {"title": "Strength block", "clientId": str(client_id), "days": [PUSH_DAY, LEG_DAY], **extra}
    resp = client.post("/api/workout-plans", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _activate(client, headers, plan_id, db_session=None, days_ago=0):
    client.post(f"/api/workout-plans/{plan_id}/activate", headers=headers)
    if days_ago:
        plan = db_session.get(WorkoutPlan, UUID(plan_id))
        plan.created_at = utcnow() - timedelta(days=days_ago)
        plan.activated_at = utcnow() - timedelta(days=days_ago)
        db_session.commit()


def _next_weekday(weekday):
    today = local_today()
    return today + timedelta(days=(weekday - today.weekday()) % 7)


class TestWorkoutPlanManagement:
    def test_create_flattens_groups(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        assert plan["builder_mode"] == "week"
        assert plan["template_id"] is not None
        push = plan["days"][0]
        assert push["workout_name"] == "Push"
        assert [(e["sequence_order"], e["group_type"], e["exercise_name"]) for e in push["exercises"]] == [
            (0, "Single", "Bench press"),
            (1, "Superset", "Dips"),
            (1, "Superset", "Push-ups"),
        ]
        assert push["exercises"][0]["sets_data"][0]["weight"] == 60

    def test_unknown_builder_mode_rejected(self, client, coach_headers, client_user):
        resp = client.post(
            "/api/workout-plans",
            json={"title": "Odd", "clientId": str(client_user.id), "builderMode": "month"},
            headers=coach_headers,
        )
        assert resp.status_code == 400

    def test_copy_template_to_client(self, client, coach_headers, client_user):
        template = client.post(
            "/api/workout-plans", json={"title": "Template", "days": [PUSH_DAY]}, headers=coach_headers
        ).json()
        resp = client.post(
            f"/api/workout-plans/{template['id']}/copy-to-client",
            json={"clientId": str(client_user.id)},
            headers=coach_headers,
        )
        assert resp.status_code == 201
        copy = resp.json()
        assert copy["is_template"] is False
        assert copy["template_id"] == template["id"]
        assert len(copy["days"][0]["exercises"]) == 3

    def test_activation_replaces_previous_plan(self, client, coach_headers, client_user):
        first = _create_plan(client, coach_headers, client_user.id, title="First")
        second = _create_plan(client, coach_headers, client_user.id, title="Second")
        _activate(client, coach_headers, first["id"])
        _activate(client, coach_headers, second["id"])

        plans = client.get(f"/api/workout-plans?clientId={client_user.id}", headers=coach_headers).json()["workoutPlans"]
        assert {p["title"]: p["is_active"] for p in plans} == {"First": False, "Second": True}

    def test_update_replaces_days(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        resp = client.put(
            f"/api/workout-plans/{plan['id']}",
            json={"days": [LEG_DAY], "title": "Legs only"},
            headers=coach_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Legs only"
        assert [d["workout_name"] for d in resp.json()["days"]] == ["Legs"]

    def test_update_rejects_zero_workout_days(self, client, coach_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        resp = client.put(f"/api/workout-plans/{plan['id']}", json={"workoutDaysPerWeek": 0}, headers=coach_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "workout_days_per_week must be between 1 and 7"

        unchanged = client.get(f"/api/workout-plans/{plan['id']}", headers=coach_headers).json()
        assert unchanged["workout_days_per_week"] == 7

    def test_delete(self, client, coach_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id, saveToLibrary=False)
        assert client.delete(f"/api/workout-plans/{plan['id']}", headers=coach_headers).status_code == 200
        assert db_session.query(WorkoutPlan).count() == 0


class TestWeeklySchedule:
    def test_day_view_shows_scheduled_workout(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        _activate(client, coach_headers, plan["id"])

        monday = _next_weekday(0)
        entry = client.get(f"/api/get-workout-day?date={monday.isoformat()}", headers=client_headers).json()
        assert entry["day_of_week"] == "Monday"
        assert entry["is_rest"] is False
        assert entry["workout"]["workout_name"] == "Push"
        groups = entry["workout"]["groups"]
        assert [g["id"] for g in groups] == ["0-Single", "1-Superset"]
        assert [e["exercise_name"] for e in groups[1]["exercises"]] == ["Dips", "Push-ups"]

    def test_unscheduled_weekday_is_rest(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        _activate(client, coach_headers, plan["id"])

        tuesday = _next_weekday(1)
        entry = client.get(f"/api/get-workout-day?date={tuesday.isoformat()}", headers=client_headers).json()
        assert entry["is_rest"] is True
        assert entry["workout"] is None

    def test_week_without_plan(self, client, client_headers):
        body = client.get("/api/get-workout-week", headers=client_headers).json()
        assert body["plan"] is None
        assert body["week_start"] == start_of_week(local_today()).isoformat()
        assert all(d["plan_id"] is None for d in body["days"])


class TestCompletions:
    def test_submission_replaces_the_days_record(self, client, client_headers, db_session):
        today = local_today().isoformat()
        first = client.post(
            "/api/submit-workout-completion",
            json={"date": today, "completedGroups": ["0-Single", "0-Single"]},
            headers=client_headers,
        ).json()
        assert first["completedGroups"] == ["0-Single"]

        client.post(
            "/api/submit-workout-completion",
            json={"date": today, "completedGroups": ["0-Single", "1-Superset"]},
            headers=client_headers,
        )
        assert db_session.query(WorkoutCompletion).count() == 1

        completions = client.get(
            f"/api/get-workout-completions?startDate={today}&endDate={today}", headers=client_headers
        ).json()["completions"]
        assert completions == {today: ["0-Single", "1-Superset"]}

    def test_coaches_cannot_submit(self, client, coach_headers):
        resp = client.post("/api/submit-workout-completion", json={"completedGroups": []}, headers=coach_headers)
        assert resp.status_code == 403

    def test_completions_need_a_valid_range(self, client, client_headers):
        assert client.get("/api/get-workout-completions", headers=client_headers).status_code == 400
        resp = client.get(
            "/api/get-workout-completions?startDate=2024-01-10&endDate=2024-01-01", headers=client_headers
        )
        assert resp.status_code == 400

    def test_flexible_plan_caps_rest_days(self, client, coach_headers, client_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id, builderMode="day", workoutDaysPerWeek=6)
        _activate(client, coach_headers, plan["id"], db_session, days_ago=10)

        today = local_today()
        week_start = start_of_week(today)
        other = week_start if today != week_start else week_start + timedelta(days=1)

        ok = client.post(
            "/api/submit-workout-completion", json={"date": today.isoformat(), "completedGroups": []}, headers=client_headers
        )
        assert ok.status_code == 200

        capped = client.post(
            "/api/submit-workout-completion", json={"date": other.isoformat(), "completedGroups": []}, headers=client_headers
        )
        assert capped.status_code == 400
        assert capped.json()["error"] == "No rest days left this week"

        week = client.get(f"/api/get-workout-week?weekStart={week_start.isoformat()}", headers=client_headers).json()
        assert week["plan"]["builder_mode"] == "day"
        assert week["flexible"]["rest_days_allowed"] == 1
        assert week["flexible"]["rest_days_used"] == 1
        assert [t["name"] for t in week["flexible"]["templates"]] == ["Push", "Legs"]

    def test_flexible_compliance_counts_logged_day(self, client, coach_headers, client_headers, client_user, db_session):
        plan = _create_plan(client, coach_headers, client_user.id, builderMode="day", workoutDaysPerWeek=4)
        _activate(client, coach_headers, plan["id"], db_session, days_ago=10)

        today = local_today()
        client.post(
            "/api/submit-workout-completion",
            json={"date": today.isoformat(), "completedGroups": ["0-Single", "1-Superset"]},
            headers=client_headers,
        )
        week_start = start_of_week(today)
        data = client.get(
            f"/api/get-compliance-week?weekStart={week_start.isoformat()}&clientId={client_user.id}",
            headers=coach_headers,
        ).json()["complianceData"]
        assert data[(today - week_start).days] == 1

    def test_compliance_requires_week_start(self, client, client_headers):
        assert client.get("/api/get-compliance-week", headers=client_headers).status_code == 400


class TestPersonalBests:
    def test_upsert_keeps_one_row_per_exercise(self, client, coach_headers, client_headers, client_user):
        plan = _create_plan(client, coach_headers, client_user.id)
        exercise_id = plan["days"][0]["exercises"][0]["id"]

        client.post("/api/personal-best", json={"exerciseId": exercise_id, "weight": 60, "reps": 8}, headers=client_headers)
        resp = client.post(
            "/api/personal-best", json={"exerciseId": exercise_id, "weight": 65, "reps": 6}, headers=client_headers
        )
        assert resp.json() == {"success": True, "weight": 65, "reps": 6}

        bests = client.get(f"/api/personal-best?exerciseId={exercise_id}", headers=client_headers).json()["personalBests"]
        assert len(bests) == 1
        assert bests[0]["weight"] == 65

        coach_view = client.get(f"/api/personal-best?userId={client_user.id}", headers=coach_headers).json()
        assert len(coach_view["personalBests"]) == 1

    def test_unknown_exercise(self, client, client_headers):
        resp = client.post("/api/personal-best", json={"exerciseId": str(uuid4()), "weight": 50}, headers=client_headers)
        assert resp.status_code == 404
