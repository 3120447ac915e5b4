"""
Tests for the weekly compliance calculations and day bucketing.

Week of 2024-01-07 (Sunday) .. 2024-01-13 (Saturday), UTC unless noted.
"""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from core.exceptions import ValidationError
from core.timezone import parse_day, start_of_week, to_local_date, week_days
from services.compliance import (
    NOT_APPLICABLE,
    NOT_ASSIGNED,
    AssignedItem,
    ClientCompliance,
    MealPlanSnapshot,
    PlanWindow,
    WorkoutPlanSnapshot,
    assigned_items_week,
    client_compliance,
    find_active_plan,
    habit_compliance_week,
    meal_compliance_week,
    newest_first,
    rank_clients,
    summarize_week,
    supplement_compliance_week,
    workout_compliance_week,
)

UTC = ZoneInfo("UTC")
WEEK = date(2024, 1, 7)
SIGNED_UP = datetime(2023, 12, 1, tzinfo=timezone.utc)


def _window(plan_id, activated, deactivated=None, created=None):
    return PlanWindow(
        plan_id=plan_id,
        created_at=created or activated,
        activated_at=activated,
        deactivated_at=deactivated,
        is_active=deactivated is None,
    )


def _meal_plan(plan_id="plan", activated=datetime(2024, 1, 1, 12, tzinfo=timezone.utc), **kw):
    groups = {
        ("Breakfast", "08:00"): frozenset({"breakfast-a", "breakfast-b"}),
        ("Lunch", "12:00"): frozenset({"lunch"}),
    }
    return MealPlanSnapshot(window=_window(plan_id, activated, **kw), meal_groups=groups)


class TestDayBucketing:
    def test_late_evening_in_denver_is_previous_utc_day(self):
        ts = datetime(2024, 1, 8, 3, 0, tzinfo=timezone.utc)
        assert to_local_date(ts, ZoneInfo("America/Denver")) == date(2024, 1, 7)

    def test_naive_timestamps_are_treated_as_utc(self):
        assert to_local_date(datetime(2024, 1, 8, 3, 0), UTC) == date(2024, 1, 8)

    def test_weeks_start_on_sunday(self):
        assert start_of_week(date(2024, 1, 10)) == WEEK
        assert start_of_week(WEEK) == WEEK
        assert week_days(WEEK)[-1] == date(2024, 1, 13)

    def test_parse_day(self):
        assert parse_day("2024-01-08") == date(2024, 1, 8)
        assert parse_day(None, default=WEEK) == WEEK
        with pytest.raises(ValidationError):
            parse_day("not-a-date")


class TestFindActivePlan:
    def test_replacement_plan_takes_over_from_its_activation_day(self):
        switch = datetime(2024, 1, 10, 12, tzinfo=timezone.utc)
        old = _meal_plan("old", deactivated=switch)
        new = _meal_plan("new", activated=switch)
        plans = newest_first([old, new])

        assert find_active_plan(plans, date(2024, 1, 9), UTC).window.plan_id == "old"
        assert find_active_plan(plans, date(2024, 1, 10), UTC).window.plan_id == "new"
        assert find_active_plan(plans, date(2024, 1, 11), UTC).window.plan_id == "new"

    def test_never_activated_plans_are_ignored(self):
        draft = MealPlanSnapshot(
            window=PlanWindow(plan_id="draft", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        )
        assert newest_first([draft]) == []

    def test_no_plan_before_first_activation(self):
        plans = newest_first([_meal_plan(activated=datetime(2024, 1, 9, tzinfo=timezone.utc))])
        assert find_active_plan(plans, date(2024, 1, 8), UTC) is None


class TestMealCompliance:
    def test_either_option_completes_a_slot(self):
        done = {date(2024, 1, 7): {"breakfast-b"}, date(2024, 1, 8): {"breakfast-a", "lunch"}}
        result = meal_compliance_week(WEEK, [_meal_plan()], done, signup_at=SIGNED_UP, tz=UTC)
        assert result == [0.5, 1.0, 0, 0, 0, 0, 0]

    def test_plan_start_day_is_not_scored(self):
        plan = _meal_plan(activated=datetime(2024, 1, 9, 15, tzinfo=timezone.utc))
        result = meal_compliance_week(WEEK, [plan], {}, signup_at=SIGNED_UP, tz=UTC)
        assert result == [0, 0, NOT_APPLICABLE, 0, 0, 0, 0]

    def test_days_before_signup_are_not_scored(self):
        signup = datetime(2024, 1, 10, 9, tzinfo=timezone.utc)
        result = meal_compliance_week(WEEK, [_meal_plan()], {}, signup_at=signup, tz=UTC)
        assert result[:3] == [NOT_APPLICABLE] * 3
        assert result[3:] == [0] * 4

    def test_plan_without_meals_scores_zero(self):
        empty = MealPlanSnapshot(window=_window("empty", datetime(2024, 1, 1, tzinfo=timezone.utc)))
        assert meal_compliance_week(WEEK, [empty], {}, signup_at=SIGNED_UP, tz=UTC) == [0] * 7


class TestWorkoutCompliance:
    def test_scheduled_rest_days_count_as_done(self):
        plan = WorkoutPlanSnapshot(
            window=_window("w", datetime(2024, 1, 1, tzinfo=timezone.utc)),
            builder_mode="week",
            training_days=frozenset({"Monday", "Wednesday"}),
        )
        result = workout_compliance_week(WEEK, [plan], {date(2024, 1, 8)}, signup_at=SIGNED_UP, tz=UTC)
        # Sun rest, Mon done, Tue rest, Wed missed, Thu-Sat rest
        assert result == [1, 1, 1, 0, 1, 1, 1]

    def test_flexible_plan_scores_logged_days_only(self):
        plan = WorkoutPlanSnapshot(window=_window("w", datetime(2024, 1, 1, tzinfo=timezone.utc)), builder_mode="day")
        done = {date(2024, 1, 7), date(2024, 1, 9)}
        result = workout_compliance_week(WEEK, [plan], done, signup_at=SIGNED_UP, tz=UTC)
        assert result == [1, 0, 1, 0, 0, 0, 0]


class TestAssignedItems:
    def test_supplement_week(self):
        items = [AssignedItem(item_id="creatine", starts_on=date(2024, 1, 9))]
        done = {date(2024, 1, 10): {"creatine"}}
        result = assigned_items_week(WEEK, items, done, today=date(2024, 1, 12), signup_at=SIGNED_UP, tz=UTC)
        assert result == [NOT_ASSIGNED, NOT_ASSIGNED, NOT_APPLICABLE, 1.0, 0.0, 0.0, 0.0]

    def test_nothing_assigned_today_or_later_scores_zero(self):
        result = assigned_items_week(WEEK, [], {}, today=date(2024, 1, 10), signup_at=SIGNED_UP, tz=UTC)
        assert result == [NOT_ASSIGNED] * 3 + [0] * 4

    def test_fraction_of_assigned_items(self):
        items = [
            AssignedItem(item_id="a", starts_on=date(2024, 1, 1)),
            AssignedItem(item_id="b", starts_on=date(2024, 1, 1)),
        ]
        done = {WEEK: {"a"}}
        result = assigned_items_week(WEEK, items, done, today=date(2024, 1, 20), signup_at=SIGNED_UP, tz=UTC)
        assert result[0] == 0.5

    def test_supplement_and_habit_weeks_take_signup_before_today(self):
        items = [AssignedItem(item_id="creatine", starts_on=date(2024, 1, 9))]
        done = {date(2024, 1, 10): {"creatine"}}
        expected = [NOT_ASSIGNED, NOT_ASSIGNED, NOT_APPLICABLE, 1.0, 0.0, 0.0, 0.0]
        assert supplement_compliance_week(WEEK, items, done, SIGNED_UP, date(2024, 1, 12), UTC) == expected
        assert habit_compliance_week(WEEK, items, done, SIGNED_UP, UTC, today=date(2024, 1, 12)) == expected

    def test_today_defaults_to_the_local_date(self):
        assert habit_compliance_week(WEEK, [], {}, SIGNED_UP, UTC) == [NOT_ASSIGNED] * 7
        assert supplement_compliance_week(date(2999, 1, 6), [], {}, SIGNED_UP, tz=UTC) == [0] * 7


class TestSummaries:
    def test_summarize_ignores_sentinels(self):
        assert summarize_week([1, 0.5, NOT_APPLICABLE, NOT_ASSIGNED, 0]) == 50
        assert summarize_week([NOT_APPLICABLE, NOT_ASSIGNED]) is None

    def test_overall_is_mean_of_scored_categories(self):
        row = client_compliance("c1", "Ann", workout=[1, 1], meal=[0.5], supplement=[NOT_APPLICABLE])
        assert (row.workout, row.meal, row.supplement, row.overall) == (100, 50, None, 75)
        assert row.as_dict()["overall_compliance"] == 75

    def test_ranking_puts_unscored_clients_last(self):
        rows = [
            ClientCompliance(client_id=1, name="B", overall=40),
            ClientCompliance(client_id=2, name="C", overall=None),
            ClientCompliance(client_id=3, name="A", overall=90),
        ]
        assert [r.name for r in rank_clients(rows)] == ["A", "B", "C"]
