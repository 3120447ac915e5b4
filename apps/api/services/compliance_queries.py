"""
Loads plans and completions for the compliance calculations.

Every loader takes a list of user ids so the coach dashboard can fetch all
of its clients in a fixed number of queries.
"""
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.timezone import get_zone, local_today, to_local_date
from models import (
    ClientHabit,
    HabitCompletion,
    Meal,
    MealCompletion,
    MealPlan,
    Supplement,
    SupplementCompletion,
    User,
    WorkoutCompletion,
    WorkoutPlan,
)
from services import compliance
from services.compliance import AssignedItem, MealPlanSnapshot, PlanWindow, WorkoutPlanSnapshot


def load_meal_plans(db: Session, user_ids: list[UUID]) -> dict[UUID, list[MealPlanSnapshot]]:
    plans = (
        db.query(MealPlan)
        .options(selectinload(MealPlan.meals).selectinload(Meal.foods))
        .filter(MealPlan.user_id.in_(user_ids), MealPlan.is_template.is_(False))
        .all()
    )
    by_user: dict[UUID, list[MealPlanSnapshot]] = defaultdict(list)
    for plan in plans:
        groups: dict[tuple, set] = defaultdict(set)
        for meal in plan.meals:
            if meal.foods:
                groups[(meal.name, meal.time)].add(meal.id)
        by_user[plan.user_id].append(
            MealPlanSnapshot(window=PlanWindow.of(plan), meal_groups={k: frozenset(v) for k, v in groups.items()})
        )
    return {uid: compliance.newest_first(snaps) for uid, snaps in by_user.items()}


def load_workout_plans(db: Session, user_ids: list[UUID]) -> dict[UUID, list[WorkoutPlanSnapshot]]:
    plans = (
        db.query(WorkoutPlan)
        .options(selectinload(WorkoutPlan.days))
        .filter(WorkoutPlan.user_id.in_(user_ids), WorkoutPlan.is_template.is_(False))
        .all()
    )
    by_user: dict[UUID, list[WorkoutPlanSnapshot]] = defaultdict(list)
    for plan in plans:
        by_user[plan.user_id].append(
            WorkoutPlanSnapshot(
                window=PlanWindow.of(plan),
                builder_mode=plan.builder_mode,
                training_days=frozenset(d.day_of_week for d in plan.days if not d.is_rest),
            )
        )
    return {uid: compliance.newest_first(snaps) for uid, snaps in by_user.items()}


def load_meal_completions(db: Session, user_ids: list[UUID], start: date, end: date) -> dict[UUID, dict[date, set]]:
    rows = (
        db.query(MealCompletion.user_id, MealCompletion.completed_at, MealCompletion.meal_id)
        .filter(
            MealCompletion.user_id.in_(user_ids),
            MealCompletion.completed_at >= start,
            MealCompletion.completed_at <= end,
        )
        .all()
    )
    out: dict[UUID, dict[date, set]] = defaultdict(lambda: defaultdict(set))
    for user_id, day, meal_id in rows:
        out[user_id][day].add(meal_id)
    return out


def load_workout_days(db: Session, user_ids: list[UUID], start: date, end: date) -> dict[UUID, set[date]]:
    rows = (
        db.query(WorkoutCompletion.user_id, WorkoutCompletion.completed_at)
        .filter(
            WorkoutCompletion.user_id.in_(user_ids),
            WorkoutCompletion.completed_at >= start,
            WorkoutCompletion.completed_at <= end,
        )
        .all()
    )
    out: dict[UUID, set[date]] = defaultdict(set)
    for user_id, day in rows:
        out[user_id].add(day)
    return out


def load_supplements(db: Session, user_ids: list[UUID]) -> dict[UUID, list[AssignedItem]]:
    tz = get_zone()
    out: dict[UUID, list[AssignedItem]] = defaultdict(list)
    for supp in db.query(Supplement).filter(Supplement.user_id.in_(user_ids)).all():
        starts_on = supp.active_from or to_local_date(supp.created_at, tz)
        out[supp.user_id].append(AssignedItem(item_id=supp.id, starts_on=starts_on))
    return out


def load_supplement_completions(db: Session, user_ids: list[UUID], start: date, end: date) -> dict[UUID, dict[date, set]]:
    rows = (
        db.query(SupplementCompletion.user_id, SupplementCompletion.completed_at, SupplementCompletion.supplement_id)
        .filter(
            SupplementCompletion.user_id.in_(user_ids),
            SupplementCompletion.completed_at >= start,
            SupplementCompletion.completed_at <= end,
        )
        .all()
    )
    out: dict[UUID, dict[date, set]] = defaultdict(lambda: defaultdict(set))
    for user_id, day, supp_id in rows:
        out[user_id][day].add(supp_id)
    return out


def load_daily_habits(db: Session, user_ids: list[UUID]) -> dict[UUID, list[AssignedItem]]:
    tz = get_zone()
    out: dict[UUID, list[AssignedItem]] = defaultdict(list)
    habits = (
        db.query(ClientHabit)
        .filter(ClientHabit.client_id.in_(user_ids), ClientHabit.frequency == "daily")
        .all()
    )
    for habit in habits:
        out[habit.client_id].append(AssignedItem(item_id=habit.id, starts_on=to_local_date(habit.created_at, tz)))
    return out


def load_habit_completions(db: Session, user_ids: list[UUID], start: date, end: date) -> dict[UUID, dict[date, set]]:
    rows = (
        db.query(HabitCompletion.client_id, HabitCompletion.completed_at, HabitCompletion.client_habit_id)
        .filter(
            HabitCompletion.client_id.in_(user_ids),
            HabitCompletion.completed_at >= start,
            HabitCompletion.completed_at <= end,
        )
        .all()
    )
    out: dict[UUID, dict[date, set]] = defaultdict(lambda: defaultdict(set))
    for client_id, day, habit_id in rows:
        out[client_id][day].add(habit_id)
    return out


# --- single-client weeks ---


def meal_week(db: Session, user: User, week_start: date) -> list[float]:
    end = week_start + timedelta(days=6)
    plans = load_meal_plans(db, [user.id]).get(user.id, [])
    done = load_meal_completions(db, [user.id], week_start, end).get(user.id, {})
    return compliance.meal_compliance_week(week_start, plans, done, signup_at=user.created_at)


def workout_week(db: Session, user: User, week_start: date) -> list[float]:
    end = week_start + timedelta(days=6)
    plans = load_workout_plans(db, [user.id]).get(user.id, [])
    done = load_workout_days(db, [user.id], week_start, end).get(user.id, set())
    return compliance.workout_compliance_week(week_start, plans, done, signup_at=user.created_at)


def supplement_week(db: Session, user: User, week_start: date) -> list[float]:
    end = week_start + timedelta(days=6)
    items = load_supplements(db, [user.id]).get(user.id, [])
    done = load_supplement_completions(db, [user.id], week_start, end).get(user.id, {})
    return compliance.supplement_compliance_week(week_start, items, done, signup_at=user.created_at)


def habit_week(db: Session, user: User, week_start: date) -> list[float]:
    end = week_start + timedelta(days=6)
    items = load_daily_habits(db, [user.id]).get(user.id, [])
    done = load_habit_completions(db, [user.id], week_start, end).get(user.id, {})
    return compliance.habit_compliance_week(week_start, items, done, signup_at=user.created_at)


# --- coach dashboard ---


def coach_compliance_summary(db: Session, coach: User, clients: Iterable[User] = None) -> list[compliance.ClientCompliance]:
    """Rolling seven-day compliance (ending today) for each active client, best first."""
    if clients is None:
        clients = (
            db.query(User)
            .filter(User.coach_id == coach.id, User.role == "client", User.status == "active")
            .all()
        )
    clients = list(clients)
    if not clients:
        return []

    ids = [c.id for c in clients]
    today = local_today()
    start = today - timedelta(days=6)

    meal_plans = load_meal_plans(db, ids)
    workout_plans = load_workout_plans(db, ids)
    supplements = load_supplements(db, ids)
    meal_done = load_meal_completions(db, ids, start, today)
    workout_done = load_workout_days(db, ids, start, today)
    supp_done = load_supplement_completions(db, ids, start, today)

    rows = []
    for client in clients:
        rows.append(
            compliance.client_compliance(
                client.id,
                client.name,
                workout=compliance.workout_compliance_week(
                    start, workout_plans.get(client.id, []), workout_done.get(client.id, set()), client.created_at
                ),
                meal=compliance.meal_compliance_week(
                    start, meal_plans.get(client.id, []), meal_done.get(client.id, {}), client.created_at
                ),
                supplement=compliance.supplement_compliance_week(
                    start, supplements.get(client.id, []), supp_done.get(client.id, {}), client.created_at, today
                ),
            )
        )
    return compliance.rank_clients(rows)
