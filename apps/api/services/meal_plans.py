"""
Meal Plan Service

Lifecycle of client meal plans and the coach's template library:

- create/update replace a plan's meals and foods wholesale, keeping the
  submitted order in `sequence_order`
- a plan created for a client is also filed in the coach's library as a
  template, and the client copy remembers it through `template_id`
- activation keeps one active plan per client and records the window
  (`activated_at` / `deactivated_at`) that compliance relies on
"""
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.exceptions import BadRequestError, NotFoundError
from core.timezone import utcnow, week_days
from models import Food, Meal, MealCompletion, MealPlan, User
from schemas import MealIn
from services.compliance import PlanRef, PlanWindow, find_active_plan, newest_first

logger = logging.getLogger(__name__)


def _build_meals(meals: Iterable[MealIn]) -> list[Meal]:
    built = []
    for i, meal in enumerate(meals):
        built.append(
            Meal(
                name=meal.name,
                time=meal.time,
                sequence_order=i,
                foods=[
                    Food(
                        name=food.name,
                        portion=food.portion,
                        calories=food.calories,
                        protein=food.protein,
                        carbs=food.carbs,
                        fat=food.fat,
                        sequence_order=j,
                    )
                    for j, food in enumerate(meal.foods)
                ],
            )
        )
    return built


def _copy_meals(source: MealPlan) -> list[Meal]:
    return [
        Meal(
            name=meal.name,
            time=meal.time,
            sequence_order=meal.sequence_order,
            foods=[
                Food(
                    name=f.name,
                    portion=f.portion,
                    calories=f.calories,
                    protein=f.protein,
                    carbs=f.carbs,
                    fat=f.fat,
                    sequence_order=f.sequence_order,
                )
                for f in meal.foods
            ],
        )
        for meal in source.meals
    ]


def get_meal_plan(db: Session, plan_id: UUID) -> MealPlan:
    plan = (
        db.query(MealPlan)
        .options(selectinload(MealPlan.meals).selectinload(Meal.foods))
        .filter(MealPlan.id == plan_id)
        .first()
    )
    if not plan:
        raise NotFoundError("Meal plan not found")
    return plan


def get_coach_meal_plan(db: Session, coach: User, plan_id: UUID) -> MealPlan:
    """A plan the coach may edit: one of their templates or a client's plan."""
    plan = get_meal_plan(db, plan_id)
    if plan.is_template:
        if plan.coach_id != coach.id:
            raise NotFoundError("Meal plan not found")
        return plan
    owner = db.get(User, plan.user_id) if plan.user_id else None
    if owner is None or owner.coach_id != coach.id:
        raise NotFoundError("Meal plan not found")
    return plan


def create_meal_plan(
    db: Session,
    *,
    coach: User,
    title: str,
    meals: Iterable[MealIn],
    client: Optional[User] = None,
    description: Optional[str] = None,
    save_to_library: bool = True,
) -> MealPlan:
    """
    Create a template (no client) or a client plan.

    Client plans are inactive until activated.
    """
    meals = list(meals)
    if client is None:
        plan = MealPlan(coach_id=coach.id, title=title, description=description, is_template=True, meals=_build_meals(meals))
        db.add(plan)
        db.flush()
        return plan

    template_id = None
    if save_to_library:
        template = MealPlan(coach_id=coach.id, title=title, description=description, is_template=True, meals=_build_meals(meals))
        db.add(template)
        db.flush()
        template_id = template.id

    plan = MealPlan(
        user_id=client.id,
        coach_id=coach.id,
        title=title,
        description=description,
        is_template=False,
        template_id=template_id,
        meals=_build_meals(meals),
    )
    db.add(plan)
    db.flush()
    logger.info(f"Created meal plan {plan.id} for client {client.id}")
    return plan


def update_meal_plan(
    db: Session,
    plan: MealPlan,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    meals: Optional[Iterable[MealIn]] = None,
) -> MealPlan:
    if title is not None:
        plan.title = title
    if description is not None:
        plan.description = description
    if meals is not None:
        # delete-orphan removes the old meals, their foods and completions
        plan.meals = _build_meals(meals)
    db.flush()
    return plan


def delete_meal_plan(db: Session, plan: MealPlan) -> None:
    db.delete(plan)
    db.flush()


def activate_meal_plan(db: Session, plan: MealPlan, now: Optional[datetime] = None) -> MealPlan:
    """
    Make `plan` the client's only active plan.

    Plans it replaces get `deactivated_at = now`; `activated_at` keeps the
    first activation so earlier days keep their history.
    """
    if plan.is_template or plan.user_id is None:
        raise BadRequestError("Templates cannot be activated")
    now = now or utcnow()

    others = (
        db.query(MealPlan)
        .filter(
            MealPlan.user_id == plan.user_id,
            MealPlan.is_template.is_(False),
            MealPlan.is_active.is_(True),
            MealPlan.id != plan.id,
        )
        .all()
    )
    for other in others:
        other.is_active = False
        other.deactivated_at = now

    plan.is_active = True
    plan.deactivated_at = None
    if plan.activated_at is None:
        plan.activated_at = now
    db.flush()
    return plan


def deactivate_meal_plan(db: Session, plan: MealPlan, now: Optional[datetime] = None) -> MealPlan:
    if plan.is_active:
        plan.is_active = False
        plan.deactivated_at = now or utcnow()
        db.flush()
    return plan


def copy_template_to_client(db: Session, template: MealPlan, client: User, coach: User) -> MealPlan:
    """Deep copy of a library template into an inactive client plan."""
    if not template.is_template:
        raise BadRequestError("Not a template")
    plan = MealPlan(
        user_id=client.id,
        coach_id=coach.id,
        title=template.title,
        description=template.description,
        is_template=False,
        template_id=template.id,
        meals=_copy_meals(template),
    )
    db.add(plan)
    db.flush()
    return plan


def save_as_template(db: Session, plan: MealPlan, coach: User) -> MealPlan:
    template = MealPlan(
        coach_id=coach.id,
        title=plan.title,
        description=plan.description,
        is_template=True,
        meals=_copy_meals(plan),
    )
    db.add(template)
    db.flush()
    return template


def get_client_personal_meals(db: Session, client: User) -> list[MealPlan]:
    """The client's own plan copies, newest first, with meals and foods."""
    return (
        db.query(MealPlan)
        .options(selectinload(MealPlan.meals).selectinload(Meal.foods))
        .filter(MealPlan.user_id == client.id, MealPlan.is_template.is_(False))
        .order_by(MealPlan.created_at.desc())
        .all()
    )


def update_client_meals(db: Session, plan: MealPlan, meals: Iterable[MealIn]) -> MealPlan:
    """Replace the meals of a client copy; the library template is untouched."""
    if plan.is_template:
        raise BadRequestError("Use the template editor to change a template")
    return update_meal_plan(db, plan, meals=meals)


def list_templates(db: Session, coach: User) -> list[MealPlan]:
    return (
        db.query(MealPlan)
        .options(selectinload(MealPlan.meals).selectinload(Meal.foods))
        .filter(MealPlan.coach_id == coach.id, MealPlan.is_template.is_(True))
        .order_by(MealPlan.created_at.desc())
        .all()
    )


def _client_plans(db: Session, user: User) -> list[PlanRef]:
    plans = (
        db.query(MealPlan)
        .options(selectinload(MealPlan.meals).selectinload(Meal.foods))
        .filter(MealPlan.user_id == user.id, MealPlan.is_template.is_(False))
        .all()
    )
    return newest_first(PlanRef(PlanWindow.of(p), p) for p in plans)


def _day_view(day: date, plan: Optional[MealPlan], eaten: set) -> dict:
    if plan is None:
        return {"date": day.isoformat(), "plan": None, "meals": []}
    return {
        "date": day.isoformat(),
        "plan": {"id": str(plan.id), "title": plan.title},
        "meals": [
            {
                "id": str(meal.id),
                "name": meal.name,
                "time": meal.time,
                "completed": meal.id in eaten,
                "foods": [
                    {
                        "id": str(f.id),
                        "name": f.name,
                        "portion": f.portion,
                        "calories": f.calories,
                        "protein": f.protein,
                        "carbs": f.carbs,
                        "fat": f.fat,
                    }
                    for f in meal.foods
                ],
            }
            for meal in plan.meals
        ],
    }


def meal_week(db: Session, user: User, week_start: date) -> list[dict]:
    """
    Seven day views starting at `week_start`.

    Each day shows the meals of the plan in force that day (same window
    rules as compliance), flagged if eaten. Plans and the week's
    completions are each loaded once.
    """
    days = week_days(week_start)
    plans = _client_plans(db, user)
    eaten: dict[date, set] = defaultdict(set)
    rows = db.query(MealCompletion.meal_id, MealCompletion.completed_at).filter(
        MealCompletion.user_id == user.id,
        MealCompletion.completed_at >= days[0],
        MealCompletion.completed_at <= days[-1],
    )
    for meal_id, day in rows:
        eaten[day].add(meal_id)

    views = []
    for day in days:
        found = find_active_plan(plans, day)
        views.append(_day_view(day, found.plan if found else None, eaten[day]))
    return views
