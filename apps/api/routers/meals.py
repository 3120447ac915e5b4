"""
Meal Plan API Endpoints

Coach-side plan and template management plus the client's meal week,
completions and weekly meal compliance.
"""
import logging
from collections import defaultdict
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from core.timezone import local_today, parse_day
from models import Meal, MealCompletion, MealPlan, User
from schemas import ApiModel, MealIn, MealPlanResponse
from services import meal_plans
from services import compliance_queries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["meals"])


class CreateMealPlanRequest(ApiModel):
    title: str
    description: Optional[str] = None
    client_id: Optional[str] = None
    meals: List[MealIn] = []
    save_to_library: bool = True


class UpdateMealPlanRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    meals: Optional[List[MealIn]] = None


class ClientMealsRequest(ApiModel):
    meals: List[MealIn]


class CopyTemplateRequest(ApiModel):
    client_id: str


class MealCompletionsRequest(ApiModel):
    completed_meal_ids: List[UUID]
    date: str


def _readable_plan(db: Session, user: User, plan_id: UUID) -> MealPlan:
    """Coaches read their templates and clients' plans; clients only their own."""
    if user.role == "coach":
        return meal_plans.get_coach_meal_plan(db, user, plan_id)
    plan = meal_plans.get_meal_plan(db, plan_id)
    if plan.user_id != user.id:
        raise NotFoundError("Meal plan not found")
    return plan


@router.get("/meal-plans")
def list_meal_plans(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """A client's plans, newest first. Coaches pass clientId."""
    if current_user.role == "coach":
        if not client_id:
            raise ValidationError("clientId is required", field="clientId")
        target = get_coach_client(db, current_user, client_id)
    else:
        target = current_user
    plans = meal_plans.get_client_personal_meals(db, target)
    return {"mealPlans": [MealPlanResponse.model_validate(p) for p in plans]}


@router.post("/meal-plans", response_model=MealPlanResponse, status_code=201)
def create_meal_plan(
    request: CreateMealPlanRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """
    Create a library template, or a plan for a client.

    A client plan is also filed in the library unless saveToLibrary is false.
    """
    if not request.title.strip():
        raise ValidationError("Title is required", field="title")
    client = get_coach_client(db, coach, request.client_id) if request.client_id else None
    return meal_plans.create_meal_plan(
        db,
        coach=coach,
        title=request.title.strip(),
        description=request.description,
        meals=request.meals,
        client=client,
        save_to_library=request.save_to_library,
    )


@router.get("/meal-plans/templates")
def list_meal_templates(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    return {"templates": [MealPlanResponse.model_validate(p) for p in meal_plans.list_templates(db, coach)]}


@router.get("/meal-plans/{plan_id}", response_model=MealPlanResponse)
def get_meal_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _readable_plan(db, current_user, plan_id)


@router.put("/meal-plans/{plan_id}", response_model=MealPlanResponse)
def update_meal_plan(
    plan_id: UUID,
    request: UpdateMealPlanRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    return meal_plans.update_meal_plan(
        db,
        plan,
        title=request.title,
        description=request.description,
        meals=request.meals,
    )


@router.delete("/meal-plans/{plan_id}")
def delete_meal_plan(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    meal_plans.delete_meal_plan(db, plan)
    return {"success": True}


@router.post("/meal-plans/{plan_id}/activate", response_model=MealPlanResponse)
def activate_meal_plan(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    return meal_plans.activate_meal_plan(db, plan)


@router.post("/meal-plans/{plan_id}/deactivate", response_model=MealPlanResponse)
def deactivate_meal_plan(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    return meal_plans.deactivate_meal_plan(db, plan)


@router.post("/meal-plans/{plan_id}/copy-to-client", response_model=MealPlanResponse, status_code=201)
def copy_meal_template_to_client(
    plan_id: UUID,
    request: CopyTemplateRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    template = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    client = get_coach_client(db, coach, request.client_id)
    return meal_plans.copy_template_to_client(db, template, client, coach)


@router.post("/meal-plans/{plan_id}/save-as-template", response_model=MealPlanResponse, status_code=201)
def save_meal_plan_as_template(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    return meal_plans.save_as_template(db, plan, coach)


@router.put("/meal-plans/{plan_id}/meals", response_model=MealPlanResponse)
def update_client_meals(
    plan_id: UUID,
    request: ClientMealsRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Edit the meals of one client's copy without touching the template."""
    plan = meal_plans.get_coach_meal_plan(db, coach, plan_id)
    return meal_plans.update_client_meals(db, plan, request.meals)


@router.get("/get-meal-week")
def get_meal_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seven days of meals from whichever plan was active on each day."""
    start = parse_day(week_start)
    if start is None:
        raise ValidationError("Week start parameter is required", field="weekStart")
    target = resolve_target_user(db, current_user, user_id)
    return {
        "weekStart": start.isoformat(),
        "days": meal_plans.meal_week(db, target, start),
    }


@router.post("/submit-meal-completions")
def submit_meal_completions(
    request: MealCompletionsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record eaten meals for a day. Already recorded meals are skipped."""
    day = parse_day(request.date)
    if day is None:
        raise ValidationError("Missing completedMealIds or date", field="date")

    wanted = set(request.completed_meal_ids)
    owned = {
        row.id
        for row in db.query(Meal.id)
        .join(MealPlan, Meal.meal_plan_id == MealPlan.id)
        .filter(MealPlan.user_id == current_user.id, Meal.id.in_(wanted))
    } if wanted else set()
    if wanted - owned:
        raise NotFoundError("Meal not found")

    existing = {
        row.meal_id
        for row in db.query(MealCompletion.meal_id).filter(
            MealCompletion.user_id == current_user.id,
            MealCompletion.completed_at == day,
            MealCompletion.meal_id.in_(wanted),
        )
    } if wanted else set()

    inserted = 0
    for meal_id in wanted - existing:
        db.add(MealCompletion(user_id=current_user.id, meal_id=meal_id, completed_at=day))
        inserted += 1
    db.flush()
    return {"success": True, "inserted": inserted, "skipped": len(existing)}


@router.get("/get-meal-completions")
def get_meal_completions(
    date: Optional[str] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Meal ids eaten on `date`, or grouped by day across `start`..`end`."""
    target = resolve_target_user(db, current_user, user_id)
    query = db.query(MealCompletion).filter(MealCompletion.user_id == target.id)

    if start and end:
        first, last = parse_day(start), parse_day(end)
        rows = query.filter(MealCompletion.completed_at >= first, MealCompletion.completed_at <= last).all()
        by_date: dict[str, list[str]] = defaultdict(list)
        for row in rows:
            by_date[row.completed_at.isoformat()].append(str(row.meal_id))
        return {"completionsByDate": dict(by_date)}

    if not date:
        raise ValidationError("Missing date or start/end parameter", field="date")
    day = parse_day(date)
    rows = query.filter(MealCompletion.completed_at == day).all()
    return {"completedMealIds": [str(row.meal_id) for row in rows]}


@router.get("/get-meal-compliance-week")
def get_meal_compliance_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seven daily meal scores; -1 marks a day that does not apply."""
    start = parse_day(week_start, default=None)
    if start is None:
        raise ValidationError("Missing required parameters", field="weekStart")
    target = resolve_target_user(db, current_user, client_id)
    return {"complianceData": compliance_queries.meal_week(db, target, start), "today": local_today().isoformat()}
