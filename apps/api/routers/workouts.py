"""
Workout Plan API Endpoints

Plan and template management for coaches; the client's week and day views,
completions, and weekly workout compliance.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_client, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from core.timezone import local_today, parse_day, start_of_week
from models import User, WorkoutPlan
from schemas import ApiModel, WorkoutDayIn, WorkoutPlanResponse
from services import workout_plans
from services.compliance_queries import workout_week

router = APIRouter(prefix="/api", tags=["workouts"])


class CreateWorkoutPlanRequest(ApiModel):
    title: str
    description: Optional[str] = None
    client_id: Optional[str] = None
    builder_mode: str = "week"
    workout_days_per_week: int = 7
    days: List[WorkoutDayIn] = []
    save_to_library: bool = True


class UpdateWorkoutPlanRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    builder_mode: Optional[str] = None
    workout_days_per_week: Optional[int] = None
    days: Optional[List[WorkoutDayIn]] = None


class CopyTemplateRequest(ApiModel):
    client_id: str


class WorkoutCompletionRequest(ApiModel):
    date: Optional[str] = None
    completed_groups: List[str] = Field(default_factory=list)


def _readable_plan(db: Session, user: User, plan_id: UUID) -> WorkoutPlan:
    if user.role == "coach":
        return workout_plans.get_coach_workout_plan(db, user, plan_id)
    plan = workout_plans.get_workout_plan(db, plan_id)
    if plan.user_id != user.id:
        raise NotFoundError("Workout plan not found")
    return plan


@router.get("/workout-plans")
def list_workout_plans(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role == "coach":
        if not client_id:
            raise ValidationError("clientId is required", field="clientId")
        target = get_coach_client(db, current_user, client_id)
    else:
        target = current_user
    plans = workout_plans.list_client_plans(db, target)
    return {"workoutPlans": [WorkoutPlanResponse.model_validate(p) for p in plans]}


@router.post("/workout-plans", response_model=WorkoutPlanResponse, status_code=201)
def create_workout_plan(
    request: CreateWorkoutPlanRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """
    Create a library template, or a plan for a client.

    builderMode "week" schedules workouts by weekday; "day" gives the
    client a set of workouts to pick from over workoutDaysPerWeek days.
    """
    if not request.title.strip():
        raise ValidationError("Title is required", field="title")
    client = get_coach_client(db, coach, request.client_id) if request.client_id else None
    return workout_plans.create_workout_plan(
        db,
        coach=coach,
        title=request.title.strip(),
        description=request.description,
        days=request.days,
        client=client,
        builder_mode=request.builder_mode,
        workout_days_per_week=request.workout_days_per_week,
        save_to_library=request.save_to_library,
    )


@router.get("/workout-plans/templates")
def list_workout_templates(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    return {"templates": [WorkoutPlanResponse.model_validate(p) for p in workout_plans.list_templates(db, coach)]}


@router.get("/workout-plans/{plan_id}", response_model=WorkoutPlanResponse)
def get_workout_plan(
    plan_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _readable_plan(db, current_user, plan_id)


@router.put("/workout-plans/{plan_id}", response_model=WorkoutPlanResponse)
def update_workout_plan(
    plan_id: UUID,
    request: UpdateWorkoutPlanRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = workout_plans.get_coach_workout_plan(db, coach, plan_id)
    return workout_plans.update_workout_plan(
        db,
        plan,
        title=request.title,
        description=request.description,
        builder_mode=request.builder_mode,
        workout_days_per_week=request.workout_days_per_week,
        days=request.days,
    )


@router.delete("/workout-plans/{plan_id}")
def delete_workout_plan(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = workout_plans.get_coach_workout_plan(db, coach, plan_id)
    workout_plans.delete_workout_plan(db, plan)
    return {"success": True}


@router.post("/workout-plans/{plan_id}/activate", response_model=WorkoutPlanResponse)
def activate_workout_plan(
    plan_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    plan = workout_plans.get_coach_workout_plan(db, coach, plan_id)
    return workout_plans.activate_workout_plan(db, plan)


@router.post("/workout-plans/{plan_id}/copy-to-client", response_model=WorkoutPlanResponse, status_code=201)
def copy_workout_template_to_client(
    plan_id: UUID,
    request: CopyTemplateRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    template = workout_plans.get_coach_workout_plan(db, coach, plan_id)
    client = get_coach_client(db, coach, request.client_id)
    return workout_plans.copy_template_to_client(db, template, client, coach)


@router.get("/get-workout-week")
def get_workout_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Defaults to the current week."""
    start = parse_day(week_start) or start_of_week(local_today())
    target = resolve_target_user(db, current_user, user_id)
    return workout_plans.build_week(db, target, start)


@router.get("/get-workout-day")
def get_workout_day(
    date: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    day = parse_day(date, default=local_today())
    target = resolve_target_user(db, current_user, user_id)
    return workout_plans.build_day(db, target, day)


@router.post("/submit-workout-completion")
def submit_workout_completion(
    request: WorkoutCompletionRequest,
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """
    Save the groups finished on a day (default today).

    Group ids are "{sequence_order}-{group_type}". An empty list marks a
    rest day.
    """
    day = parse_day(request.date, default=local_today())
    row = workout_plans.submit_completion(db, current_user, day, request.completed_groups)
    return {
        "success": True,
        "date": row.completed_at.isoformat(),
        "completedGroups": row.completed_groups,
    }


@router.get("/get-workout-completions")
def get_workout_completions(
    start: Optional[str] = Query(None, alias="startDate"),
    end: Optional[str] = Query(None, alias="endDate"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    first = parse_day(start)
    last = parse_day(end)
    if first is None or last is None:
        raise ValidationError("startDate and endDate are required", field="startDate")
    if last < first:
        raise ValidationError("endDate must not be before startDate", field="endDate")
    target = resolve_target_user(db, current_user, user_id)
    return {"completions": workout_plans.list_completions(db, target, first, last)}


@router.get("/get-compliance-week")
def get_compliance_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seven daily workout scores; -1 marks a day that does not apply."""
    start = parse_day(week_start)
    if start is None:
        raise ValidationError("Missing required parameters", field="weekStart")
    target = resolve_target_user(db, current_user, client_id)
    return {"complianceData": workout_week(db, target, start)}
