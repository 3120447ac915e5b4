"""
Workout Plan Service

Two builder modes:

- 'week': one WorkoutDay per weekday name; days without a workout are rest
  days. The client sees the workout scheduled for each date.
- 'day': WorkoutDays are templates ("Push", "Legs", ...). The client picks
  one per day and may take `7 - workout_days_per_week` rest days a week.

Exercises are stored flat and grouped by (sequence_order, group_type); the
group id `"{sequence_order}-{group_type}"` is what completions record.
"""
import logging
from datetime import date, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.exceptions import BadRequestError, NotFoundError
from core.timezone import day_name, start_of_week, utcnow, week_days
from models import User, WorkoutCompletion, WorkoutDay, WorkoutExercise, WorkoutPersonalBest, WorkoutPlan
from schemas import WorkoutDayIn
from services.compliance import PlanRef, PlanWindow, find_active_plan, newest_first

logger = logging.getLogger(__name__)

BUILDER_MODES = ("week", "day")


def group_key(sequence_order: int, group_type: str) -> str:
    return f"{sequence_order}-{group_type}"


def _build_days(days: Iterable[WorkoutDayIn]) -> list[WorkoutDay]:
    built = []
    for i, day in enumerate(days):
        exercises = []
        if not day.is_rest:
            for gi, group in enumerate(day.groups):
                for ei, ex in enumerate(group.exercises):
                    exercises.append(
                        WorkoutExercise(
                            group_type=group.group_type,
                            sequence_order=gi,
                            exercise_order=ei,
                            exercise_name=ex.exercise_name,
                            exercise_description=ex.exercise_description,
                            video_url=ex.video_url,
                            sets_data=[s.model_dump() for s in ex.sets_data],
                            group_notes=group.group_notes,
                        )
                    )
        built.append(
            WorkoutDay(
                day_of_week=day.day_of_week,
                is_rest=day.is_rest,
                workout_name=None if day.is_rest else day.workout_name,
                workout_type=None if day.is_rest else day.workout_type,
                sequence_order=i,
                exercises=exercises,
            )
        )
    return built


def _copy_days(source: WorkoutPlan) -> list[WorkoutDay]:
    return [
        WorkoutDay(
            day_of_week=d.day_of_week,
            is_rest=d.is_rest,
            workout_name=d.workout_name,
            workout_type=d.workout_type,
            sequence_order=d.sequence_order,
            exercises=[
                WorkoutExercise(
                    group_type=ex.group_type,
                    sequence_order=ex.sequence_order,
                    exercise_order=ex.exercise_order,
                    exercise_name=ex.exercise_name,
                    exercise_description=ex.exercise_description,
                    video_url=ex.video_url,
                    sets_data=list(ex.sets_data or []),
                    group_notes=ex.group_notes,
                )
                for ex in d.exercises
            ],
        )
        for d in source.days
    ]


def _validate_shape(builder_mode: str, workout_days_per_week: int) -> None:
    if builder_mode not in BUILDER_MODES:
        raise BadRequestError(f"builder_mode must be one of {BUILDER_MODES}")
    if not 1 <= workout_days_per_week <= 7:
        raise BadRequestError("workout_days_per_week must be between 1 and 7")


def _plan_query(db: Session):
    return db.query(WorkoutPlan).options(
        selectinload(WorkoutPlan.days).selectinload(WorkoutDay.exercises)
    )


def get_workout_plan(db: Session, plan_id: UUID) -> WorkoutPlan:
    plan = _plan_query(db).filter(WorkoutPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("Workout plan not found")
    return plan


def get_coach_workout_plan(db: Session, coach: User, plan_id: UUID) -> WorkoutPlan:
    plan = get_workout_plan(db, plan_id)
    if plan.is_template:
        if plan.coach_id != coach.id:
            raise NotFoundError("Workout plan not found")
        return plan
    owner = db.get(User, plan.user_id) if plan.user_id else None
    if owner is None or owner.coach_id != coach.id:
        raise NotFoundError("Workout plan not found")
    return plan


def create_workout_plan(
    db: Session,
    *,
    coach: User,
    title: str,
    days: Iterable[WorkoutDayIn],
    client: Optional[User] = None,
    description: Optional[str] = None,
    builder_mode: str = "week",
    workout_days_per_week: int = 7,
    save_to_library: bool = True,
) -> WorkoutPlan:
    """Create a template (no client) or an inactive client plan plus its library template."""
    _validate_shape(builder_mode, workout_days_per_week)
    days = list(days)

    def _new(**kw) -> WorkoutPlan:
        plan = WorkoutPlan(
            coach_id=coach.id,
            title=title,
            description=description,
            builder_mode=builder_mode,
            workout_days_per_week=workout_days_per_week,
            days=_build_days(days),
            **kw,
        )
        db.add(plan)
        db.flush()
        return plan

    if client is None:
        return _new(is_template=True)

    template = _new(is_template=True) if save_to_library else None
    plan = _new(user_id=client.id, is_template=False, template_id=template.id if template else None)
    logger.info(f"Created workout plan {plan.id} for client {client.id}")
    return plan


def update_workout_plan(
    db: Session,
    plan: WorkoutPlan,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    builder_mode: Optional[str] = None,
    workout_days_per_week: Optional[int] = None,
    days: Optional[Iterable[WorkoutDayIn]] = None,
) -> WorkoutPlan:
    _validate_shape(
        plan.builder_mode if builder_mode is None else builder_mode,
        plan.workout_days_per_week if workout_days_per_week is None else workout_days_per_week,
    )
    if title is not None:
        plan.title = title
    if description is not None:
        plan.description = description
    if builder_mode is not None:
        plan.builder_mode = builder_mode
    if workout_days_per_week is not None:
        plan.workout_days_per_week = workout_days_per_week
    if days is not None:
        plan.days = _build_days(days)
    db.flush()
    return plan


def delete_workout_plan(db: Session, plan: WorkoutPlan) -> None:
    db.delete(plan)
    db.flush()


def activate_workout_plan(db: Session, plan: WorkoutPlan, now=None) -> WorkoutPlan:
    if plan.is_template or plan.user_id is None:
        raise BadRequestError("Templates cannot be activated")
    now = now or utcnow()
    others = (
        db.query(WorkoutPlan)
        .filter(
            WorkoutPlan.user_id == plan.user_id,
            WorkoutPlan.is_template.is_(False),
            WorkoutPlan.is_active.is_(True),
            WorkoutPlan.id != plan.id,
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


def copy_template_to_client(db: Session, template: WorkoutPlan, client: User, coach: User) -> WorkoutPlan:
    if not template.is_template:
        raise BadRequestError("Not a template")
    plan = WorkoutPlan(
        user_id=client.id,
        coach_id=coach.id,
        title=template.title,
        description=template.description,
        builder_mode=template.builder_mode,
        workout_days_per_week=template.workout_days_per_week,
        is_template=False,
        template_id=template.id,
        days=_copy_days(template),
    )
    db.add(plan)
    db.flush()
    return plan


def list_templates(db: Session, coach: User) -> list[WorkoutPlan]:
    return (
        _plan_query(db)
        .filter(WorkoutPlan.coach_id == coach.id, WorkoutPlan.is_template.is_(True))
        .order_by(WorkoutPlan.created_at.desc())
        .all()
    )


def list_client_plans(db: Session, client: User) -> list[WorkoutPlan]:
    return (
        _plan_query(db)
        .filter(WorkoutPlan.user_id == client.id, WorkoutPlan.is_template.is_(False))
        .order_by(WorkoutPlan.created_at.desc())
        .all()
    )


# --- client views ---


def serialize_groups(day: WorkoutDay) -> list[dict]:
    groups: dict[str, dict] = {}
    for ex in day.exercises:
        key = group_key(ex.sequence_order, ex.group_type)
        group = groups.setdefault(
            key,
            {"id": key, "group_type": ex.group_type, "group_notes": ex.group_notes, "exercises": []},
        )
        group["exercises"].append(
            {
                "id": str(ex.id),
                "exercise_name": ex.exercise_name,
                "exercise_description": ex.exercise_description,
                "video_url": ex.video_url,
                "sets_data": ex.sets_data or [],
            }
        )
    return list(groups.values())


def _serialize_template(day: WorkoutDay, completed_group_sets: list[set]) -> dict:
    groups = serialize_groups(day)
    keys = {g["id"] for g in groups}
    return {
        "id": str(day.id),
        "name": day.workout_name or day.day_of_week,
        "workout_type": day.workout_type,
        "groups": groups,
        # done when some day's logged groups are exactly this template's groups
        "completed": bool(keys) and any(done == keys for done in completed_group_sets),
    }


def _plans_newest_first(db: Session, user: User) -> list[PlanRef]:
    plans = list_client_plans(db, user)
    return newest_first(PlanRef(PlanWindow.of(p), p) for p in plans)


def _completions(db: Session, user: User, start: date, end: date) -> dict[date, WorkoutCompletion]:
    rows = (
        db.query(WorkoutCompletion)
        .filter(
            WorkoutCompletion.user_id == user.id,
            WorkoutCompletion.completed_at >= start,
            WorkoutCompletion.completed_at <= end,
        )
        .all()
    )
    return {row.completed_at: row for row in rows}


def _flexible_summary(plan: WorkoutPlan, completions: Iterable[WorkoutCompletion]) -> dict:
    completions = list(completions)
    group_sets = [set(c.completed_groups or []) for c in completions]
    return {
        "templates": [_serialize_template(d, group_sets) for d in plan.days if not d.is_rest],
        "rest_days_allowed": 7 - plan.workout_days_per_week,
        "rest_days_used": sum(1 for c in completions if not c.completed_groups),
    }


def _day_entry(plan: Optional[WorkoutPlan], day: date, completion: Optional[WorkoutCompletion]) -> dict:
    entry: dict[str, Any] = {
        "date": day.isoformat(),
        "day_of_week": day_name(day),
        "plan_id": str(plan.id) if plan else None,
        "is_rest": False,
        "workout": None,
        "completed_groups": list(completion.completed_groups or []) if completion else [],
        "is_completed": completion is not None,
    }
    if plan is None:
        return entry
    if plan.builder_mode == "day":
        # flexible plans have no schedule; a completion with no groups is a rest day
        entry["is_rest"] = completion is not None and not completion.completed_groups
        return entry

    scheduled = next((d for d in plan.days if d.day_of_week == day_name(day)), None)
    if scheduled is None or scheduled.is_rest:
        entry["is_rest"] = True
        return entry
    entry["workout"] = {
        "id": str(scheduled.id),
        "workout_name": scheduled.workout_name,
        "workout_type": scheduled.workout_type,
        "groups": serialize_groups(scheduled),
    }
    return entry


def build_week(db: Session, user: User, week_start: date) -> dict:
    """The client's week: per-date workouts, plus flexible-plan templates when relevant."""
    days = week_days(week_start)
    plans = _plans_newest_first(db, user)
    completions = _completions(db, user, days[0], days[-1])

    entries = []
    latest: Optional[WorkoutPlan] = None
    for day in days:
        ref = find_active_plan(plans, day)
        plan = ref.plan if ref else None
        if plan is not None:
            latest = plan
        entries.append(_day_entry(plan, day, completions.get(day)))

    result: dict[str, Any] = {
        "week_start": week_start.isoformat(),
        "plan": None,
        "days": entries,
    }
    if latest is not None:
        result["plan"] = {
            "id": str(latest.id),
            "title": latest.title,
            "builder_mode": latest.builder_mode,
            "workout_days_per_week": latest.workout_days_per_week,
        }
        if latest.builder_mode == "day":
            result["flexible"] = _flexible_summary(latest, completions.values())
    return result


def build_day(db: Session, user: User, day: date) -> dict:
    plans = _plans_newest_first(db, user)
    ref = find_active_plan(plans, day)
    plan = ref.plan if ref else None
    week_start = start_of_week(day)
    completions = _completions(db, user, week_start, week_start + timedelta(days=6))
    entry = _day_entry(plan, day, completions.get(day))
    if plan is not None and plan.builder_mode == "day":
        entry["flexible"] = _flexible_summary(plan, completions.values())
    return entry


def submit_completion(
    db: Session,
    user: User,
    day: date,
    completed_groups: list[str],
) -> WorkoutCompletion:
    """
    Record what the client finished on `day`, replacing any earlier record.

    An empty group list is a rest day; flexible plans cap those per week.
    """
    plans = _plans_newest_first(db, user)
    ref = find_active_plan(plans, day)
    plan = ref.plan if ref else None

    if not completed_groups and plan is not None and plan.builder_mode == "day":
        week_start = start_of_week(day)
        taken = [
            c for d, c in _completions(db, user, week_start, week_start + timedelta(days=6)).items()
            if d != day and not c.completed_groups
        ]
        if len(taken) >= 7 - plan.workout_days_per_week:
            raise BadRequestError("No rest days left this week")

    row = (
        db.query(WorkoutCompletion)
        .filter(WorkoutCompletion.user_id == user.id, WorkoutCompletion.completed_at == day)
        .first()
    )
    if row is None:
        row = WorkoutCompletion(user_id=user.id, completed_at=day)
        db.add(row)
    row.completed_groups = list(dict.fromkeys(completed_groups))
    row.workout_plan_id = plan.id if plan else None
    db.flush()
    return row


def list_completions(db: Session, user: User, start: date, end: date) -> dict[str, list[str]]:
    return {
        d.isoformat(): list(c.completed_groups or [])
        for d, c in sorted(_completions(db, user, start, end).items())
    }


# --- personal bests ---


def upsert_personal_best(db: Session, user: User, exercise_id: UUID, weight: float, reps: Optional[int] = None) -> WorkoutPersonalBest:
    if db.get(WorkoutExercise, exercise_id) is None:
        raise NotFoundError("Exercise not found")
    row = (
        db.query(WorkoutPersonalBest)
        .filter(WorkoutPersonalBest.user_id == user.id, WorkoutPersonalBest.exercise_id == exercise_id)
        .first()
    )
    if row is None:
        row = WorkoutPersonalBest(user_id=user.id, exercise_id=exercise_id, weight=weight, reps=reps)
        db.add(row)
        db.flush()
        return row
    row.weight = weight
    row.reps = reps
    db.flush()
    return row


def list_personal_bests(db: Session, user: User, exercise_ids: Optional[list[UUID]] = None) -> list[WorkoutPersonalBest]:
    query = db.query(WorkoutPersonalBest).filter(WorkoutPersonalBest.user_id == user.id)
    if exercise_ids:
        query = query.filter(WorkoutPersonalBest.exercise_id.in_(exercise_ids))
    return query.all()
