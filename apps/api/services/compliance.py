"""
Weekly Compliance

Per-day completion scores for the seven days of a week, shared by the
client week views and the coach dashboard.

Each day scores a fraction in [0, 1] or a sentinel:

    NOT_APPLICABLE (-1): nothing could reasonably be expected that day
        (before the client signed up, or the day a plan/item started)
    NOT_ASSIGNED (-2):   nothing was assigned at all (past days only)

Everything here is pure: callers load plans and completions, convert them
to the snapshot types below, and pass them in. Days are calendar days in
the coaching timezone.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from core.timezone import day_name, ensure_aware, get_zone, local_day_start, local_today, to_local_date, week_days

NOT_APPLICABLE = -1
NOT_ASSIGNED = -2


@dataclass(frozen=True)
class PlanWindow:
    """When a plan applied: first activation until it was replaced."""

    plan_id: Any
    created_at: datetime
    activated_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    is_active: bool = False

    @classmethod
    def of(cls, plan: Any) -> "PlanWindow":
        return cls(
            plan_id=plan.id,
            created_at=plan.created_at,
            activated_at=plan.activated_at,
            deactivated_at=plan.deactivated_at,
            is_active=plan.is_active,
        )

    def started_at(self) -> Optional[datetime]:
        # Plans activated before activation tracking existed only carry created_at.
        if self.activated_at is not None:
            return self.activated_at
        return self.created_at if self.is_active else None


@dataclass(frozen=True)
class PlanRef:
    """A loaded plan row paired with its window."""

    window: PlanWindow
    plan: Any


@dataclass(frozen=True)
class MealPlanSnapshot:
    window: PlanWindow
    # (name, time) -> ids of the meals offered for that slot
    meal_groups: Mapping[tuple, frozenset] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkoutPlanSnapshot:
    window: PlanWindow
    builder_mode: str = "week"
    # weekday names with a scheduled (non-rest) workout; only used in 'week' mode
    training_days: frozenset = frozenset()


@dataclass(frozen=True)
class AssignedItem:
    """A supplement or habit, counted from `starts_on` onwards."""

    item_id: Any
    starts_on: date


@dataclass
class ClientCompliance:
    client_id: Any
    name: str
    workout: Optional[int] = None
    meal: Optional[int] = None
    supplement: Optional[int] = None
    overall: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "client_id": str(self.client_id),
            "name": self.name,
            "workout_compliance": self.workout,
            "meal_compliance": self.meal,
            "supplement_compliance": self.supplement,
            "overall_compliance": self.overall,
        }


def newest_first(plans: Iterable[Any]) -> list:
    """Plans that ever started, most recently started first."""
    started = [p for p in plans if p.window.started_at() is not None]
    started.sort(key=lambda p: ensure_aware(p.window.started_at()), reverse=True)
    return started


def find_active_plan(plans: Sequence[Any], day: date, tz: Optional[ZoneInfo] = None) -> Optional[Any]:
    """
    The plan that applied on `day`.

    `plans` carry a `.window` and are ordered newest activation first, so
    when one plan replaced another mid-day the newer one wins.
    """
    tz = tz or get_zone()
    day_start = local_day_start(day, tz)
    for plan in plans:
        started = plan.window.started_at()
        if started is None or to_local_date(started, tz) > day:
            continue
        ended = plan.window.deactivated_at
        if ended is not None and ensure_aware(ended) <= day_start:
            continue
        return plan
    return None


def is_plan_start_day(window: PlanWindow, day: date, tz: Optional[ZoneInfo] = None) -> bool:
    tz = tz or get_zone()
    started = window.started_at()
    if started is not None and to_local_date(started, tz) == day:
        return True
    return to_local_date(window.created_at, tz) == day


def _before_signup(day: date, signup_at: Optional[datetime], tz: ZoneInfo) -> bool:
    return signup_at is not None and day < to_local_date(signup_at, tz)


def meal_compliance_week(
    week_start: date,
    plans: Sequence[MealPlanSnapshot],
    completions: Mapping[date, Iterable[Any]],
    signup_at: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> list[float]:
    """
    Fraction of meal slots eaten on each day.

    A/B options share a (name, time) slot, so eating either completes the
    slot. Meals without foods are left out of the plan snapshot entirely.
    """
    tz = tz or get_zone()
    result: list[float] = []
    for day in week_days(week_start):
        if _before_signup(day, signup_at, tz):
            result.append(NOT_APPLICABLE)
            continue
        plan = find_active_plan(plans, day, tz)
        if plan is None:
            result.append(0)
            continue
        if is_plan_start_day(plan.window, day, tz):
            result.append(NOT_APPLICABLE)
            continue
        groups = list(plan.meal_groups.values())
        if not groups:
            result.append(0)
            continue
        done = set(completions.get(day, ()))
        completed = sum(1 for meal_ids in groups if meal_ids & done)
        result.append(completed / len(groups))
    return result


def workout_compliance_week(
    week_start: date,
    plans: Sequence[WorkoutPlanSnapshot],
    completed_days: Iterable[date],
    signup_at: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> list[float]:
    """
    1 when the client logged a workout that day, else 0.

    Scheduled rest days of a weekly plan count as done. In a flexible plan
    a rest day is itself a logged completion with no groups.
    """
    tz = tz or get_zone()
    done = set(completed_days)
    result: list[float] = []
    for day in week_days(week_start):
        if _before_signup(day, signup_at, tz):
            result.append(NOT_APPLICABLE)
            continue
        plan = find_active_plan(plans, day, tz)
        if plan is None:
            result.append(0)
            continue
        if is_plan_start_day(plan.window, day, tz):
            result.append(NOT_APPLICABLE)
            continue
        if plan.builder_mode == "week" and day_name(day) not in plan.training_days:
            result.append(1)
            continue
        result.append(1 if day in done else 0)
    return result


def assigned_items_week(
    week_start: date,
    items: Sequence[AssignedItem],
    completions: Mapping[date, Iterable[Any]],
    today: date,
    signup_at: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> list[float]:
    """
    Fraction of assigned daily items ticked off each day.

    An item counts from its `starts_on` day; the day any item starts is not
    scored. Past days with nothing assigned are NOT_ASSIGNED, while today and
    later score 0 so a fresh assignment shows up as an open task.
    """
    tz = tz or get_zone()
    result: list[float] = []
    for day in week_days(week_start):
        if _before_signup(day, signup_at, tz):
            result.append(NOT_APPLICABLE)
            continue
        assigned = [item for item in items if item.starts_on <= day]
        if not assigned:
            result.append(NOT_ASSIGNED if day < today else 0)
            continue
        if any(item.starts_on == day for item in assigned):
            result.append(NOT_APPLICABLE)
            continue
        done = set(completions.get(day, ()))
        completed = sum(1 for item in assigned if item.item_id in done)
        result.append(completed / len(assigned))
    return result


def supplement_compliance_week(
    week_start: date,
    supplements: Sequence[AssignedItem],
    completions: Mapping[date, Iterable[Any]],
    signup_at: Optional[datetime] = None,
    today: Optional[date] = None,
    tz: Optional[ZoneInfo] = None,
) -> list[float]:
    today = today or local_today(tz)
    return assigned_items_week(week_start, supplements, completions, today, signup_at, tz)


def habit_compliance_week(
    week_start: date,
    habits: Sequence[AssignedItem],
    completions: Mapping[date, Iterable[Any]],
    signup_at: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
    *,
    today: Optional[date] = None,
) -> list[float]:
    """Daily habits only; callers filter out weekly ones."""
    today = today or local_today(tz)
    return assigned_items_week(week_start, habits, completions, today, signup_at, tz)


def summarize_week(values: Iterable[float]) -> Optional[int]:
    """Mean of the scored days as a whole percent; None if no day was scored."""
    scored = [v for v in values if v >= 0]
    if not scored:
        return None
    return round(sum(scored) / len(scored) * 100)


def client_compliance(
    client_id: Any,
    name: str,
    workout: Sequence[float],
    meal: Sequence[float],
    supplement: Sequence[float],
) -> ClientCompliance:
    row = ClientCompliance(
        client_id=client_id,
        name=name,
        workout=summarize_week(workout),
        meal=summarize_week(meal),
        supplement=summarize_week(supplement),
    )
    parts = [p for p in (row.workout, row.meal, row.supplement) if p is not None]
    row.overall = round(sum(parts) / len(parts)) if parts else None
    return row


def rank_clients(rows: Iterable[ClientCompliance]) -> list[ClientCompliance]:
    """Best overall compliance first; clients with nothing scored go last."""
    return sorted(rows, key=lambda r: (r.overall is None, -(r.overall or 0), r.name.lower()))
