"""
Habits API Endpoints

Habit presets (system-wide and per coach), assignment to clients, daily
completions, notes and weekly habit compliance.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_client, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.timezone import parse_day
from models import ClientHabit, HabitCompletion, HabitNote, HabitPreset, User
from schemas import ApiModel, ClientHabitResponse, HabitPresetResponse
from services.compliance_queries import habit_week

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["habits"])

FREQUENCIES = ("daily", "weekly", "flexible")


class CreateHabitPresetRequest(ApiModel):
    name: str
    description: Optional[str] = None
    preset_type: str = "custom"
    target_value: Optional[float] = None
    unit: Optional[str] = None


class AssignHabitRequest(ApiModel):
    client_id: str
    habit_preset_id: UUID
    frequency: str = "daily"
    times_per_week: Optional[int] = Field(default=None, ge=1, le=7)


class UnassignHabitRequest(ApiModel):
    client_habit_id: UUID


class HabitCompletionItem(ApiModel):
    client_habit_id: UUID
    value: Optional[float] = None


class HabitCompletionsRequest(ApiModel):
    date: str
    completions: List[HabitCompletionItem] = []


class HabitNoteRequest(ApiModel):
    content: str
    client_id: Optional[str] = None
    client_habit_id: Optional[UUID] = None


def _coach_presets(db: Session, coach: User):
    return db.query(HabitPreset).filter(or_(HabitPreset.coach_id.is_(None), HabitPreset.coach_id == coach.id))


@router.get("/habit-presets")
def list_habit_presets(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """System presets first, then the coach's own."""
    presets = _coach_presets(db, coach).order_by(HabitPreset.coach_id.isnot(None), HabitPreset.name.asc()).all()
    return {"presets": [HabitPresetResponse.model_validate(p) for p in presets]}


@router.post("/habit-presets", response_model=HabitPresetResponse, status_code=201)
def create_habit_preset(
    request: CreateHabitPresetRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    if not request.name.strip():
        raise ValidationError("Habit name is required", field="name")
    preset = HabitPreset(
        coach_id=coach.id,
        name=request.name.strip(),
        description=request.description,
        preset_type=request.preset_type,
        target_value=request.target_value,
        unit=request.unit,
    )
    db.add(preset)
    db.flush()
    return preset


@router.post("/assign-habit", status_code=201)
def assign_habit(
    request: AssignHabitRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    preset = _coach_presets(db, coach).filter(HabitPreset.id == request.habit_preset_id).first()
    if preset is None:
        raise NotFoundError("Habit preset not found")
    frequency = request.frequency if request.frequency in FREQUENCIES else "daily"

    duplicate = (
        db.query(ClientHabit.id)
        .filter(ClientHabit.client_id == client.id, ClientHabit.habit_preset_id == preset.id)
        .first()
    )
    if duplicate:
        raise ConflictError("Habit already assigned to this client")

    assigned = ClientHabit(
        client_id=client.id,
        coach_id=coach.id,
        habit_preset_id=preset.id,
        frequency=frequency,
        times_per_week=request.times_per_week if frequency != "daily" else None,
    )
    db.add(assigned)
    db.flush()
    return {"assigned": ClientHabitResponse.model_validate(assigned)}


@router.post("/unassign-habit")
def unassign_habit(
    request: UnassignHabitRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    assigned = (
        db.query(ClientHabit)
        .join(User, User.id == ClientHabit.client_id)
        .filter(ClientHabit.id == request.client_habit_id, User.coach_id == coach.id)
        .first()
    )
    if assigned is None:
        raise NotFoundError("Assignment not found or access denied")
    db.delete(assigned)
    db.flush()
    return {"success": True}


@router.get("/client-habits")
def list_client_habits(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, client_id)
    habits = (
        db.query(ClientHabit)
        .filter(ClientHabit.client_id == target.id)
        .order_by(ClientHabit.created_at.asc())
        .all()
    )
    return {"habits": [ClientHabitResponse.model_validate(h) for h in habits]}


@router.post("/submit-habit-completions")
def submit_habit_completions(
    request: HabitCompletionsRequest,
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """
    Replace the client's habit completions for one day.

    A habit listed twice keeps its last value.
    """
    day = parse_day(request.date)
    if day is None:
        raise ValidationError("date is required (YYYY-MM-DD)", field="date")

    own_ids = {
        row.id for row in db.query(ClientHabit.id).filter(ClientHabit.client_id == current_user.id)
    }
    by_habit = {item.client_habit_id: item.value for item in request.completions}
    if set(by_habit) - own_ids:
        raise ForbiddenError("Access denied to one or more habits")

    if own_ids:
        db.query(HabitCompletion).filter(
            HabitCompletion.client_habit_id.in_(own_ids),
            HabitCompletion.completed_at == day,
        ).delete(synchronize_session=False)
    for habit_id, value in by_habit.items():
        db.add(HabitCompletion(client_habit_id=habit_id, client_id=current_user.id, completed_at=day, value=value))
    db.flush()
    return {"success": True}


@router.get("/get-habit-completions")
def get_habit_completions(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    first, last = parse_day(start_date), parse_day(end_date)
    if first is None or last is None:
        raise ValidationError("startDate and endDate are required", field="startDate")
    target = resolve_target_user(db, current_user, client_id)
    rows = (
        db.query(HabitCompletion)
        .filter(
            HabitCompletion.client_id == target.id,
            HabitCompletion.completed_at >= first,
            HabitCompletion.completed_at <= last,
        )
        .order_by(HabitCompletion.completed_at.asc())
        .all()
    )
    return {
        "completions": [
            {
                "id": str(r.id),
                "client_habit_id": str(r.client_habit_id),
                "completed_at": r.completed_at.isoformat(),
                "value": r.value,
            }
            for r in rows
        ]
    }


@router.post("/habit-notes", status_code=201)
def create_habit_note(
    request: HabitNoteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Coaches write notes on a client (clientId required); clients on themselves."""
    content = (request.content or "").strip()
    if not content:
        raise ValidationError("Content is required", field="content")
    if current_user.is_coach:
        if not request.client_id:
            raise ValidationError("clientId is required for coach notes", field="clientId")
        client = get_coach_client(db, current_user, request.client_id)
    else:
        client = current_user

    if request.client_habit_id is not None:
        habit = db.get(ClientHabit, request.client_habit_id)
        if habit is None or habit.client_id != client.id:
            raise NotFoundError("Habit not found")

    note = HabitNote(
        client_id=client.id,
        author_id=current_user.id,
        author_role=current_user.role,
        client_habit_id=request.client_habit_id,
        content=content,
    )
    db.add(note)
    db.flush()
    return {"note": _note_dict(note)}


@router.get("/habit-notes")
def list_habit_notes(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, client_id)
    notes = (
        db.query(HabitNote)
        .filter(HabitNote.client_id == target.id)
        .order_by(HabitNote.created_at.desc())
        .all()
    )
    return {"notes": [_note_dict(n) for n in notes]}


def _note_dict(note: HabitNote) -> dict:
    return {
        "id": str(note.id),
        "client_id": str(note.client_id),
        "author_id": str(note.author_id),
        "author_role": note.author_role,
        "client_habit_id": str(note.client_habit_id) if note.client_habit_id else None,
        "content": note.content,
        "created_at": note.created_at,
    }


@router.get("/get-habit-compliance-week")
def get_habit_compliance_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Daily habits only; weekly and flexible habits are not scored per day."""
    start = parse_day(week_start)
    if start is None:
        raise ValidationError("Missing required parameters", field="weekStart")
    target = resolve_target_user(db, current_user, client_id)
    return {"complianceData": habit_week(db, target, start)}
