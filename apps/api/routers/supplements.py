"""
Supplements API Endpoints

Coaches manage a client's supplement list; clients tick off what they took
each day.
"""
from collections import defaultdict
from datetime import date as date_type
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_client, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from core.timezone import local_today, parse_day
from models import Supplement, SupplementCompletion, User
from schemas import ApiModel, SupplementResponse
from services.compliance_queries import supplement_week

router = APIRouter(prefix="/api", tags=["supplements"])


class CreateSupplementRequest(ApiModel):
    client_id: str
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    instructions: Optional[str] = None
    active_from: Optional[date_type] = None


class UpdateSupplementRequest(ApiModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    instructions: Optional[str] = None


class SupplementCompletionRequest(ApiModel):
    supplement_id: UUID
    completed: bool
    date: Optional[str] = None


class SupplementCompletionsRequest(ApiModel):
    supplement_ids: List[UUID]
    date: str


def _coach_supplement(db: Session, coach: User, supplement_id: UUID) -> Supplement:
    supplement = db.get(Supplement, supplement_id)
    if supplement is None:
        raise NotFoundError("Supplement not found")
    owner = db.get(User, supplement.user_id)
    if owner is None or owner.coach_id != coach.id:
        raise NotFoundError("Supplement not found")
    return supplement


def _own_supplement_ids(db: Session, user: User, ids) -> set:
    if not ids:
        return set()
    return {
        row.id
        for row in db.query(Supplement.id).filter(Supplement.user_id == user.id, Supplement.id.in_(list(ids)))
    }


@router.get("/supplements")
def list_supplements(
    client_id: str = Query(..., alias="clientId"),
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, client_id)
    rows = db.query(Supplement).filter(Supplement.user_id == client.id).order_by(Supplement.created_at.asc()).all()
    return {"supplements": [SupplementResponse.model_validate(s) for s in rows]}


@router.post("/supplements", response_model=SupplementResponse, status_code=201)
def create_supplement(
    request: CreateSupplementRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Add a supplement to a client; it counts toward compliance from activeFrom (default today)."""
    if not request.name.strip():
        raise ValidationError("Name is required", field="name")
    client = get_coach_client(db, coach, request.client_id)
    supplement = Supplement(
        user_id=client.id,
        name=request.name.strip(),
        dosage=request.dosage,
        frequency=request.frequency,
        instructions=request.instructions,
        active_from=request.active_from or local_today(),
    )
    db.add(supplement)
    db.flush()
    return supplement


@router.put("/supplements/{supplement_id}", response_model=SupplementResponse)
def update_supplement(
    supplement_id: UUID,
    request: UpdateSupplementRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    supplement = _coach_supplement(db, coach, supplement_id)
    changes = request.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Name cannot be empty", field="name")
    for key, value in changes.items():
        setattr(supplement, key, value)
    db.flush()
    return supplement


@router.delete("/supplements/{supplement_id}")
def delete_supplement(
    supplement_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    supplement = _coach_supplement(db, coach, supplement_id)
    db.delete(supplement)
    db.flush()
    return {"success": True}


@router.get("/get-supplements")
def get_supplements(
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(Supplement)
        .filter(Supplement.user_id == current_user.id)
        .order_by(Supplement.created_at.asc())
        .all()
    )
    return {"supplements": [SupplementResponse.model_validate(s) for s in rows]}


@router.post("/submit-supplement-completion")
def submit_supplement_completion(
    request: SupplementCompletionRequest,
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """Tick or untick one supplement for a day (default today)."""
    if not _own_supplement_ids(db, current_user, [request.supplement_id]):
        raise NotFoundError("Supplement not found")
    day = parse_day(request.date, default=local_today())
    existing = (
        db.query(SupplementCompletion)
        .filter(
            SupplementCompletion.user_id == current_user.id,
            SupplementCompletion.supplement_id == request.supplement_id,
            SupplementCompletion.completed_at == day,
        )
        .first()
    )
    if request.completed:
        if existing:
            return {"success": True, "message": "Supplement already completed for this date"}
        db.add(SupplementCompletion(user_id=current_user.id, supplement_id=request.supplement_id, completed_at=day))
        db.flush()
        return {"success": True, "message": "Supplement completion recorded"}

    if existing:
        db.delete(existing)
        db.flush()
    return {"success": True, "message": "Supplement completion removed"}


@router.post("/submit-supplement-completions")
def submit_supplement_completions(
    request: SupplementCompletionsRequest,
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """Replace the day's completions with exactly `supplementIds`."""
    day = parse_day(request.date)
    if day is None:
        raise ValidationError("supplementIds (array) and date are required", field="date")
    wanted = set(request.supplement_ids)
    if wanted - _own_supplement_ids(db, current_user, wanted):
        raise NotFoundError("Supplement not found")

    db.query(SupplementCompletion).filter(
        SupplementCompletion.user_id == current_user.id,
        SupplementCompletion.completed_at == day,
    ).delete(synchronize_session=False)
    for supplement_id in wanted:
        db.add(SupplementCompletion(user_id=current_user.id, supplement_id=supplement_id, completed_at=day))
    db.flush()
    return {"success": True, "count": len(wanted)}


@router.get("/get-supplement-completions")
def get_supplement_completions(
    date: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, user_id)
    query = db.query(SupplementCompletion).filter(SupplementCompletion.user_id == target.id)

    if start_date and end_date:
        rows = query.filter(
            SupplementCompletion.completed_at >= parse_day(start_date),
            SupplementCompletion.completed_at <= parse_day(end_date),
        ).all()
        by_date: dict[str, list[str]] = defaultdict(list)
        for row in rows:
            by_date[row.completed_at.isoformat()].append(str(row.supplement_id))
        return {"completions": dict(by_date)}

    if not date:
        raise ValidationError("Date parameter or startDate/endDate parameters are required", field="date")
    rows = query.filter(SupplementCompletion.completed_at == parse_day(date)).all()
    return {"completions": [str(row.supplement_id) for row in rows]}


@router.get("/get-supplement-compliance-week")
def get_supplement_compliance_week(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """-1 not applicable, -2 nothing assigned yet on a past day."""
    start = parse_day(week_start)
    if start is None:
        raise ValidationError("Missing required parameters", field="weekStart")
    target = resolve_target_user(db, current_user, client_id)
    return {"complianceData": supplement_week(db, target, start)}
