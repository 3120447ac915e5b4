"""
Profile API Endpoints

The caller's own profile: registration, preferences, body weight, personal
bests and account removal.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from core.auth import get_auth_identity, get_current_user, require_client, resolve_target_user
from core.config import settings
from core.database import get_db
from core.exceptions import NotFoundError, ValidationError
from core.timezone import get_zone, local_today, utcnow
from models import User, WeightLog
from schemas import ApiModel, UserResponse, WeightLogResponse
from services import clients as client_service
from services import workout_plans

router = APIRouter(prefix="/api", tags=["profile"])

FONT_SIZES = ("small", "medium", "large")


class RegisterProfileRequest(ApiModel):
    email: str
    name: str
    invite: Optional[str] = None
    goal: Optional[str] = None


class UpdateProfileRequest(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    goal: Optional[str] = None
    workout_split: Optional[str] = None
    avatar_url: Optional[str] = None
    email_notifications: Optional[bool] = None
    app_notifications: Optional[bool] = None
    weekly_summary: Optional[bool] = None
    font_size: Optional[str] = None


class WeightRequest(ApiModel):
    weight: float = Field(gt=0)
    logged_at: Optional[datetime] = None


class PersonalBestRequest(ApiModel):
    exercise_id: UUID
    weight: float = Field(ge=0)
    reps: Optional[int] = Field(default=None, ge=0)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/register-profile", response_model=UserResponse, status_code=201)
def register_profile(
    request: RegisterProfileRequest,
    auth_id: str = Depends(get_auth_identity),
    db: Session = Depends(get_db),
):
    """
    Create the profile row after Supabase sign-up.

    Clients register with the invitation code from their signup link.
    """
    return client_service.register_profile(
        db,
        auth_id,
        email=request.email,
        name=request.name,
        invite_token=request.invite,
        goal=request.goal,
    )


@router.patch("/update-profile")
def update_profile(
    request: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = request.model_dump(exclude_unset=True)
    if "font_size" in changes and changes["font_size"] not in FONT_SIZES:
        raise ValidationError(f"font_size must be one of {', '.join(FONT_SIZES)}", field="font_size")
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Name cannot be empty", field="name")
    for key, value in changes.items():
        setattr(current_user, key, value.strip() if isinstance(value, str) else value)
    db.flush()
    return {"success": True, "profile": UserResponse.model_validate(current_user)}


@router.post("/set-starting-weight")
def set_starting_weight(
    request: WeightRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db.add(WeightLog(user_id=current_user.id, weight=request.weight))
    current_user.starting_weight = request.weight
    current_user.current_weight = request.weight
    db.flush()
    return {"success": True}


@router.get("/weight-logs")
def get_weight_logs(
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, user_id)
    logs = (
        db.query(WeightLog)
        .filter(WeightLog.user_id == target.id)
        .order_by(WeightLog.logged_at.asc())
        .all()
    )
    return {"weightLogs": [WeightLogResponse.model_validate(w) for w in logs]}


@router.post("/weight-logs", response_model=WeightLogResponse, status_code=201)
def add_weight_log(
    request: WeightRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    log = WeightLog(user_id=current_user.id, weight=request.weight, logged_at=request.logged_at or utcnow())
    db.add(log)
    current_user.current_weight = request.weight
    if current_user.starting_weight is None:
        current_user.starting_weight = request.weight
    db.flush()
    return log


@router.get("/get-coach-info")
def get_coach_info(
    coach_id: Optional[str] = Query(None, alias="coachId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """A coach's public details; defaults to the caller's own coach."""
    ref = coach_id or current_user.coach_id
    if not ref:
        raise ValidationError("Coach ID is required", field="coachId")
    try:
        coach = db.query(User).filter(User.id == UUID(str(ref)), User.role == "coach").first()
    except ValueError:
        coach = None
    if not coach:
        raise NotFoundError("Coach not found")
    return {"coach": {"id": str(coach.id), "name": coach.name, "email": coach.email, "avatar_url": coach.avatar_url}}


@router.get("/get-user-id-from-slug")
def get_user_id_from_slug(
    slug: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not slug:
        return {"userId": None}
    user = db.query(User.id).filter(User.slug == slug).first()
    return {"userId": str(user.id) if user else None}


@router.get("/get-current-date")
def get_current_date():
    """Today as the app sees it (USER_TIMEZONE), so clients never bucket by browser time."""
    now = utcnow().astimezone(get_zone())
    return {
        "currentDate": local_today().isoformat(),
        "currentTime": now.strftime("%Y-%m-%d %H:%M:%S"),
        "timezone": settings.USER_TIMEZONE,
        "utcTime": utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        "timestamp": int(now.timestamp() * 1000),
    }


@router.get("/personal-best")
def get_personal_bests(
    exercise_id: Optional[List[UUID]] = Query(None, alias="exerciseId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, user_id)
    bests = workout_plans.list_personal_bests(db, target, exercise_id)
    return {
        "personalBests": [
            {
                "exercise_id": str(pb.exercise_id),
                "weight": pb.weight,
                "reps": pb.reps,
                "updated_at": pb.updated_at,
            }
            for pb in bests
        ]
    }


@router.post("/personal-best")
def save_personal_best(
    request: PersonalBestRequest,
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    pb = workout_plans.upsert_personal_best(db, current_user, request.exercise_id, request.weight, request.reps)
    return {"success": True, "weight": pb.weight, "reps": pb.reps}


@router.post("/delete-account")
def delete_account(
    current_user: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """
    Remove the client's plans, logs and completions and deactivate them.

    Subscribed clients must have completed their minimum commitment first.
    """
    client_service.check_payment_commitment(current_user)
    client_service.remove_client_data(db, current_user)
    return {"success": True}
