"""
Clients API Endpoints

A coach's roster: invitations, activation status, updates and check-in
notes, and the compliance overview for the clients dashboard.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import ValidationError
from models import CheckIn, CoachUpdate, User
from schemas import ApiModel, UserResponse
from services import clients as client_service
from services.compliance_queries import coach_compliance_summary
from services.email_service import EmailService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["clients"])


class InviteClientRequest(ApiModel):
    email: str
    name: str


class ClientStatusRequest(ApiModel):
    client_id: str
    email: Optional[str] = None


class MessageRequest(ApiModel):
    message: str = Field(min_length=1)


class NotesRequest(ApiModel):
    notes: str = Field(min_length=1)


@router.get("/clients")
def list_clients(
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    query = db.query(User).filter(User.coach_id == coach.id, User.role == "client")
    if status:
        query = query.filter(User.status == status)
    return {"clients": [UserResponse.model_validate(c) for c in query.order_by(User.name.asc()).all()]}


@router.get("/clients/compliance")
def clients_compliance(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Rolling seven-day compliance per active client, best first."""
    return {"clients": [row.as_dict() for row in coach_compliance_summary(db, coach)]}


@router.post("/invite-client")
def invite_client(
    request: InviteClientRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    invitation, sent = client_service.invite_client(db, coach, request.email, request.name)
    return {
        "success": True,
        "invitation": {"id": str(invitation.id), "email": invitation.email, "name": invitation.name},
        "emailSent": sent,
    }


@router.post("/deactivate-client")
def deactivate_client(
    request: ClientStatusRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Deactivate a client and stop their billing."""
    client = get_coach_client(db, coach, request.client_id)
    client_service.deactivate_client(db, client)
    return {"success": True, "message": f"{client.name} has been deactivated."}


@router.post("/reactivate-client")
def reactivate_client(
    request: ClientStatusRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    if not request.email:
        raise ValidationError("Client ID and email are required", field="email")
    client = get_coach_client(db, coach, request.client_id)
    client_service.reactivate_client(db, client, request.email)
    return {"success": True, "message": f"{client.name} has been reactivated."}


@router.post("/coach-updates/{client_id}")
def create_coach_update(
    client_id: str,
    request: MessageRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, client_id)
    update = CoachUpdate(coach_id=coach.id, client_id=client.id, message=request.message.strip())
    db.add(update)
    db.flush()
    if client.email_notifications:
        EmailService().send_coach_update_notification(
            to_email=client.email,
            client_name=client.name,
            coach_name=coach.name,
            message=update.message,
        )
    return {"update": {"id": str(update.id), "message": update.message, "created_at": update.created_at}}


@router.get("/coach-updates/{client_id}")
def list_coach_updates(
    client_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target = resolve_target_user(db, current_user, client_id)
    updates = (
        db.query(CoachUpdate)
        .filter(CoachUpdate.client_id == target.id)
        .order_by(CoachUpdate.created_at.desc())
        .all()
    )
    return {"updates": [{"id": str(u.id), "message": u.message, "created_at": u.created_at} for u in updates]}


@router.post("/check-ins/{client_id}")
def create_check_in(
    client_id: str,
    request: NotesRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, client_id)
    check_in = CheckIn(coach_id=coach.id, client_id=client.id, notes=request.notes.strip())
    db.add(check_in)
    db.flush()
    return {"checkIn": {"id": str(check_in.id), "notes": check_in.notes, "created_at": check_in.created_at}}


@router.get("/check-ins/{client_id}")
def list_check_ins(
    client_id: str,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, client_id)
    rows = (
        db.query(CheckIn)
        .filter(CheckIn.client_id == client.id)
        .order_by(CheckIn.created_at.desc())
        .all()
    )
    return {"checkIns": [{"id": str(c.id), "notes": c.notes, "created_at": c.created_at} for c in rows]}
