"""
Check-in Form API Endpoints

Coach-authored questionnaires sent to clients, and the client's side of
answering them.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_client, require_coach, resolve_target_user
from core.database import get_db
from core.exceptions import ValidationError
from models import User
from schemas import ApiModel, CheckInFormResponse, CheckInInstanceResponse, QuestionIn
from services import check_in_forms

router = APIRouter(prefix="/api", tags=["check-in-forms"])


class CheckInFormRequest(ApiModel):
    title: str
    description: Optional[str] = None
    questions: List[QuestionIn] = []


class UpdateCheckInFormRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[QuestionIn]] = None


class SendCheckInFormRequest(ApiModel):
    form_id: UUID
    client_id: str
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=90)


class SubmitCheckInFormRequest(ApiModel):
    instance_id: UUID
    responses: Dict[str, Any]


class ExtendCheckInFormRequest(ApiModel):
    instance_id: UUID
    days: int = Field(default=7, ge=1, le=90)


@router.post("/create-check-in-form", response_model=CheckInFormResponse, status_code=201)
def create_check_in_form(
    request: CheckInFormRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    return check_in_forms.create_form(db, coach, request.title, request.questions, request.description)


@router.get("/get-check-in-forms")
def get_check_in_forms(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    return {"forms": [CheckInFormResponse.model_validate(f) for f in check_in_forms.list_forms(db, coach)]}


@router.get("/get-check-in-form/{form_id}")
def get_check_in_form(
    form_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    return {"form": CheckInFormResponse.model_validate(check_in_forms.get_form(db, coach, form_id))}


@router.put("/update-check-in-form/{form_id}", response_model=CheckInFormResponse)
def update_check_in_form(
    form_id: UUID,
    request: UpdateCheckInFormRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Questions, when given, replace the form's existing ones."""
    form = check_in_forms.get_form(db, coach, form_id)
    return check_in_forms.update_form(
        db,
        form,
        title=request.title,
        description=request.description,
        questions=request.questions,
    )


@router.delete("/delete-check-in-form/{form_id}")
def delete_check_in_form(
    form_id: UUID,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    form = check_in_forms.get_form(db, coach, form_id)
    check_in_forms.delete_form(db, form)
    return {"success": True}


@router.post("/send-check-in-form", status_code=201)
def send_check_in_form(
    request: SendCheckInFormRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    instance = check_in_forms.send_form(db, coach, client, request.form_id, request.expires_in_days)
    return {
        "success": True,
        "instance": {
            "id": str(instance.id),
            "status": instance.status,
            "sent_at": instance.sent_at,
            "expires_at": instance.expires_at,
        },
    }


@router.post("/extend-check-in-form")
def extend_check_in_form(
    request: ExtendCheckInFormRequest,
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    instance = check_in_forms.extend_instance(db, coach, request.instance_id, request.days)
    return {"success": True, "expires_at": instance.expires_at, "status": instance.status}


@router.get("/get-pending-check-in-forms")
def get_pending_check_in_forms(
    client: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    instances = check_in_forms.pending_for_client(db, client)
    return {"forms": [CheckInInstanceResponse.model_validate(i) for i in instances]}


@router.post("/submit-check-in-form")
def submit_check_in_form(
    request: SubmitCheckInFormRequest,
    client: User = Depends(require_client),
    db: Session = Depends(get_db),
):
    """`responses` maps question id to the answer."""
    if not request.responses:
        raise ValidationError("Instance ID and responses are required", field="responses")
    instance = check_in_forms.submit_responses(db, client, request.instance_id, request.responses)
    return {"success": True, "completed_at": instance.completed_at}


@router.get("/get-completed-check-in-forms")
def get_completed_check_in_forms(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """A coach sees the forms they sent that client; a client sees all of their own."""
    target = resolve_target_user(db, current_user, client_id)
    coach = current_user if current_user.is_coach else None
    if coach is not None and target.id == coach.id:
        raise ValidationError("clientId is required", field="clientId")
    instances = check_in_forms.completed_instances(db, target, coach=coach)
    return {"forms": [CheckInInstanceResponse.model_validate(i) for i in instances]}
