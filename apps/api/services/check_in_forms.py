"""
Check-in Form Service

Coaches author questionnaires and send them to clients. Each sending is a
CheckInFormInstance that moves sent -> completed when the client answers,
or sent -> expired once `expires_at` passes.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.config import settings
from core.exceptions import BadRequestError, ConflictError, NotFoundError, ValidationError
from core.timezone import ensure_aware, utcnow
from models import (
    CheckInForm,
    CheckInFormInstance,
    CheckInFormQuestion,
    CheckInFormResponse,
    CoachUpdate,
    User,
)
from schemas import QuestionIn
from services.email_service import EmailService

logger = logging.getLogger(__name__)

CHOICE_TYPES = ("select", "radio", "checkbox")


def _build_questions(questions: Iterable[QuestionIn]) -> list[CheckInFormQuestion]:
    built = []
    for i, q in enumerate(questions):
        if q.question_type in CHOICE_TYPES and not q.options:
            raise ValidationError(f"Question '{q.question_text}' needs at least one option", field="options")
        built.append(
            CheckInFormQuestion(
                question_text=q.question_text,
                question_type=q.question_type,
                is_required=q.is_required,
                options=q.options if q.question_type in CHOICE_TYPES else None,
                order_index=i,
            )
        )
    return built


def create_form(db: Session, coach: User, title: str, questions: Iterable[QuestionIn], description: Optional[str] = None) -> CheckInForm:
    if not title or not title.strip():
        raise ValidationError("Title is required", field="title")
    form = CheckInForm(
        coach_id=coach.id,
        title=title.strip(),
        description=description,
        questions=_build_questions(questions),
    )
    db.add(form)
    db.flush()
    return form


def list_forms(db: Session, coach: User) -> list[CheckInForm]:
    return (
        db.query(CheckInForm)
        .options(selectinload(CheckInForm.questions))
        .filter(CheckInForm.coach_id == coach.id, CheckInForm.is_active.is_(True))
        .order_by(CheckInForm.created_at.desc())
        .all()
    )


def get_form(db: Session, coach: User, form_id: UUID) -> CheckInForm:
    form = (
        db.query(CheckInForm)
        .options(selectinload(CheckInForm.questions))
        .filter(CheckInForm.id == form_id, CheckInForm.coach_id == coach.id)
        .first()
    )
    if not form:
        raise NotFoundError("Form not found")
    return form


def update_form(
    db: Session,
    form: CheckInForm,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    questions: Optional[Iterable[QuestionIn]] = None,
) -> CheckInForm:
    if title is not None:
        if not title.strip():
            raise ValidationError("Title is required", field="title")
        form.title = title.strip()
    if description is not None:
        form.description = description
    if questions is not None:
        answered = (
            db.query(CheckInFormResponse.id)
            .join(CheckInFormInstance, CheckInFormResponse.instance_id == CheckInFormInstance.id)
            .filter(CheckInFormInstance.form_id == form.id)
            .first()
        )
        if answered:
            # answers point at question rows; keep them readable
            raise ConflictError("Questions cannot be changed once clients have answered this form")
        form.questions = _build_questions(questions)
    db.flush()
    return form


def delete_form(db: Session, form: CheckInForm) -> None:
    """Soft delete: history of sent instances stays readable."""
    form.is_active = False
    db.flush()


def _ensure_no_open_instance(db: Session, form_id: UUID, client_id: UUID, exclude_id: Optional[UUID] = None) -> None:
    query = db.query(CheckInFormInstance.id).filter(
        CheckInFormInstance.form_id == form_id,
        CheckInFormInstance.client_id == client_id,
        CheckInFormInstance.status == "sent",
    )
    if exclude_id is not None:
        query = query.filter(CheckInFormInstance.id != exclude_id)
    if query.first():
        raise BadRequestError("This form has already been sent to this client and is awaiting a response")


def send_form(
    db: Session,
    coach: User,
    client: User,
    form_id: UUID,
    expires_in_days: Optional[int] = None,
    email_service: Optional[EmailService] = None,
) -> CheckInFormInstance:
    """
    Send a form to one of the coach's clients.

    Only one open (`sent`) instance per form and client; the client gets a
    coach update and, if they opted in, an email.
    """
    form = (
        db.query(CheckInForm)
        .filter(CheckInForm.id == form_id, CheckInForm.coach_id == coach.id, CheckInForm.is_active.is_(True))
        .first()
    )
    if not form:
        raise NotFoundError("Form not found or inactive")

    _ensure_no_open_instance(db, form.id, client.id)

    days = settings.CHECK_IN_FORM_DEFAULT_EXPIRY_DAYS if expires_in_days is None else expires_in_days
    if days < 1:
        raise ValidationError("expiresInDays must be at least 1", field="expiresInDays")
    now = utcnow()
    instance = CheckInFormInstance(
        form_id=form.id,
        client_id=client.id,
        coach_id=coach.id,
        status="sent",
        sent_at=now,
        expires_at=now + timedelta(days=days),
    )
    db.add(instance)
    db.add(CoachUpdate(coach_id=coach.id, client_id=client.id, message=f"{form.title} sent!"))
    db.flush()

    if client.email_notifications:
        (email_service or EmailService()).send_check_in_form_notification(
            to_email=client.email,
            client_name=client.name,
            coach_name=coach.name,
            form_title=form.title,
            expires_at=instance.expires_at,
        )
    logger.info(
        f"Check-in form {form.id} sent to client {client.id}",
        extra={"extra_fields": {"instance_id": str(instance.id), "expires_in_days": days}},
    )
    return instance


def _instance_query(db: Session):
    return db.query(CheckInFormInstance).options(
        selectinload(CheckInFormInstance.form).selectinload(CheckInForm.questions),
        selectinload(CheckInFormInstance.responses),
    )


def pending_for_client(db: Session, client: User) -> list[CheckInFormInstance]:
    now = utcnow()
    rows = (
        _instance_query(db)
        .filter(CheckInFormInstance.client_id == client.id, CheckInFormInstance.status == "sent")
        .order_by(CheckInFormInstance.sent_at.desc())
        .all()
    )
    return [r for r in rows if r.expires_at is None or ensure_aware(r.expires_at) > now]


def completed_instances(db: Session, client: User, coach: Optional[User] = None) -> list[CheckInFormInstance]:
    query = _instance_query(db).filter(
        CheckInFormInstance.client_id == client.id,
        CheckInFormInstance.status == "completed",
    )
    if coach is not None:
        query = query.filter(CheckInFormInstance.coach_id == coach.id)
    return query.order_by(CheckInFormInstance.completed_at.desc()).all()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _response_for(question: CheckInFormQuestion, value: Any) -> CheckInFormResponse:
    response = CheckInFormResponse(question_id=question.id)
    if question.question_type == "number":
        try:
            response.response_number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"'{question.question_text}' must be a number", field="responses")
    elif question.question_type == "checkbox":
        options = value if isinstance(value, list) else [value]
        response.response_options = [str(o) for o in options]
    else:
        response.response_text = str(value)
    return response


def submit_responses(db: Session, client: User, instance_id: UUID, answers: dict[str, Any]) -> CheckInFormInstance:
    """
    Store a client's answers and complete the instance.

    `answers` maps question id -> value. Numbers land in `response_number`,
    checkbox selections in `response_options`, everything else as text.
    """
    instance = _instance_query(db).filter(CheckInFormInstance.id == instance_id).first()
    if not instance or instance.client_id != client.id:
        raise NotFoundError("Form instance not found")
    if instance.status == "completed":
        raise BadRequestError("This form has already been completed")
    if instance.status == "expired" or (instance.expires_at and ensure_aware(instance.expires_at) <= utcnow()):
        raise BadRequestError("This form has expired")

    questions = {str(q.id): q for q in instance.form.questions}
    unknown = [qid for qid in answers if qid not in questions]
    if unknown:
        raise ValidationError(f"Unknown question ids: {', '.join(unknown)}", field="responses")

    missing = [q.question_text for qid, q in questions.items() if q.is_required and _is_blank(answers.get(qid))]
    if missing:
        raise ValidationError(f"Please answer all required questions: {', '.join(missing)}", field="responses")

    for qid, value in answers.items():
        if _is_blank(value):
            continue
        response = _response_for(questions[qid], value)
        response.instance_id = instance.id
        instance.responses.append(response)

    instance.status = "completed"
    instance.completed_at = utcnow()
    db.flush()
    return instance


def expire_overdue_instances(db: Session, now: Optional[datetime] = None) -> int:
    """Mark open instances past `expires_at` as expired. Returns how many changed."""
    now = now or utcnow()
    rows = (
        db.query(CheckInFormInstance)
        .filter(
            CheckInFormInstance.status == "sent",
            CheckInFormInstance.expires_at.isnot(None),
            CheckInFormInstance.expires_at <= now,
        )
        .all()
    )
    for row in rows:
        row.status = "expired"
    db.flush()
    return len(rows)


def extend_instance(db: Session, coach: User, instance_id: UUID, days: int = 7) -> CheckInFormInstance:
    """Give the client more time; a lapsed instance is reopened."""
    instance = db.get(CheckInFormInstance, instance_id)
    if not instance or instance.coach_id != coach.id:
        raise NotFoundError("Form instance not found")
    if instance.status == "completed":
        raise BadRequestError("This form has already been completed")
    if instance.status != "sent":
        _ensure_no_open_instance(db, instance.form_id, instance.client_id, exclude_id=instance.id)
    base = max(ensure_aware(instance.expires_at), utcnow()) if instance.expires_at else utcnow()
    instance.expires_at = base + timedelta(days=days)
    instance.status = "sent"
    db.flush()
    return instance


def purge_expired_instances(db: Session, older_than_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """Delete expired instances whose deadline passed more than `older_than_days` ago."""
    older_than_days = older_than_days or settings.CHECK_IN_FORM_PURGE_AFTER_DAYS
    cutoff = (now or utcnow()) - timedelta(days=older_than_days)
    rows = (
        db.query(CheckInFormInstance)
        .filter(CheckInFormInstance.status == "expired", CheckInFormInstance.expires_at < cutoff)
        .all()
    )
    for row in rows:
        db.delete(row)
    db.flush()
    return len(rows)
