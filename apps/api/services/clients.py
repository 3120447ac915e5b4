"""
Client Management Service

Coach-side roster operations: invitations, profile registration for new
Supabase identities, deactivation/reactivation and client data removal.
"""
import logging
import re
import secrets
from typing import Optional
from urllib.parse import urlencode

import stripe
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceUnavailableError,
    UpstreamError,
    ValidationError,
)
from core.timezone import utcnow
from models import (
    ClientInvitation,
    CoachUpdate,
    MealCompletion,
    MealPlan,
    Supplement,
    SupplementCompletion,
    User,
    WeightLog,
    WorkoutCompletion,
    WorkoutPlan,
)
from services.email_service import EmailService
from services.stripe_service import StripeService

logger = logging.getLogger(__name__)

REQUIRED_PAID_MONTHS = 4


def _make_slug(db: Session, name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "user"
    slug = base
    while db.query(User.id).filter(User.slug == slug).first():
        slug = f"{base}-{secrets.token_hex(3)}"
    return slug


def signup_url(invitation: ClientInvitation) -> str:
    query = urlencode({"invite": invitation.token, "email": invitation.email, "name": invitation.name, "type": "client"})
    return f"{settings.WEB_APP_BASE_URL.rstrip('/')}/auth/register?{query}"


def invite_client(
    db: Session,
    coach: User,
    email: str,
    name: str,
    email_service: Optional[EmailService] = None,
) -> tuple[ClientInvitation, bool]:
    """Store an invitation and email the signup link. Returns (invitation, email_sent)."""
    email = (email or "").strip().lower()
    name = (name or "").strip()
    if not email or not name:
        raise ValidationError("Email and name are required")

    invitation = ClientInvitation(coach_id=coach.id, email=email, name=name, token=secrets.token_urlsafe(16))
    db.add(invitation)
    db.flush()

    sent = (email_service or EmailService()).send_client_invitation(
        to_email=email,
        client_name=name,
        coach_name=coach.name,
        signup_url=signup_url(invitation),
    )
    if not sent:
        logger.warning(f"Invitation {invitation.id} stored but email not sent to {email}")
    return invitation, sent


def register_profile(
    db: Session,
    auth_id: str,
    *,
    email: str,
    name: str,
    invite_token: Optional[str] = None,
    goal: Optional[str] = None,
) -> User:
    """
    Create the `users` row for a freshly signed-up Supabase identity.

    With an invite token the user becomes a client of the inviting coach;
    without one, a coach.
    """
    if db.query(User.id).filter(User.auth_id == auth_id).first():
        raise ConflictError("Profile already exists")
    if not email or not name:
        raise ValidationError("Email and name are required")

    role, coach_id = "coach", None
    invitation = None
    if invite_token:
        invitation = db.query(ClientInvitation).filter(ClientInvitation.token == invite_token).first()
        if invitation is None:
            raise BadRequestError("Invalid invitation code")
        if invitation.accepted_at is not None:
            raise BadRequestError("This invitation has already been used")
        if not goal:
            raise ValidationError("Goal is required", field="goal")
        role, coach_id = "client", invitation.coach_id

    user = User(
        auth_id=auth_id,
        email=email.strip().lower(),
        name=name.strip(),
        role=role,
        coach_id=coach_id,
        goal=goal,
        slug=_make_slug(db, name),
    )
    db.add(user)
    if invitation is not None:
        invitation.accepted_at = utcnow()
    db.flush()
    logger.info(f"Registered {role} profile {user.id}")
    return user


def _cancel_billing(db: Session, client: User) -> None:
    """Stop charging a client who leaves; Stripe trouble must not block the roster change."""
    if not client.stripe_customer_id:
        return
    try:
        StripeService().cancel_client_subscriptions(db, client=client)
    except (RuntimeError, stripe.StripeError) as e:
        logger.error(f"Could not cancel subscriptions for client {client.id}: {e}")


def deactivate_client(db: Session, client: User) -> User:
    if client.status == "inactive":
        raise BadRequestError("Client is already inactive")
    _cancel_billing(db, client)
    client.status = "inactive"
    client.inactive_since = utcnow()
    db.flush()
    return client


def reactivate_client(db: Session, client: User, email: str) -> User:
    if client.status != "inactive":
        raise NotFoundError("Inactive client not found or access denied")
    if (email or "").strip().lower() != client.email.lower():
        raise BadRequestError("Email does not match client record")
    client.status = "active"
    client.inactive_since = None
    client.payment_failed_attempts = 0
    client.access_status = "active"
    db.flush()
    return client


def check_payment_commitment(client: User, stripe_service: Optional[StripeService] = None) -> None:
    """Clients on a subscription may only leave after four paid monthly cycles."""
    if not client.stripe_customer_id:
        return
    try:
        paid = (stripe_service or StripeService()).paid_cycle_count(client.stripe_customer_id)
    except RuntimeError as e:
        raise ServiceUnavailableError(str(e))
    except stripe.StripeError as e:
        logger.error(f"Payment commitment check failed for {client.id}: {e}")
        raise UpstreamError("Failed to check payment commitment. Please try again later.")
    if paid < REQUIRED_PAID_MONTHS:
        raise ForbiddenError(
            f"You must complete at least {REQUIRED_PAID_MONTHS} monthly payments before you can delete your account. "
            f"You have completed {paid} of {REQUIRED_PAID_MONTHS} required payments."
        )


def remove_client_data(db: Session, client: User) -> None:
    """
    Delete the client's plans, logs and completions and mark them inactive.

    The `users` row is kept so the coach's history (chat, check-ins) still
    resolves a name.
    """
    for model in (WorkoutCompletion, MealCompletion, SupplementCompletion, WeightLog):
        db.query(model).filter(model.user_id == client.id).delete(synchronize_session=False)
    db.query(CoachUpdate).filter(CoachUpdate.client_id == client.id).delete(synchronize_session=False)

    # ORM deletes so meals/foods and days/exercises cascade
    for model in (MealPlan, WorkoutPlan):
        for plan in db.query(model).filter(model.user_id == client.id, model.is_template.is_(False)).all():
            db.delete(plan)
    db.query(Supplement).filter(Supplement.user_id == client.id).delete(synchronize_session=False)

    client.status = "inactive"
    client.inactive_since = utcnow()
    db.flush()
    logger.info(f"Removed client data for user {client.id}")
