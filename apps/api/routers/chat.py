"""
Chat API Endpoints

One thread per coach/client pair. Threads are addressed by clientId from
both sides; a client may only open their own thread.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_coach
from core.database import get_db
from core.exceptions import BadRequestError, ForbiddenError, ValidationError
from core.timezone import utcnow
from models import ChatLastSeen, ChatMessage, User
from schemas import ApiModel, ChatMessageResponse

router = APIRouter(prefix="/api", tags=["chat"])


class ChatMessageRequest(ApiModel):
    client_id: str
    content: str


class ChatLastSeenRequest(ApiModel):
    client_id: str


def _thread(db: Session, user: User, client_ref: Optional[str]) -> tuple[UUID, UUID]:
    """(coach_id, client_id) of the thread `user` is asking for."""
    if not client_ref:
        raise ValidationError("clientId is required", field="clientId")
    if user.is_coach:
        client = get_coach_client(db, user, client_ref)
        return user.id, client.id
    if str(client_ref) not in (str(user.id), user.slug):
        raise ForbiddenError("Access denied")
    if user.coach_id is None:
        raise BadRequestError("You do not have a coach yet")
    return user.coach_id, user.id


def _last_seen(db: Session, user: User, coach_id: UUID, client_id: UUID) -> Optional[ChatLastSeen]:
    return (
        db.query(ChatLastSeen)
        .filter(
            ChatLastSeen.user_id == user.id,
            ChatLastSeen.coach_id == coach_id,
            ChatLastSeen.client_id == client_id,
        )
        .first()
    )


@router.get("/chat-messages")
def get_chat_messages(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    coach_id, thread_client_id = _thread(db, current_user, client_id)
    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.coach_id == coach_id, ChatMessage.client_id == thread_client_id)
        .order_by(ChatMessage.timestamp.asc())
        .all()
    )
    return {"messages": [ChatMessageResponse.model_validate(m) for m in messages]}


@router.post("/chat-messages", status_code=201)
def send_chat_message(
    request: ChatMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    content = (request.content or "").strip()
    if not content:
        raise ValidationError("clientId and content are required", field="content")
    coach_id, thread_client_id = _thread(db, current_user, request.client_id)
    message = ChatMessage(
        coach_id=coach_id,
        client_id=thread_client_id,
        sender="coach" if current_user.is_coach else "client",
        content=content,
    )
    db.add(message)
    db.flush()
    return {"message": ChatMessageResponse.model_validate(message)}


@router.post("/chat-last-seen")
def mark_chat_seen(
    request: ChatLastSeenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    coach_id, thread_client_id = _thread(db, current_user, request.client_id)
    now = utcnow()
    row = _last_seen(db, current_user, coach_id, thread_client_id)
    if row is None:
        row = ChatLastSeen(user_id=current_user.id, coach_id=coach_id, client_id=thread_client_id)
        db.add(row)
    row.last_seen_at = now
    db.flush()
    return {"success": True, "last_seen_at": now}


@router.get("/chat-unread-count")
def get_chat_unread_count(
    client_id: Optional[str] = Query(None, alias="clientId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Messages from the other side of the thread since the caller last looked."""
    coach_id, thread_client_id = _thread(db, current_user, client_id)
    seen = _last_seen(db, current_user, coach_id, thread_client_id)
    query = db.query(func.count(ChatMessage.id)).filter(
        ChatMessage.coach_id == coach_id,
        ChatMessage.client_id == thread_client_id,
        ChatMessage.sender == ("client" if current_user.is_coach else "coach"),
    )
    if seen is not None:
        query = query.filter(ChatMessage.timestamp > seen.last_seen_at)
    return {"unreadCount": query.scalar() or 0}


@router.get("/chat-unread-counts")
def get_chat_unread_counts(
    coach: User = Depends(require_coach),
    db: Session = Depends(get_db),
):
    """Unread client messages per active client id, for the coach's inbox."""
    seen = and_(
        ChatLastSeen.user_id == coach.id,
        ChatLastSeen.coach_id == ChatMessage.coach_id,
        ChatLastSeen.client_id == ChatMessage.client_id,
    )
    rows = (
        db.query(ChatMessage.client_id, func.count(ChatMessage.id))
        .outerjoin(ChatLastSeen, seen)
        .filter(
            ChatMessage.coach_id == coach.id,
            ChatMessage.sender == "client",
            or_(ChatLastSeen.last_seen_at.is_(None), ChatMessage.timestamp > ChatLastSeen.last_seen_at),
        )
        .group_by(ChatMessage.client_id)
        .all()
    )
    client_ids = [
        row.id
        for row in db.query(User.id).filter(User.coach_id == coach.id, User.role == "client", User.status == "active")
    ]
    counts = {str(cid): 0 for cid in client_ids}
    counts.update({str(cid): count for cid, count in rows if str(cid) in counts})
    return {"unreadCounts": counts}
