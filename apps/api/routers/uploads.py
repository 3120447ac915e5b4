"""
Uploads API Endpoints

Check-in media goes straight from the browser to Supabase Storage through a
signed upload URL; progress photos are uploaded through the API.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_coach, resolve_target_user
from core.config import settings
from core.database import get_db
from core.exceptions import NotFoundError, PayloadTooLargeError, ServiceUnavailableError, ValidationError
from models import ProgressPhoto, User
from schemas import ApiModel
from services.storage_service import MEDIA_EXTENSIONS, PHOTO_CONTENT_TYPES, RECORDING_TYPES, StorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


class CheckinUploadUrlRequest(ApiModel):
    client_id: str
    recording_type: str
    file_extension: str = "webm"


class DeletePhotoRequest(ApiModel):
    photo_id: UUID


def get_storage_service() -> StorageService:
    try:
        return StorageService()
    except RuntimeError as e:
        raise ServiceUnavailableError(str(e))


def _photo_subject(db: Session, user: User, client_ref: Optional[str]) -> User:
    """The client whose photos are addressed; coaches must name one."""
    target = resolve_target_user(db, user, client_ref)
    if target.is_coach:
        raise ValidationError("Missing clientId parameter", field="clientId")
    return target


def _photo_dict(photo: ProgressPhoto) -> dict:
    return {
        "id": str(photo.id),
        "client_id": str(photo.client_id),
        "url": photo.url,
        "notes": photo.notes,
        "created_at": photo.created_at,
    }


@router.post("/get-checkin-upload-url")
def get_checkin_upload_url(
    request: CheckinUploadUrlRequest,
    coach: User = Depends(require_coach),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db),
):
    """
    Signed URL for uploading a check-in recording directly to storage.

    Recordings are too large to pass through the API.
    """
    if request.recording_type not in RECORDING_TYPES:
        raise ValidationError("recordingType must be 'video' or 'audio'", field="recordingType")
    extension = request.file_extension.lower().lstrip(".")
    if extension not in MEDIA_EXTENSIONS:
        raise ValidationError(f"Unsupported file extension: {extension}", field="fileExtension")
    client = get_coach_client(db, coach, request.client_id)
    upload = storage.create_checkin_upload_url(str(client.id), request.recording_type, extension)
    return {
        "success": True,
        "signedUrl": upload.signed_url,
        "token": upload.token,
        "path": upload.path,
        "bucket": settings.CHECKIN_MEDIA_BUCKET,
    }


@router.post("/upload-progress-photo", status_code=201)
async def upload_progress_photo(
    file: UploadFile = File(...),
    client_id: Optional[str] = Form(None, alias="clientId"),
    notes: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db),
):
    client = _photo_subject(db, current_user, client_id)
    content_type = (file.content_type or "").lower()
    if content_type not in PHOTO_CONTENT_TYPES:
        raise ValidationError(f"Unsupported image type: {content_type or 'unknown'}", field="file")

    try:
        data = await file.read()
    finally:
        await file.close()
    if not data:
        raise ValidationError("Missing file or clientId", field="file")
    if len(data) > settings.PROGRESS_PHOTO_MAX_BYTES:
        raise PayloadTooLargeError("Photo is too large")

    path, url = storage.upload_progress_photo(str(client.id), data, content_type)
    photo = ProgressPhoto(client_id=client.id, storage_path=path, url=url, notes=notes or None)
    db.add(photo)
    db.flush()
    logger.info(f"Progress photo {photo.id} stored for client {client.id}")
    return {"success": True, "photo": _photo_dict(photo)}


@router.get("/get-progress-photos")
def get_progress_photos(
    client_id: Optional[str] = Query(None, alias="clientId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(5, ge=1, le=50, alias="pageSize"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Oldest first, `pageSize` per page."""
    client = _photo_subject(db, current_user, client_id)
    query = db.query(ProgressPhoto).filter(ProgressPhoto.client_id == client.id)
    total = db.query(func.count(ProgressPhoto.id)).filter(ProgressPhoto.client_id == client.id).scalar() or 0
    offset = (page - 1) * page_size
    photos = query.order_by(ProgressPhoto.created_at.asc()).offset(offset).limit(page_size).all()
    return {
        "photos": [_photo_dict(p) for p in photos],
        "page": page,
        "pageSize": page_size,
        "totalPhotos": total,
        "hasMore": offset + page_size < total,
    }


@router.post("/delete-progress-photo")
def delete_progress_photo(
    request: DeletePhotoRequest,
    current_user: User = Depends(get_current_user),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db),
):
    photo = db.get(ProgressPhoto, request.photo_id)
    if photo is None:
        raise NotFoundError("Photo not found")
    # same access rule as reading the client's photos
    _photo_subject(db, current_user, str(photo.client_id))

    try:
        storage.remove_object(settings.PROGRESS_PHOTO_BUCKET, photo.storage_path)
    except Exception as e:
        logger.warning(f"Could not remove {photo.storage_path} from storage: {e}")
    db.delete(photo)
    db.flush()
    return {"success": True}
