"""
Storage Service

Thin wrapper over Supabase Storage: signed upload URLs for check-in media
recorded in the browser, and server-side uploads of progress photos.
"""
from dataclasses import dataclass
from typing import Optional
import logging
import time

from supabase import Client, create_client

from core.config import settings

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = {"webm", "mp4", "mov", "m4a", "mp3", "wav", "ogg"}
RECORDING_TYPES = {"video", "audio"}
PHOTO_CONTENT_TYPES = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/heic": "heic"}


@dataclass(frozen=True)
class SignedUpload:
    signed_url: str
    token: Optional[str]
    path: str


def _get_client() -> Client:
    """Fail closed: storage routes answer 503 until Supabase is configured."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        raise RuntimeError("Supabase storage not configured (missing: SUPABASE_URL / SUPABASE_SERVICE_KEY)")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)


class StorageService:
    def __init__(self) -> None:
        self.client = _get_client()

    def create_checkin_upload_url(self, client_id: str, recording_type: str, extension: str) -> SignedUpload:
        path = f"{client_id}/{recording_type}-{int(time.time() * 1000)}.{extension}"
        resp = self.client.storage.from_(settings.CHECKIN_MEDIA_BUCKET).create_signed_upload_url(path)
        signed_url = resp.get("signed_url") or resp.get("signedUrl")
        if not signed_url:
            raise RuntimeError("Storage did not return a signed upload URL")
        logger.info(f"Signed upload URL issued for {path}")
        return SignedUpload(signed_url=signed_url, token=resp.get("token"), path=resp.get("path") or path)

    def upload_progress_photo(self, client_id: str, data: bytes, content_type: str) -> tuple[str, str]:
        """Store the image and return (storage path, public URL)."""
        ext = PHOTO_CONTENT_TYPES[content_type]
        path = f"{client_id}/{int(time.time() * 1000)}.{ext}"
        bucket = self.client.storage.from_(settings.PROGRESS_PHOTO_BUCKET)
        bucket.upload(path, data, file_options={"content-type": content_type})
        return path, bucket.get_public_url(path)

    def remove_object(self, bucket: str, path: str) -> None:
        self.client.storage.from_(bucket).remove([path])
