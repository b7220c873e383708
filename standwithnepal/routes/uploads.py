import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from slugify import slugify

from ..config import settings
from ..errors import InvalidInput, ServiceError
from ..storage.local_provider import PUBLIC_PREFIX, get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/api", tags=["uploads"])

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/mov": ".mov",
    "video/x-msvideo": ".avi",
    "video/avi": ".avi",
}


def storage_key(original_name: Optional[str], content_type: str) -> str:
    """Unique, filesystem-safe name that keeps a readable stem of the original."""
    stem, ext = os.path.splitext(original_name or "")
    ext = ext.lower().lstrip(".")
    if not ext.isalnum() or len(ext) > 5:
        ext = ALLOWED_CONTENT_TYPES[content_type].lstrip(".")
    stem = slugify(stem, max_length=40) or "upload"
    return f"{uuid.uuid4().hex[:12]}_{stem}.{ext}"


def _stream_size(upload: UploadFile) -> int:
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def upload_payload(upload: Optional[UploadFile], storage: StorageProvider) -> dict:
    if upload is None or not upload.filename:
        raise InvalidInput("No file uploaded")
    content_type = (upload.content_type or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise InvalidInput("Invalid file type")
    if _stream_size(upload) > settings.upload_max_bytes:
        limit_mb = settings.upload_max_bytes // (1024 * 1024)
        raise ServiceError(f"File too large. Maximum size is {limit_mb}MB", status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)

    key = storage_key(upload.filename, content_type)
    storage.save(upload.file, key)
    return {
        "success": True,
        "message": "File uploaded successfully",
        "filename": key,
        "filepath": f"{PUBLIC_PREFIX.lstrip('/')}/{key}",
        "url": storage.get_url(key),
    }


@router.post("/uploads", status_code=status.HTTP_201_CREATED)
def upload_file(
    file: Optional[UploadFile] = File(default=None),
    storage: StorageProvider = Depends(get_storage),
):
    return upload_payload(file, storage)
