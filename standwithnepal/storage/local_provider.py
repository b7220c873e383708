"""
Local filesystem storage for uploaded issue photos and videos.
Files live under UPLOAD_DIR and are served by the /uploads static mount.
"""
import shutil
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider


logger = structlog.get_logger(__name__)

PUBLIC_PREFIX = "/uploads"


class LocalStorageProvider(StorageProvider):
    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.upload_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / clean_key

    def save(self, stream: BinaryIO, key: str) -> int:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(stream, f)
        size = path.stat().st_size
        logger.info("upload_stored", key=key, size=size)
        return size

    def get_url(self, key: str) -> Optional[str]:
        if not self.exists(key):
            return None
        return f"{settings.public_base_url}{PUBLIC_PREFIX}/{quote(key.lstrip('/'))}"

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()


def get_storage() -> StorageProvider:
    if settings.storage_provider != "local":
        raise ValueError(f"Unsupported storage provider: {settings.storage_provider}")
    return LocalStorageProvider()
