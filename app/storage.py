"""
Object storage for receipt images.

Objects live under ``STORAGE_DIR/<bucket>/<user_id>/<ms>_<name>`` and are
served read-only from ``PUBLIC_BASE_URL/storage/<bucket>/...``.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from app.config import settings
from app.errors import InputValidationError, StorageError

logger = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredObject:
    path: str
    url: str
    content_type: str


def safe_object_name(file_name: str) -> str:
    name = Path(file_name or "").name
    name = _UNSAFE_NAME.sub("_", name).strip("._")
    return name or "receipt"


class LocalObjectStorage:
    def __init__(self, root: str, bucket: str, public_base_url: str):
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    # ---------- helpers ----------
    @property
    def url_prefix(self) -> str:
        return f"{self.public_base_url}/storage/{self.bucket}/"

    @property
    def bucket_dir(self) -> Path:
        return self.root / self.bucket

    def _resolve(self, path: str) -> Path:
        target = (self.bucket_dir / path).resolve()
        if not target.is_relative_to(self.bucket_dir.resolve()):
            raise InputValidationError("Invalid file path")
        return target

    def public_url(self, path: str) -> str:
        return self.url_prefix + path

    def path_from_url(self, url: str) -> Optional[str]:
        """Return the object path if *url* points into this bucket."""
        if not url.startswith(self.url_prefix):
            return None
        return unquote(urlparse(url).path.split(f"/storage/{self.bucket}/", 1)[1])

    def user_path(self, user_id: str, file_name: str) -> str:
        return f"{user_id}/{int(time.time() * 1000)}_{safe_object_name(file_name)}"

    # ---------- objects ----------
    def upload(self, path: str, content: bytes, content_type: str) -> StoredObject:
        target = self._resolve(path)
        if target.exists():
            raise StorageError(f"Object already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error("Storage write failed for %s: %s", path, e)
            raise StorageError(f"Failed to store image: {e}") from e
        logger.info("Stored %s (%d bytes)", path, len(content))
        return StoredObject(path=path, url=self.public_url(path), content_type=content_type)

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            logger.error("Storage read failed for %s: %s", path, e)
            raise StorageError(f"Failed to download image: {e}") from e

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", path, e)


def get_storage() -> LocalObjectStorage:
    return LocalObjectStorage(settings.STORAGE_DIR, settings.STORAGE_BUCKET, settings.PUBLIC_BASE_URL)
