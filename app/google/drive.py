"""
Google Drive sync — put a receipt image into the user's named folder.

The folder is looked up directly under "My Drive" and created when absent.
Lookup and create are two calls; concurrent first-time setup can create a
duplicate folder, and later lookups simply use the first match.
"""
from __future__ import annotations

import json
import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from app.config import settings
from app.errors import InputValidationError, ReceiptAppError
from app.google.client import DRIVE_API, DRIVE_UPLOAD_API, GoogleClient
from app.storage import LocalObjectStorage

logger = logging.getLogger(__name__)

FOLDER_MIME = "application/vnd.google-apps.folder"

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE
)
_ILLEGAL_FOLDER_CHARS = re.compile(r'[<>:"|?*/\\\x00-\x1f]')
MAX_FOLDER_NAME = 100


@dataclass
class DriveUploadResult:
    file_id: str
    web_view_link: str
    folder_id: str
    folder_link: str
    folder_name: str


def file_view_link(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def folder_view_link(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"


# ---------------------------------------------------------------------------
# Input validation (runs before any network call)
# ---------------------------------------------------------------------------

def validate_user_id(user_id: Optional[str]) -> None:
    if user_id is not None and not UUID_RE.match(user_id):
        raise InputValidationError("Invalid user ID format")


def validate_file_name(file_name: str) -> None:
    if not file_name or not file_name.strip():
        raise InputValidationError("File name is required")
    if "/" in file_name or "\\" in file_name or ".." in file_name:
        raise InputValidationError("Invalid file name")
    if len(file_name) > 255:
        raise InputValidationError("File name is too long")


def validate_folder_name(folder_name: str) -> None:
    if not folder_name or not folder_name.strip():
        raise InputValidationError("Folder name is required")
    if len(folder_name) > MAX_FOLDER_NAME or _ILLEGAL_FOLDER_CHARS.search(folder_name):
        raise InputValidationError("Invalid folder name")


def validate_https_url(url: str) -> None:
    parsed = urlparse(url or "")
    if parsed.scheme != "https" or not parsed.netloc:
        raise InputValidationError("Image URL must be a valid HTTPS URL")


def validate_upload_request(
    image_url: str, file_name: str, folder_name: str, user_id: Optional[str] = None
) -> None:
    validate_file_name(file_name)
    validate_folder_name(folder_name)
    validate_https_url(image_url)
    validate_user_id(user_id)


def drive_query_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


# ---------------------------------------------------------------------------
# Drive operations
# ---------------------------------------------------------------------------

class DriveSync:
    def __init__(self, client: GoogleClient, storage: LocalObjectStorage):
        self.client = client
        self.storage = storage

    def fetch_image(self, image_url: str) -> tuple[bytes, str]:
        path = self.storage.path_from_url(image_url)
        if path is not None:
            content_type = mimetypes.guess_type(path)[0] or "image/jpeg"
            return self.storage.download(path), content_type

        logger.info("Fetching image from: %s", image_url)
        try:
            resp = self.client.http.get(image_url)
        except httpx.HTTPError as e:
            raise ReceiptAppError(f"Failed to fetch image: {e}", status_code=502) from e
        if resp.status_code >= 400:
            raise ReceiptAppError(f"Failed to fetch image: {resp.status_code}", status_code=502)
        content_type = resp.headers.get("content-type", "image/jpeg").split(";")[0]
        return resp.content, content_type

    def find_folder(self, folder_name: str) -> Optional[str]:
        query = (
            f"name='{drive_query_literal(folder_name)}' and mimeType='{FOLDER_MIME}' "
            "and 'root' in parents and trashed=false"
        )
        data = self.client.get(
            f"{DRIVE_API}/files",
            "Folder search",
            params={"q": query, "fields": "files(id,name)", "spaces": "drive"},
        )
        files = data.get("files") or []
        return files[0]["id"] if files else None

    def create_folder(self, folder_name: str) -> str:
        data = self.client.post(
            f"{DRIVE_API}/files",
            "Folder creation",
            params={"fields": "id,name"},
            json={"name": folder_name, "mimeType": FOLDER_MIME, "parents": ["root"]},
        )
        logger.info("Created Drive folder %r: %s", folder_name, data["id"])
        return data["id"]

    def find_or_create_folder(self, folder_name: str) -> str:
        folder_id = self.find_folder(folder_name)
        if folder_id:
            logger.info("Found existing Drive folder %r: %s", folder_name, folder_id)
            return folder_id
        return self.create_folder(folder_name)

    def upload_file(self, folder_id: str, file_name: str, content: bytes, content_type: str) -> str:
        """Multipart upload: JSON metadata part then the raw bytes, one round trip."""
        boundary = f"receipt_{uuid.uuid4().hex}"
        metadata = json.dumps({"name": file_name, "parents": [folder_id]})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode("utf-8") + content + f"\r\n--{boundary}--".encode("utf-8")

        data = self.client.post(
            f"{DRIVE_UPLOAD_API}/files",
            "Drive upload",
            params={"uploadType": "multipart", "fields": "id"},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            content=body,
        )
        logger.info("Uploaded %r to Drive: %s", file_name, data["id"])
        return data["id"]

    def upload(self, image_url: str, file_name: str, folder_name: Optional[str] = None) -> DriveUploadResult:
        folder_name = folder_name or settings.DEFAULT_DRIVE_FOLDER
        validate_upload_request(image_url, file_name, folder_name)

        content, content_type = self.fetch_image(image_url)
        folder_id = self.find_or_create_folder(folder_name)
        file_id = self.upload_file(folder_id, file_name, content, content_type)
        return DriveUploadResult(
            file_id=file_id,
            web_view_link=file_view_link(file_id),
            folder_id=folder_id,
            folder_link=folder_view_link(folder_id),
            folder_name=folder_name,
        )
