"""
Google Drive / Sheets endpoints.

POST /api/google/drive-upload   — put an image into the user's Drive folder
POST /api/google/sheets-sync    — append one receipt to its month tab
POST /api/google/migrate        — import an existing spreadsheet
POST /api/google/setup          — create Drive folder + spreadsheet, save to profile
POST /api/google/connect/start  — mark an OAuth connection as pending
POST /api/google/connect        — store freshly issued OAuth tokens
GET  /api/google/status         — connection / configuration summary
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import ensure_same_user, get_current_user_id
from app.config import settings
from app.database import get_db
from app.google.client import GoogleClient
from app.google.drive import DriveSync, validate_upload_request, validate_user_id
from app.google.migration import SheetsMigrator
from app.google.setup import get_or_create_profile, setup_google_storage
from app.google.sheets import SheetsSync
from app.http import HttpFactory, get_http_factory
from app.models import ProfileModel
from app.schemas import (
    DriveUploadRequest,
    DriveUploadResponse,
    GoogleConnectRequest,
    GoogleStatus,
    MigrationRequest,
    MigrationResponse,
    SetupRequest,
    SetupResponse,
    SheetsSyncRequest,
    SheetsSyncResponse,
)
from app.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/google")


# ── POST /api/google/drive-upload ────────────────────────────────────────
@router.post("/drive-upload", response_model=DriveUploadResponse)
def drive_upload(
    req: DriveUploadRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
):
    folder_name = req.folder_name or settings.DEFAULT_DRIVE_FOLDER
    validate_upload_request(req.image_url, req.file_name, folder_name, req.user_id)
    ensure_same_user(user_id, req.user_id)

    with http_factory() as http:
        client = GoogleClient(http, req.access_token, db=db, user_id=req.user_id or user_id)
        result = DriveSync(client, storage).upload(req.image_url, req.file_name, folder_name)

    return DriveUploadResponse(
        file_id=result.file_id,
        web_view_link=result.web_view_link,
        folder_link=result.folder_link,
        folder_name=result.folder_name,
    )


# ── POST /api/google/sheets-sync ─────────────────────────────────────────
@router.post("/sheets-sync", response_model=SheetsSyncResponse)
def sheets_sync(
    req: SheetsSyncRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_factory: HttpFactory = Depends(get_http_factory),
):
    validate_user_id(req.user_id)
    ensure_same_user(user_id, req.user_id)

    with http_factory() as http:
        client = GoogleClient(http, req.access_token, db=db, user_id=req.user_id or user_id)
        tab = SheetsSync(client, req.sheets_id).sync(req.receipt_data)
    return SheetsSyncResponse(sheet=tab)


# ── POST /api/google/migrate ─────────────────────────────────────────────
@router.post("/migrate", response_model=MigrationResponse)
def migrate_sheets(
    req: MigrationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    http_factory: HttpFactory = Depends(get_http_factory),
):
    validate_user_id(req.user_id)
    ensure_same_user(user_id, req.user_id)

    with http_factory() as http:
        client = GoogleClient(http, req.access_token, db=db, user_id=req.user_id)
        result = SheetsMigrator(db, client, req.sheets_id).migrate(req.user_id)

    return MigrationResponse(
        imported=result.imported,
        skipped=result.skipped,
        errors=result.errors or None,
        message=result.message,
    )


# ── POST /api/google/setup ───────────────────────────────────────────────
@router.post("/setup", response_model=SetupResponse)
def google_setup(
    req: SetupRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
):
    validate_user_id(req.user_id)
    ensure_same_user(user_id, req.user_id)

    with http_factory() as http:
        client = GoogleClient(http, req.access_token, db=db, user_id=req.user_id)
        result = setup_google_storage(db, DriveSync(client, storage), req.user_id, req.folder_name)

    return SetupResponse(
        spreadsheet_id=result.spreadsheet_id,
        spreadsheet_url=result.spreadsheet_url,
        folder_id=result.folder_id,
        folder_name=result.folder_name,
    )


# ── POST /api/google/connect/start ───────────────────────────────────────
@router.post("/connect/start", response_model=GoogleStatus)
def google_connect_start(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Mark an OAuth round trip as in flight (survives reloads and devices)."""
    profile = get_or_create_profile(db, user_id)
    profile.google_connection_pending = True
    db.commit()
    return _status(profile)


# ── POST /api/google/connect ─────────────────────────────────────────────
@router.post("/connect", response_model=GoogleStatus)
def google_connect(
    req: GoogleConnectRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = get_or_create_profile(db, user_id)
    profile.google_provider_token = req.access_token
    if req.refresh_token:
        profile.google_refresh_token = req.refresh_token
    if req.setup_mode:
        profile.setup_mode = req.setup_mode
    profile.google_connection_pending = False
    db.commit()
    logger.info("Stored Google tokens for user %s", user_id)
    return _status(profile)


# ── GET /api/google/status ───────────────────────────────────────────────
@router.get("/status", response_model=GoogleStatus)
def google_status(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    profile = db.get(ProfileModel, user_id) or ProfileModel(user_id=user_id, google_connection_pending=False)
    return _status(profile)


def _status(profile: ProfileModel) -> GoogleStatus:
    return GoogleStatus(
        connected=bool(profile.google_provider_token),
        connection_pending=bool(profile.google_connection_pending),
        sheets_id=profile.google_sheets_id,
        drive_folder=profile.google_drive_folder,
        setup_mode=profile.setup_mode,
    )
