"""
Phone upload session endpoints.

POST /api/upload-sessions               — desktop: open a 5-minute session (auth)
GET  /api/upload-sessions/{session_id}  — desktop: poll session status (auth)
POST /api/phone-upload?sessionId=…      — phone: upload the photo (no auth)
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session, sessionmaker

from app.auth import get_current_user_id
from app.database import get_db, get_session_factory
from app.http import HttpFactory, get_http_factory
from app.routers.receipts import read_image_upload
from app.schemas import PhoneUploadResponse, UploadSessionCreated, UploadSessionStatus
from app.sessions import (
    consume_session,
    create_session,
    get_session,
    open_session_for_upload,
    process_phone_upload,
)
from app.storage import LocalObjectStorage, get_storage
from app.timeutil import isoformat_z, utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/upload-sessions ────────────────────────────────────────────
@router.post("/upload-sessions", response_model=UploadSessionCreated)
def open_upload_session(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    session = create_session(db, user_id)
    return UploadSessionCreated(session_id=session.session_id, expires_at=isoformat_z(session.expires_at))


# ── GET /api/upload-sessions/{session_id} ────────────────────────────────
@router.get("/upload-sessions/{session_id}", response_model=UploadSessionStatus)
def upload_session_status(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    session = get_session(db, session_id)
    if session.user_id != user_id:
        raise HTTPException(status_code=404, detail="Invalid or expired session")
    return UploadSessionStatus(
        session_id=session.session_id,
        status=session.effective_status(utcnow()),
        expires_at=isoformat_z(session.expires_at),
        file_url=session.file_url,
        receipt_id=session.receipt_id,
    )


# ── POST /api/phone-upload ───────────────────────────────────────────────
@router.post("/phone-upload", response_model=PhoneUploadResponse)
def phone_upload(
    background_tasks: BackgroundTasks,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    if not session_id:
        raise HTTPException(status_code=400, detail="Missing session ID")
    open_session_for_upload(db, session_id)
    content, content_type = read_image_upload(file)
    logger.info("Phone upload for session %s: %s (%d bytes)", session_id, file.filename, len(content))

    session = consume_session(db, storage, session_id, file.filename or "receipt.jpg", content, content_type)
    background_tasks.add_task(process_phone_upload, session_factory, http_factory, storage, session.session_id)

    return PhoneUploadResponse(
        message="Receipt uploaded and is being processed",
        file_url=session.file_url,
    )
