"""
Receipt API endpoints.

POST  /api/receipts/upload           — desktop upload → ingest → queue Drive/Sheets sync
POST  /api/process-receipt           — run extraction on an already-stored image
GET   /api/receipts                  — list the caller's receipts
GET   /api/receipts/{id}             — get one receipt
PATCH /api/receipts/{id}/category    — reassign category
"""
from __future__ import annotations

import logging
import mimetypes

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session, sessionmaker

from app.auth import ensure_same_user, get_current_user_id
from app.config import settings
from app.database import get_db, get_session_factory
from app.errors import AuthorizationError, ReceiptAppError
from app.google.drive import validate_https_url, validate_user_id
from app.http import HttpFactory, get_http_factory
from app.models import ReceiptModel
from app.pipeline import ingest, process_receipt_image
from app.pipeline.extractor import VisionExtractor
from app.pipeline.fanout import queue_fanout, run_jobs
from app.schemas import CategoryUpdate, ProcessReceiptRequest, ProcessReceiptResponse
from app.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)
router = APIRouter()


def read_image_upload(file: UploadFile) -> tuple[bytes, str]:
    content_type = file.content_type or mimetypes.guess_type(file.filename or "")[0] or ""
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Please select an image file")
    content = file.file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded file is too large")
    return content, content_type


def _owned_receipt(db: Session, receipt_id: str, user_id: str) -> ReceiptModel:
    row = db.get(ReceiptModel, receipt_id)
    if row is None or row.user_id != user_id:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return row


# ── POST /api/receipts/upload ────────────────────────────────────────────
@router.post("/receipts/upload")
def upload_receipt(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    content, content_type = read_image_upload(file)
    logger.info("Upload: user=%s file=%s size=%d", user_id, file.filename, len(content))

    with http_factory() as http:
        receipt, fields, _ = ingest(
            db, storage, VisionExtractor.from_settings(http), user_id,
            file.filename or "receipt.jpg", content, content_type,
        )

    jobs, sync = queue_fanout(db, receipt)
    if jobs:
        background_tasks.add_task(run_jobs, session_factory, http_factory, storage, [j.id for j in jobs])

    return {
        "success": True,
        "data": fields.model_dump(),
        "receipt": receipt.to_dict(),
        "sync": sync,
    }


# ── POST /api/process-receipt ────────────────────────────────────────────
@router.post("/process-receipt", response_model=ProcessReceiptResponse)
def process_receipt(
    req: ProcessReceiptRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
):
    validate_user_id(req.user_id)
    validate_https_url(req.image_url)
    ensure_same_user(user_id, req.user_id)

    with http_factory() as http:
        path = storage.path_from_url(req.image_url)
        if path is not None:
            if not path.startswith(f"{user_id}/"):
                raise AuthorizationError("Unauthorized: Cannot process receipts for other users")
            content = storage.download(path)
            content_type = mimetypes.guess_type(path)[0] or "image/jpeg"
        else:
            try:
                resp = http.get(req.image_url)
            except httpx.HTTPError as e:
                raise ReceiptAppError(f"Failed to download image: {e}", status_code=502) from e
            if resp.status_code >= 400:
                raise ReceiptAppError(f"Failed to download image: {resp.status_code}", status_code=502)
            content = resp.content
            content_type = resp.headers.get("content-type", "image/jpeg").split(";")[0]

        receipt, fields = process_receipt_image(
            db, VisionExtractor.from_settings(http), user_id, req.image_url, content, content_type
        )

    return ProcessReceiptResponse(data=fields, receipt=receipt.to_dict())


# ── GET /api/receipts ────────────────────────────────────────────────────
@router.get("/receipts")
def list_receipts(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(ReceiptModel)
        .filter(ReceiptModel.user_id == user_id)
        .order_by(ReceiptModel.receipt_date.desc(), ReceiptModel.created_at.desc())
        .all()
    )
    logger.info("Found %d receipts for user %s", len(rows), user_id)
    return [r.to_dict() for r in rows]


# ── GET /api/receipts/{receipt_id} ───────────────────────────────────────
@router.get("/receipts/{receipt_id}")
def get_receipt(
    receipt_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return _owned_receipt(db, receipt_id, user_id).to_dict()


# ── PATCH /api/receipts/{receipt_id}/category ────────────────────────────
@router.patch("/receipts/{receipt_id}/category")
def update_receipt_category(
    receipt_id: str,
    req: CategoryUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    row = _owned_receipt(db, receipt_id, user_id)
    row.category = req.category.strip()
    db.commit()
    logger.info("Receipt %s moved to category %r", receipt_id, row.category)
    return row.to_dict()
