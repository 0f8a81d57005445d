"""
Phone-to-desktop upload sessions.

``pending`` --(file received before expiry)--> ``uploaded``. Expiry is never
written back; it is derived from ``expires_at`` whenever a session is read.
"""
from __future__ import annotations

import logging
import mimetypes
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.errors import NotFoundError, SessionAlreadyUsedError, SessionExpiredError
from app.http import HttpFactory
from app.models import UploadSessionModel
from app.models.upload_session import STATUS_EXPIRED, STATUS_PENDING, STATUS_UPLOADED
from app.pipeline import process_receipt_image
from app.pipeline.extractor import VisionExtractor
from app.pipeline.fanout import queue_fanout, run_jobs
from app.storage import LocalObjectStorage
from app.timeutil import utcnow

logger = logging.getLogger(__name__)


def session_ttl() -> timedelta:
    return timedelta(minutes=settings.UPLOAD_SESSION_TTL_MINUTES)


def create_session(db: Session, user_id: str, now: Optional[datetime] = None) -> UploadSessionModel:
    now = now or utcnow()
    session = UploadSessionModel(
        session_id=str(uuid.uuid4()),
        user_id=user_id,
        status=STATUS_PENDING,
        created_at=now,
        expires_at=now + session_ttl(),
    )
    db.add(session)
    db.commit()
    logger.info("Upload session created: %s (user %s)", session.session_id, user_id)
    return session


def get_session(db: Session, session_id: str) -> UploadSessionModel:
    session = db.get(UploadSessionModel, session_id)
    if session is None:
        raise NotFoundError("Invalid or expired session")
    return session


def _check_usable(session: UploadSessionModel, now: datetime) -> None:
    status = session.effective_status(now)
    if status == STATUS_EXPIRED:
        logger.info("Session expired: %s", session.session_id)
        raise SessionExpiredError("Session has expired")
    if status == STATUS_UPLOADED:
        logger.info("Session already used: %s", session.session_id)
        raise SessionAlreadyUsedError("Session has already been used")


def open_session_for_upload(db: Session, session_id: str, now: Optional[datetime] = None) -> UploadSessionModel:
    """Look up a session that can still take a file; raises 404 / 410 / 409 otherwise."""
    session = get_session(db, session_id)
    _check_usable(session, now or utcnow())
    return session


def consume_session(
    db: Session,
    storage: LocalObjectStorage,
    session_id: str,
    file_name: str,
    content: bytes,
    content_type: str,
    now: Optional[datetime] = None,
) -> UploadSessionModel:
    """Store the phone's file and flip the session to ``uploaded`` exactly once."""
    now = now or utcnow()
    session = get_session(db, session_id)
    _check_usable(session, now)

    path = storage.user_path(session.user_id, file_name)
    stored = storage.upload(path, content, content_type)

    # Conditional update so two concurrent uploads cannot both claim the session
    claimed = (
        db.query(UploadSessionModel)
        .filter(
            UploadSessionModel.session_id == session_id,
            UploadSessionModel.status == STATUS_PENDING,
            UploadSessionModel.expires_at > now,
        )
        .update(
            {"status": STATUS_UPLOADED, "file_url": stored.url, "file_path": stored.path},
            synchronize_session=False,
        )
    )
    if not claimed:
        db.rollback()
        storage.delete(stored.path)
        db.refresh(session)
        _check_usable(session, now)
        raise SessionAlreadyUsedError("Session has already been used")
    db.commit()
    db.refresh(session)
    logger.info("Session %s uploaded: %s", session_id, stored.url)
    return session


def process_phone_upload(
    session_factory: sessionmaker,
    http_factory: HttpFactory,
    storage: LocalObjectStorage,
    session_id: str,
) -> None:
    """Background step after a phone upload: extract, insert, then sync.

    Failures are logged; the upload response has already been sent.
    """
    db = session_factory()
    try:
        session = db.get(UploadSessionModel, session_id)
        if session is None or session.status != STATUS_UPLOADED or not session.file_path:
            logger.warning("Session %s is not ready for processing", session_id)
            return
        if session.receipt_id:
            logger.info("Session %s already produced receipt %s", session_id, session.receipt_id)
            return

        content = storage.download(session.file_path)
        content_type = mimetypes.guess_type(session.file_path)[0] or "image/jpeg"
        with http_factory() as http:
            receipt, _ = process_receipt_image(
                db, VisionExtractor.from_settings(http), session.user_id, session.file_url, content, content_type
            )
        session.receipt_id = receipt.id
        db.commit()

        jobs, _ = queue_fanout(db, receipt)
        job_ids = [j.id for j in jobs]
    except Exception:
        logger.exception("Background processing failed for session %s", session_id)
        return
    finally:
        db.close()

    if job_ids:
        run_jobs(session_factory, http_factory, storage, job_ids)
