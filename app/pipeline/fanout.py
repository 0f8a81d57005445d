"""
Fan-out sync: mirror a stored receipt into Google Drive, then Sheets.

Each target is a ``SyncJobModel`` row, so a failed sync is visible and can
be retried; a failure here never touches the receipt row itself.
"""
from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Iterable, Optional
from urllib.parse import urlparse

from sqlalchemy.orm import Session, sessionmaker

from app.errors import ReceiptAppError
from app.google.client import GoogleClient
from app.google.drive import DriveSync, file_view_link
from app.google.sheets import SheetsSync
from app.http import HttpFactory
from app.models import ProfileModel, ReceiptModel, SyncJobModel
from app.models.sync_job import (
    JOB_FAILED,
    JOB_PENDING,
    JOB_SUCCEEDED,
    TARGET_DRIVE,
    TARGET_SHEETS,
)
from app.schemas import SheetsReceiptData
from app.storage import LocalObjectStorage

logger = logging.getLogger(__name__)

NO_GOOGLE = "Sign in with Google to enable Drive & Sheets sync"
NO_SHEET = "Configure Google Sheets ID in settings to enable sync"

_UNSAFE = re.compile(r"[^\w\- ]+")


def drive_file_name(receipt: ReceiptModel) -> str:
    ext = PurePosixPath(urlparse(receipt.image_url).path).suffix.lstrip(".") or "jpg"
    merchant = _UNSAFE.sub("_", receipt.merchant_name or "unknown").strip("_ ") or "unknown"
    return f"receipt_{receipt.receipt_date.isoformat()}_{merchant}.{ext}"


def queue_fanout(db: Session, receipt: ReceiptModel) -> tuple[list[SyncJobModel], dict]:
    """Create pending jobs for every configured target.

    Returns the jobs plus a per-target summary for the API response.
    """
    profile = db.get(ProfileModel, receipt.user_id)
    if profile is None or not profile.google_provider_token:
        logger.info("No Google token for user %s, skipping Google integration", receipt.user_id)
        skipped = {"status": "skipped", "reason": NO_GOOGLE}
        return [], {TARGET_DRIVE: skipped, TARGET_SHEETS: dict(skipped)}

    targets = [TARGET_DRIVE]
    summary: dict = {}
    if profile.google_sheets_id:
        targets.append(TARGET_SHEETS)
    else:
        summary[TARGET_SHEETS] = {"status": "skipped", "reason": NO_SHEET}

    jobs = [SyncJobModel(user_id=receipt.user_id, receipt_id=receipt.id, target=t) for t in targets]
    db.add_all(jobs)
    db.commit()
    for job in jobs:
        summary[job.target] = {"status": "queued", "jobId": job.id}
    logger.info("Queued %d sync job(s) for receipt %s", len(jobs), receipt.id)
    return jobs, summary


def _client(db: Session, http, profile: ProfileModel) -> GoogleClient:
    return GoogleClient(http, profile.google_provider_token, db=db, user_id=profile.user_id)


def sync_drive(db: Session, http, storage: LocalObjectStorage, receipt: ReceiptModel, profile: ProfileModel) -> dict:
    result = DriveSync(_client(db, http, profile), storage).upload(
        receipt.image_url, drive_file_name(receipt), profile.google_drive_folder
    )
    receipt.google_drive_id = result.file_id
    db.commit()
    return {"fileId": result.file_id, "webViewLink": result.web_view_link, "folderLink": result.folder_link}


def sync_sheets(db: Session, http, receipt: ReceiptModel, profile: ProfileModel) -> dict:
    if not profile.google_sheets_id:
        raise ReceiptAppError(NO_SHEET, status_code=400)
    data = SheetsReceiptData(
        merchant_name=receipt.merchant_name or "Unknown Merchant",
        amount=receipt.amount or 0,
        receipt_date=receipt.receipt_date.isoformat(),
        category=receipt.category or "Other",
        drive_link=file_view_link(receipt.google_drive_id) if receipt.google_drive_id else None,
    )
    tab = SheetsSync(_client(db, http, profile), profile.google_sheets_id).sync(data)
    return {"sheet": tab}


def run_job(db: Session, http, storage: LocalObjectStorage, job: SyncJobModel) -> SyncJobModel:
    job.attempts = (job.attempts or 0) + 1
    job.status = JOB_PENDING
    db.commit()

    receipt = db.get(ReceiptModel, job.receipt_id)
    profile = db.get(ProfileModel, job.user_id)
    try:
        if receipt is None:
            raise ReceiptAppError("Receipt no longer exists", status_code=404)
        if profile is None or not profile.google_provider_token:
            raise ReceiptAppError(NO_GOOGLE, status_code=400)
        if job.target == TARGET_DRIVE:
            job.result = sync_drive(db, http, storage, receipt, profile)
        elif job.target == TARGET_SHEETS:
            job.result = sync_sheets(db, http, receipt, profile)
        else:
            raise ReceiptAppError(f"Unknown sync target: {job.target}", status_code=400)
        job.status = JOB_SUCCEEDED
        job.last_error = None
        logger.info("Sync job %s (%s) succeeded", job.id, job.target)
    except ReceiptAppError as e:
        db.rollback()
        job.status = JOB_FAILED
        job.last_error = e.message
        logger.warning("Sync job %s (%s) failed: %s", job.id, job.target, e.message)
    except Exception as e:
        db.rollback()
        job.status = JOB_FAILED
        job.last_error = str(e) or e.__class__.__name__
        logger.exception("Sync job %s (%s) crashed", job.id, job.target)
    db.commit()
    return job


def _ordered(jobs: Iterable[SyncJobModel]) -> list[SyncJobModel]:
    # Drive first: the Sheets row links to the uploaded file
    return sorted(jobs, key=lambda j: 0 if j.target == TARGET_DRIVE else 1)


def run_jobs(
    session_factory: sessionmaker,
    http_factory: HttpFactory,
    storage: LocalObjectStorage,
    job_ids: list[str],
) -> None:
    """Background entry point: run the given jobs in their own session."""
    db = session_factory()
    try:
        jobs = [j for j in (db.get(SyncJobModel, jid) for jid in job_ids) if j is not None]
        with http_factory() as http:
            for job in _ordered(jobs):
                run_job(db, http, storage, job)
    finally:
        db.close()


def latest_jobs(db: Session, receipt_id: str, user_id: Optional[str] = None) -> list[SyncJobModel]:
    query = db.query(SyncJobModel).filter(SyncJobModel.receipt_id == receipt_id)
    if user_id:
        query = query.filter(SyncJobModel.user_id == user_id)
    return query.order_by(SyncJobModel.created_at).all()
