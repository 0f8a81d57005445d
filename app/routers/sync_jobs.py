"""
Fan-out sync job endpoints.

GET  /api/sync-jobs?receiptId=…     — jobs for one receipt
GET  /api/sync-jobs/{job_id}        — one job
POST /api/sync-jobs/{job_id}/retry  — re-run a failed job
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session, sessionmaker

from app.auth import get_current_user_id
from app.database import get_db, get_session_factory
from app.http import HttpFactory, get_http_factory
from app.models import SyncJobModel
from app.models.sync_job import JOB_FAILED, JOB_PENDING
from app.pipeline.fanout import latest_jobs, run_jobs
from app.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)
router = APIRouter()


def _owned_job(db: Session, job_id: str, user_id: str) -> SyncJobModel:
    job = db.get(SyncJobModel, job_id)
    if job is None or job.user_id != user_id:
        raise HTTPException(status_code=404, detail="Sync job not found")
    return job


# ── GET /api/sync-jobs ───────────────────────────────────────────────────
@router.get("/sync-jobs")
def list_sync_jobs(
    receipt_id: str = Query(..., alias="receiptId"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return [j.to_dict() for j in latest_jobs(db, receipt_id, user_id)]


# ── GET /api/sync-jobs/{job_id} ──────────────────────────────────────────
@router.get("/sync-jobs/{job_id}")
def get_sync_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return _owned_job(db, job_id, user_id).to_dict()


# ── POST /api/sync-jobs/{job_id}/retry ───────────────────────────────────
@router.post("/sync-jobs/{job_id}/retry")
def retry_sync_job(
    job_id: str,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    http_factory: HttpFactory = Depends(get_http_factory),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    job = _owned_job(db, job_id, user_id)
    if job.status != JOB_FAILED:
        raise HTTPException(status_code=409, detail=f"Only failed jobs can be retried (status: {job.status})")
    job.status = JOB_PENDING
    job.last_error = None
    db.commit()
    logger.info("Retrying sync job %s (%s)", job.id, job.target)
    background_tasks.add_task(run_jobs, session_factory, http_factory, storage, [job.id])
    return job.to_dict()
