"""
Fan-out sync jobs (Drive upload / Sheets append) with their own result channel
"""
import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.database import Base
from app.timeutil import utcnow

TARGET_DRIVE = "drive"
TARGET_SHEETS = "sheets"

JOB_PENDING = "pending"
JOB_SUCCEEDED = "succeeded"
JOB_FAILED = "failed"


class SyncJobModel(Base):
    __tablename__ = "sync_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    receipt_id = Column(String, nullable=False, index=True)
    target = Column(String, nullable=False)
    status = Column(String, nullable=False, default=JOB_PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    result = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receiptId": self.receipt_id,
            "target": self.target,
            "status": self.status,
            "attempts": self.attempts,
            "error": self.last_error,
            "result": self.result,
        }
