"""
Short-lived phone upload sessions (QR handoff)
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from app.database import Base
from app.timeutil import utcnow

STATUS_PENDING = "pending"
STATUS_UPLOADED = "uploaded"
STATUS_EXPIRED = "expired"  # derived at read time, never stored


class UploadSessionModel(Base):
    __tablename__ = "upload_sessions"

    session_id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    expires_at = Column(DateTime, nullable=False)  # naive UTC
    file_path = Column(Text)
    file_url = Column(Text)
    receipt_id = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def effective_status(self, now: datetime) -> str:
        if self.status == STATUS_PENDING and self.expires_at <= now:
            return STATUS_EXPIRED
        return self.status
