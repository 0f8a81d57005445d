"""
Per-user Google sync configuration
"""
from sqlalchemy import Boolean, Column, DateTime, String, Text

from app.database import Base
from app.timeutil import utcnow


class ProfileModel(Base):
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    google_provider_token = Column(Text)   # cached access token, last write wins
    google_refresh_token = Column(Text)    # long-lived, replaced only when a new one is issued
    google_sheets_id = Column(String)
    google_drive_folder = Column(String)
    setup_mode = Column(String)            # "auto" | "manual"
    google_connection_pending = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
