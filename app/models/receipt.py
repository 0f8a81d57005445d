"""
SQLAlchemy model for receipt persistence.
"""
import uuid

from sqlalchemy import Column, Date, DateTime, Numeric, String, Text

from app.database import Base
from app.timeutil import utcnow


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    merchant_name = Column(String, nullable=False)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    receipt_date = Column(Date, nullable=False, index=True)
    category = Column(String, nullable=False, default="Other")
    google_drive_id = Column(String)
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "merchant_name": self.merchant_name,
            "amount": self.amount,
            "receipt_date": self.receipt_date.isoformat() if self.receipt_date else None,
            "category": self.category,
            "google_drive_id": self.google_drive_id,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
