"""
Per-user receipt categories
"""
import uuid

from sqlalchemy import Boolean, Column, String, UniqueConstraint

from app.database import Base


class CategoryModel(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    emoji = Column(String, nullable=False, default="📁")
    is_default = Column(Boolean, nullable=False, default=False)  # seeded, cannot be deleted
