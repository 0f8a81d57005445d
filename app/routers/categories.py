"""
Category endpoints.

GET    /api/categories        — list (seeds the defaults on first use)
DELETE /api/categories/{id}   — delete a custom category, receipts fall back to "Other"
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.auth import get_current_user_id
from app.database import get_db
from app.models import CategoryModel, ReceiptModel
from app.pipeline.categorizer import DEFAULT_CATEGORY
from app.schemas import CategoryResponse

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("Fuel", "⛽"),
    ("Materials", "🧱"),
    ("Food", "🍔"),
    ("Transportation", "🚕"),
    ("Shopping", "🛍️"),
    ("Entertainment", "🎬"),
    ("Business", "💼"),
    ("Health", "💊"),
    ("Other", "📁"),
]


def seed_default_categories(db: Session, user_id: str) -> int:
    existing = {
        name for (name,) in db.query(CategoryModel.name).filter(CategoryModel.user_id == user_id).all()
    }
    missing = [(n, e) for n, e in DEFAULT_CATEGORIES if n not in existing]
    for name, emoji in missing:
        db.add(CategoryModel(user_id=user_id, name=name, emoji=emoji, is_default=True))
    if missing:
        db.commit()
        logger.info("Seeded %d default categories for user %s", len(missing), user_id)
    return len(missing)


# ── GET /api/categories ──────────────────────────────────────────────────
@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if not db.query(CategoryModel.id).filter(CategoryModel.user_id == user_id).first():
        seed_default_categories(db, user_id)
    rows = (
        db.query(CategoryModel)
        .filter(CategoryModel.user_id == user_id)
        .order_by(CategoryModel.is_default.desc(), CategoryModel.name)
        .all()
    )
    return [CategoryResponse(id=r.id, name=r.name, emoji=r.emoji, is_default=bool(r.is_default)) for r in rows]


# ── DELETE /api/categories/{category_id} ─────────────────────────────────
@router.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    row = db.get(CategoryModel, category_id)
    if row is None or row.user_id != user_id:
        raise HTTPException(status_code=404, detail="Category not found")
    if row.is_default:
        raise HTTPException(status_code=400, detail="Default categories cannot be deleted")

    # Receipts are kept; they fall back to the default category
    moved = (
        db.query(ReceiptModel)
        .filter(ReceiptModel.user_id == user_id, ReceiptModel.category == row.name)
        .update({"category": DEFAULT_CATEGORY}, synchronize_session=False)
    )
    db.delete(row)
    db.commit()
    logger.info("Deleted category %s and moved %d receipts to %s", row.name, moved, DEFAULT_CATEGORY)
    return {"message": "Category deleted successfully", "category_id": category_id, "receipts_moved": moved}
