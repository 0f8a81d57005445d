"""
Receipt ingestion pipeline.

Orchestrates: store image → AI extraction → validate/normalise → insert.
The order is fixed; each step only runs when the previous one succeeded.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ReceiptAppError
from app.models import ReceiptModel
from app.normalize import parse_date
from app.pipeline.categorizer import resolve_category
from app.pipeline.extractor import VisionExtractor
from app.schemas import ExtractedReceipt, ReceiptFields
from app.storage import LocalObjectStorage, StoredObject
from app.timeutil import today

logger = logging.getLogger(__name__)


def normalize_extraction(extracted: ExtractedReceipt, fallback_date: Optional[date] = None) -> ReceiptFields:
    """Coerce the model output into the fields we persist.

    An unparsable date becomes *fallback_date* (today) instead of failing.
    """
    fallback_date = fallback_date or today()
    parsed = parse_date(extracted.date)
    if parsed is None:
        logger.info("Invalid date detected: %r, using %s instead", extracted.date, fallback_date)
        parsed = fallback_date
    return ReceiptFields(
        merchant_name=extracted.merchant_name,
        amount=round(extracted.amount, 2),
        date=parsed.isoformat(),
        category=resolve_category(extracted.merchant_name, extracted.items, extracted.category),
    )


def create_receipt(db: Session, user_id: str, image_url: str, fields: ReceiptFields) -> ReceiptModel:
    record = ReceiptModel(
        user_id=user_id,
        image_url=image_url,
        merchant_name=fields.merchant_name,
        amount=fields.amount,
        receipt_date=date.fromisoformat(fields.date),
        category=fields.category,
    )
    db.add(record)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database insert error: %s", e)
        raise ReceiptAppError(f"Failed to save receipt: {getattr(e, 'orig', e)}") from e
    db.refresh(record)
    logger.info("Stored receipt %s for user %s", record.id, user_id)
    return record


def process_receipt_image(
    db: Session,
    extractor: VisionExtractor,
    user_id: str,
    image_url: str,
    content: bytes,
    content_type: str,
) -> tuple[ReceiptModel, ReceiptFields]:
    """Steps after storage: extract, normalise, insert."""
    logger.info("Pipeline — AI extraction")
    extracted = extractor.extract(content, content_type)

    logger.info("Pipeline — normalise")
    fields = normalize_extraction(extracted)
    logger.info("Extracted %s / %.2f / %s / %s", fields.merchant_name, fields.amount, fields.date, fields.category)

    logger.info("Pipeline — insert")
    return create_receipt(db, user_id, image_url, fields), fields


def store_image(
    storage: LocalObjectStorage,
    user_id: str,
    file_name: str,
    content: bytes,
    content_type: str,
) -> StoredObject:
    return storage.upload(storage.user_path(user_id, file_name), content, content_type)


def ingest(
    db: Session,
    storage: LocalObjectStorage,
    extractor: VisionExtractor,
    user_id: str,
    file_name: str,
    content: bytes,
    content_type: str,
) -> tuple[ReceiptModel, ReceiptFields, StoredObject]:
    """Run the full ingestion pipeline on one uploaded image."""
    logger.info("Pipeline start — store image (%d bytes)", len(content))
    stored = store_image(storage, user_id, file_name, content, content_type)
    receipt, fields = process_receipt_image(db, extractor, user_id, stored.url, content, content_type)
    return receipt, fields, stored
