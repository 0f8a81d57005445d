"""
One-shot import of an existing receipts spreadsheet into the database.

Every month tab is read with the same column layout the Sheets sync writes:
``Date, Merchant, Amount, Category, Drive Link[, Month]``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import GoogleAuthError
from app.google.client import GoogleClient
from app.google.sheets import SheetsSync, a1_range
from app.models import ReceiptModel
from app.normalize import normalize_date, parse_amount
from app.timeutil import today

logger = logging.getLogger(__name__)

SKIPPED_TABS = {"Summary"}

_DRIVE_ID = re.compile(r"/d/([^/?#]+)")
_HYPERLINK_URL = re.compile(r'^=HYPERLINK\(\s*"((?:[^"]|"")*)"', re.IGNORECASE)


@dataclass
class MigrationResult:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"Successfully migrated {self.imported} receipts. "
            f"{self.skipped} were already in the database."
        )


@dataclass
class SheetRow:
    receipt_date: date
    merchant_name: str
    amount: float
    category: str
    drive_link: Optional[str]
    google_drive_id: Optional[str]


def is_skipped_tab(title: str) -> bool:
    return title in SKIPPED_TABS or title.startswith("_")


def link_from_cell(value: Any) -> Optional[str]:
    """Plain URL cells pass through; ``=HYPERLINK("url", ...)`` yields the url."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    m = _HYPERLINK_URL.match(text)
    if m:
        return m.group(1).replace('""', '"')
    return text


def extract_drive_file_id(link: Optional[str]) -> Optional[str]:
    if not link or "drive.google.com" not in link:
        return None
    m = _DRIVE_ID.search(link)
    return m.group(1) if m else None


def _cell(row: list, idx: int) -> Any:
    return row[idx] if idx < len(row) else None


def parse_sheet_row(row: list, fallback_date: date) -> SheetRow:
    merchant = _cell(row, 1)
    category = _cell(row, 3)
    link = link_from_cell(_cell(row, 4))
    return SheetRow(
        receipt_date=normalize_date(_cell(row, 0), fallback_date),
        merchant_name=str(merchant).strip() if merchant not in (None, "") else "Unknown Merchant",
        amount=round(parse_amount(_cell(row, 2)), 2),
        category=str(category).strip() if category not in (None, "") else "Other",
        drive_link=link,
        google_drive_id=extract_drive_file_id(link),
    )


class SheetsMigrator:
    def __init__(self, db: Session, client: GoogleClient, spreadsheet_id: str):
        self.db = db
        self.sheets = SheetsSync(client, spreadsheet_id)
        self.spreadsheet_id = spreadsheet_id

    def read_rows(self, title: str) -> list[list]:
        # FORMULA keeps =HYPERLINK(...) intact so the Drive link survives the round trip
        data = self.sheets.client.get(
            f"{self.sheets.base_url}/values/{quote(a1_range(title), safe='')}",
            f"Reading sheet {title}",
            params={"valueRenderOption": "FORMULA", "dateTimeRenderOption": "FORMATTED_STRING"},
        )
        return data.get("values") or []

    def already_imported(self, user_id: str, row: SheetRow) -> bool:
        # Heuristic key: two real receipts with the same date/merchant/amount collide
        return (
            self.db.query(ReceiptModel.id)
            .filter(
                ReceiptModel.user_id == user_id,
                ReceiptModel.receipt_date == row.receipt_date,
                ReceiptModel.merchant_name == row.merchant_name,
                ReceiptModel.amount == row.amount,
            )
            .first()
            is not None
        )

    def import_row(self, user_id: str, title: str, row: SheetRow) -> None:
        record = ReceiptModel(
            user_id=user_id,
            receipt_date=row.receipt_date,
            merchant_name=row.merchant_name,
            amount=row.amount,
            category=row.category,
            google_drive_id=row.google_drive_id,
            image_url=row.drive_link or f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}",
            notes=f"Migrated from Google Sheets: {title}",
        )
        self.db.add(record)
        self.db.commit()

    def migrate_tab(self, user_id: str, title: str, result: MigrationResult) -> None:
        rows = self.read_rows(title)
        if len(rows) <= 1:
            logger.info("Sheet %s is empty", title)
            return
        logger.info("Found %d rows in %s", len(rows) - 1, title)

        for row_number, raw in enumerate(rows[1:], start=2):
            if not raw or not any(str(c).strip() for c in raw):
                continue
            try:
                row = parse_sheet_row(raw, today())
                if self.already_imported(user_id, row):
                    logger.info(
                        "Receipt already exists: %s - %s on %s",
                        row.merchant_name, row.amount, row.receipt_date,
                    )
                    result.skipped += 1
                    continue
                self.import_row(user_id, title, row)
                result.imported += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Insert error for %s row %d: %s", title, row_number, e)
                result.errors.append(f"{title} row {row_number} ({_describe(raw)}): {e}")
            except Exception as e:
                self.db.rollback()
                logger.exception("Error processing %s row %d", title, row_number)
                result.errors.append(f"{title} row {row_number}: Row processing error: {e}")

    def migrate(self, user_id: str) -> MigrationResult:
        tabs = self.sheets.list_tabs()
        logger.info("Starting migration for user %s: %d sheets", user_id, len(tabs))
        result = MigrationResult()

        for tab in sorted(tabs, key=lambda t: t.index):
            if is_skipped_tab(tab.title):
                logger.info("Skipping sheet: %s", tab.title)
                continue
            logger.info("Processing sheet: %s", tab.title)
            try:
                self.migrate_tab(user_id, tab.title, result)
            except GoogleAuthError:
                raise
            except Exception as e:
                logger.error("Error processing sheet %s: %s", tab.title, e)
                result.errors.append(f"Sheet {tab.title}: {e}")

        logger.info(
            "Migration complete: %d imported, %d skipped, %d errors",
            result.imported, result.skipped, len(result.errors),
        )
        return result


def _describe(raw: list) -> str:
    return " / ".join(str(c) for c in raw[:3])
