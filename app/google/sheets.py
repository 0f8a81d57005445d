"""
Google Sheets sync — one tab per calendar month.

Tab titles follow ``"{FullMonthName} {Year}"`` and are kept in chronological
order; every tab starts with the same formatted six-column header. The
migration importer reads this layout back, so treat it as a file format.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional
from urllib.parse import quote

from app.errors import InputValidationError
from app.google.client import SHEETS_API, GoogleClient
from app.normalize import parse_date
from app.schemas import SheetsReceiptData

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

HEADER_ROW = ["Date", "Merchant", "Amount", "Category", "Drive Link", "Month"]

# Bold white text on dark blue
HEADER_BACKGROUND = {"red": 0.2, "green": 0.2, "blue": 0.8}
HEADER_TEXT = {"bold": True, "foregroundColor": {"red": 1, "green": 1, "blue": 1}}

_MONTH_TAB = re.compile(r"^(" + "|".join(MONTH_NAMES) + r") (\d{4})$")


@dataclass
class SheetTab:
    sheet_id: int
    title: str
    index: int


def month_tab_name(d: date) -> str:
    return f"{MONTH_NAMES[d.month - 1]} {d.year}"


def parse_month_tab(title: str) -> Optional[tuple[int, int]]:
    """``"November 2025"`` -> ``(2025, 11)``; None for any other title."""
    m = _MONTH_TAB.match(title.strip())
    if not m:
        return None
    return int(m.group(2)), MONTH_NAMES.index(m.group(1)) + 1


def compute_insert_index(tabs: Iterable[SheetTab], new_title: str) -> int:
    """Position for *new_title* that keeps month tabs chronological.

    Goes right after the latest month tab that is earlier than the new one.
    With no earlier month tab it goes in front of the first later month tab,
    and with no month tabs at all it is appended. Other tabs are ignored.
    """
    tabs = sorted(tabs, key=lambda t: t.index)
    target = parse_month_tab(new_title)
    if target is None:
        return len(tabs)

    latest_earlier: Optional[tuple[tuple[int, int], int]] = None
    first_later: Optional[int] = None
    for tab in tabs:
        key = parse_month_tab(tab.title)
        if key is None:
            continue
        if key < target:
            if latest_earlier is None or key > latest_earlier[0]:
                latest_earlier = (key, tab.index)
        elif first_later is None:
            first_later = tab.index

    if latest_earlier is not None:
        return latest_earlier[1] + 1
    if first_later is not None:
        return first_later
    return len(tabs)


def a1_range(tab: str, cells: str = "") -> str:
    quoted = "'" + tab.replace("'", "''") + "'"
    return f"{quoted}!{cells}" if cells else quoted


def sheet_date(d: date) -> str:
    return d.strftime("%d/%m/%Y")


def hyperlink_formula(url: str, label: str = "View Receipt") -> str:
    return '=HYPERLINK("{}","{}")'.format(url.replace('"', '""'), label.replace('"', '""'))


def build_row(data: SheetsReceiptData, receipt_date: date) -> list:
    return [
        sheet_date(receipt_date),
        data.merchant_name or "Unknown",
        data.amount,
        data.category or "Uncategorized",
        hyperlink_formula(data.drive_link) if data.drive_link else "",
        MONTH_NAMES[receipt_date.month - 1],
    ]


def header_format_request(sheet_id: int) -> dict:
    return {
        "repeatCell": {
            "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
            "cell": {
                "userEnteredFormat": {
                    "backgroundColor": HEADER_BACKGROUND,
                    "textFormat": HEADER_TEXT,
                }
            },
            "fields": "userEnteredFormat(backgroundColor,textFormat)",
        }
    }


class SheetsSync:
    def __init__(self, client: GoogleClient, spreadsheet_id: str):
        if not spreadsheet_id or "/" in spreadsheet_id:
            raise InputValidationError("Invalid spreadsheet ID")
        self.client = client
        self.spreadsheet_id = spreadsheet_id

    @property
    def base_url(self) -> str:
        return f"{SHEETS_API}/{self.spreadsheet_id}"

    def _values_url(self, range_: str, suffix: str = "") -> str:
        return f"{self.base_url}/values/{quote(range_, safe='')}{suffix}"

    # ---------- tabs ----------
    def list_tabs(self) -> list[SheetTab]:
        data = self.client.get(
            self.base_url,
            "Spreadsheet lookup",
            params={"fields": "sheets.properties(sheetId,title,index)"},
        )
        tabs = []
        for sheet in data.get("sheets") or []:
            props = sheet.get("properties", {})
            tabs.append(SheetTab(props.get("sheetId", 0), props.get("title", ""), props.get("index", 0)))
        return tabs

    def batch_update(self, requests: list[dict], action: str) -> dict:
        return self.client.post(f"{self.base_url}:batchUpdate", action, json={"requests": requests})

    def write_header(self, tab: SheetTab) -> None:
        self.client.put(
            self._values_url(a1_range(tab.title, "A1:F1")),
            "Header write",
            params={"valueInputOption": "RAW"},
            json={"values": [HEADER_ROW]},
        )
        self.batch_update([header_format_request(tab.sheet_id)], "Header formatting")

    def create_month_tab(self, title: str, tabs: list[SheetTab]) -> SheetTab:
        index = compute_insert_index(tabs, title)
        logger.info("Creating sheet tab %r at index %d", title, index)
        reply = self.batch_update(
            [{"addSheet": {"properties": {"title": title, "index": index}}}],
            "Tab creation",
        )
        props = reply["replies"][0]["addSheet"]["properties"]
        tab = SheetTab(props["sheetId"], props.get("title", title), props.get("index", index))
        self.write_header(tab)
        return tab

    def ensure_month_tab(self, receipt_date: date) -> SheetTab:
        title = month_tab_name(receipt_date)
        tabs = self.list_tabs()
        for tab in tabs:
            if tab.title == title:
                return tab
        return self.create_month_tab(title, tabs)

    # ---------- rows ----------
    def append_row(self, tab: SheetTab, row: list) -> None:
        self.client.post(
            self._values_url(a1_range(tab.title, "A:F"), ":append"),
            "Row append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    def sync(self, data: SheetsReceiptData) -> str:
        """Append one receipt to its month tab; returns the tab title."""
        receipt_date = parse_date(data.receipt_date)
        if receipt_date is None:
            raise InputValidationError(f"Invalid receipt date: {data.receipt_date!r}")
        tab = self.ensure_month_tab(receipt_date)
        self.append_row(tab, build_row(data, receipt_date))
        logger.info("Synced receipt to sheet tab %r", tab.title)
        return tab.title
