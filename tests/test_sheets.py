"""
Tests for the month-tab Sheets sync.
"""
from datetime import date

import pytest

from app.errors import GoogleApiError, InputValidationError, SheetsApiDisabledError
from app.google.client import GoogleClient
from app.google.sheets import (
    HEADER_ROW,
    SheetsSync,
    SheetTab,
    a1_range,
    build_row,
    compute_insert_index,
    hyperlink_formula,
    month_tab_name,
    parse_month_tab,
)
from app.schemas import SheetsReceiptData

from conftest import VALID_TOKEN


def _tabs(*titles):
    return [SheetTab(100 + i, t, i) for i, t in enumerate(titles)]


class TestTabNames:
    def test_month_tab_name(self):
        assert month_tab_name(date(2025, 11, 28)) == "November 2025"

    def test_parse_month_tab(self):
        assert parse_month_tab("February 2025") == (2025, 2)
        assert parse_month_tab("Summary") is None
        assert parse_month_tab("Feb 2025") is None


class TestInsertIndex:
    def test_between_neighbours(self):
        assert compute_insert_index(_tabs("January 2025", "March 2025"), "February 2025") == 1

    def test_after_latest_earlier(self):
        assert compute_insert_index(_tabs("Getting Started", "January 2025", "March 2025"), "April 2025") == 3

    def test_across_years(self):
        assert compute_insert_index(_tabs("November 2024", "December 2024", "February 2025"), "January 2025") == 2

    def test_before_first_later(self):
        assert compute_insert_index(_tabs("Getting Started", "March 2025"), "January 2025") == 1

    def test_no_month_tabs_appends(self):
        assert compute_insert_index(_tabs("Getting Started", "Summary"), "May 2025") == 2
        assert compute_insert_index([], "May 2025") == 0


class TestRowFormat:
    def test_full_row(self):
        data = SheetsReceiptData(
            merchant_name="Shell",
            amount=54.2,
            date="2025-11-28",
            category="Fuel",
            driveLink="https://drive.google.com/file/d/abc/view",
        )
        assert build_row(data, date(2025, 11, 28)) == [
            "28/11/2025",
            "Shell",
            54.2,
            "Fuel",
            '=HYPERLINK("https://drive.google.com/file/d/abc/view","View Receipt")',
            "November",
        ]

    def test_defaults(self):
        data = SheetsReceiptData(receipt_date="2025-01-05")
        assert build_row(data, date(2025, 1, 5)) == ["05/01/2025", "Unknown", 0, "Uncategorized", "", "January"]

    def test_quoting(self):
        assert a1_range("Bob's Tab", "A1:F1") == "'Bob''s Tab'!A1:F1"
        assert hyperlink_formula('https://x.test/?q="a"') == '=HYPERLINK("https://x.test/?q=""a""","View Receipt")'


class TestSheetsSync:
    def _sync(self, http, spreadsheet_id="s1"):
        return SheetsSync(GoogleClient(http, VALID_TOKEN), spreadsheet_id)

    def test_creates_tab_in_order_with_header(self, http, upstream):
        upstream.add_spreadsheet("s1", ["January 2025", "March 2025"])
        title = self._sync(http).sync(
            SheetsReceiptData(merchant_name="Shell", amount=54.2, date="2025-02-10", category="Fuel")
        )

        assert title == "February 2025"
        assert upstream.titles("s1") == ["January 2025", "February 2025", "March 2025"]
        tab = upstream.tab("s1", "February 2025")
        assert tab["values"][0] == HEADER_ROW
        assert tab["values"][1] == ["10/02/2025", "Shell", 54.2, "Fuel", "", "February"]

        fmt = upstream.formats[-1]["repeatCell"]
        assert fmt["range"]["sheetId"] == tab["sheetId"]
        assert fmt["range"]["endRowIndex"] == 1
        text = fmt["cell"]["userEnteredFormat"]["textFormat"]
        assert text["bold"] is True
        assert text["foregroundColor"] == {"red": 1, "green": 1, "blue": 1}

    def test_existing_tab_only_appends(self, http, upstream):
        upstream.add_spreadsheet("s1")
        sync = self._sync(http)
        sync.sync(SheetsReceiptData(merchant_name="A", amount=1, date="2025-11-01"))
        sync.sync(SheetsReceiptData(merchant_name="B", amount=2, date="2025-11-30"))

        assert upstream.titles("s1") == ["November 2025"]
        values = upstream.tab("s1", "November 2025")["values"]
        assert [r[1] for r in values[1:]] == ["A", "B"]

    def test_formula_written_as_user_entered(self, http, upstream):
        upstream.add_spreadsheet("s1")
        self._sync(http).sync(
            SheetsReceiptData(merchant_name="A", amount=1, date="2025-11-01", drive_link="https://drive.google.com/file/d/x/view")
        )
        append = [r for r in upstream.requests if r.url.path.endswith(":append")][0]
        assert append.url.params["valueInputOption"] == "USER_ENTERED"
        assert upstream.tab("s1", "November 2025")["values"][1][4].startswith("=HYPERLINK(")

    def test_invalid_date_rejected_before_any_call(self, http, upstream):
        upstream.add_spreadsheet("s1")
        with pytest.raises(InputValidationError):
            self._sync(http).sync(SheetsReceiptData(merchant_name="A", amount=1, date="someday"))
        assert upstream.requests == []

    def test_api_disabled(self, http, upstream):
        upstream.add_spreadsheet("s1")
        upstream.sheets_disabled = True
        with pytest.raises(SheetsApiDisabledError) as exc:
            self._sync(http).sync(SheetsReceiptData(merchant_name="A", amount=1, date="2025-11-01"))
        assert "Google Sheets API" in exc.value.message
        assert "sheets.googleapis.com" in exc.value.activation_url
        assert exc.value.to_dict()["activationUrl"] == exc.value.activation_url

    def test_unknown_spreadsheet(self, http, upstream):
        with pytest.raises(GoogleApiError) as exc:
            self._sync(http, "missing").sync(SheetsReceiptData(merchant_name="A", amount=1, date="2025-11-01"))
        assert exc.value.upstream_status == 404
        assert "not found" in exc.value.message

    def test_bad_spreadsheet_id(self, http):
        with pytest.raises(InputValidationError):
            self._sync(http, "a/b")
