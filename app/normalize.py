"""
Amount and date normalisation shared by ingestion, Sheets sync and migration.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

_CURRENCY = re.compile(r"[£$€,]")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_YMD_SLASH = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
_DMY = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})$")

# Textual forms the model (or a hand-edited sheet) produces
_TEXT_FORMATS = (
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d-%b-%Y",
    "%a, %d %b %Y",
)

# Google Sheets serial day zero
_SHEETS_EPOCH = date(1899, 12, 30)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

def parse_amount_strict(value: Any) -> Optional[float]:
    """Strip currency symbols and thousands separators; None if not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _CURRENCY.sub("", str(value)).strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_amount(value: Any) -> float:
    """Like :func:`parse_amount_strict` but falls back to ``0``."""
    parsed = parse_amount_strict(value)
    return parsed if parsed is not None else 0.0


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def _year(y: str) -> int:
    n = int(y)
    if len(y) == 2:
        return 2000 + n if n < 70 else 1900 + n
    return n


def _safe_date(y: int, m: int, d: int) -> Optional[date]:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Permissive calendar-date parser; None when nothing matches.

    Slash/dot/dash numeric dates are read day-first (``28/11/2025``), falling
    back to month-first only when day-first is impossible (``11/28/2025``).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return _SHEETS_EPOCH + timedelta(days=int(value))

    v = str(value).strip()
    if not v:
        return None

    m = _ISO.match(v) or _YMD_SLASH.match(v)
    if m:
        y, mth, d = m.groups()
        return _safe_date(int(y), int(mth), int(d))

    m = _DMY.match(v)
    if m:
        d, mth, y = m.groups()
        return _safe_date(_year(y), int(mth), int(d)) or _safe_date(_year(y), int(d), int(mth))

    for fmt in _TEXT_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(value: Any, fallback: date) -> date:
    parsed = parse_date(value)
    return parsed if parsed is not None else fallback
