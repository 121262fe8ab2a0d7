from __future__ import annotations

import math
import numbers
import re
import warnings
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

"""Cell normalizers for loosely formatted spreadsheet exports.

None of these functions raise: a malformed cell must never stop extraction of
the rest of the file. They return "" / None / 0.0 instead.

Date resolution order for delimited triples is fixed:
    (day, month, year) -> (year, month, day) -> (month, day, year)
The first calendar-valid candidate wins.
"""

__all__ = [
    "clean_cell",
    "is_blank",
    "parse_flexible_date",
    "parse_flexible_number",
    "date_to_serial",
]

# Excel の 1900 日付システム起点 (1900-02-29 バグ込みで 1899-12-30)
SERIAL_EPOCH = datetime(1899, 12, 30)
MIN_YEAR = 2000
MAX_YEAR = 2100

_NUMERIC_TEXT = re.compile(r"^-?\d+(?:\.\d+)?$")
_DELIMITED_DATE = re.compile(r"^(\d{1,4})[/.-](\d{1,2})[/.-](\d{1,4})$")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_NUMBER_PREFIX = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if pd.api.types.is_scalar(value):
        try:
            return bool(pd.isna(value))
        except (TypeError, ValueError):
            return False
    return False


def clean_cell(value: Any) -> str:
    """Return the trimmed text of a cell ("" for empty / NaN)."""
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        # 900.0 -> "900" (pandas は数値列を float で返すことがある)
        return str(int(value))
    return str(value).strip()


def is_blank(value: Any) -> bool:
    return clean_cell(value) == ""


def _build_iso(year: int, month: int, day: int) -> str | None:
    full_year = 2000 + year if year < 100 else year
    if full_year < MIN_YEAR or full_year > MAX_YEAR:
        return None
    try:
        return date(full_year, month, day).isoformat()
    except ValueError:
        return None


def _from_serial(serial: float) -> str | None:
    try:
        moment = SERIAL_EPOCH + timedelta(days=serial)
    except (OverflowError, ValueError):
        return None
    return _build_iso(moment.year, moment.month, moment.day)


def _from_compact(digits: str) -> str | None:
    # yyyymmdd (例: 20240131)
    return _build_iso(int(digits[0:4]), int(digits[4:6]), int(digits[6:8]))


def _from_number(number: float) -> str | None:
    serial_iso = _from_serial(number)
    if serial_iso:
        return serial_iso
    # Excel に数値として入力された yyyymmdd
    if number.is_integer() and 10_000_000 <= number <= 99_999_999:
        return _from_compact(str(int(number)))
    return None


def _from_text(text: str) -> str | None:
    if _NUMERIC_TEXT.match(text):
        serial_iso = _from_serial(float(text))
        if serial_iso:
            return serial_iso
        if len(text) == 8:
            compact_iso = _from_compact(text)
            if compact_iso:
                return compact_iso

    match = _DELIMITED_DATE.match(text)
    if match:
        a, b, c = (int(g) for g in match.groups())
        for candidate in (
            (c, b, a),  # DD/MM/YYYY
            (a, b, c),  # YYYY/MM/DD
            (c, a, b),  # MM/DD/YYYY
        ):
            iso = _build_iso(*candidate)
            if iso:
                return iso

    # 最後の手段: pandas の自由形式パース ("31 Jan 2024" 等)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if parsed is pd.NaT or _is_missing(parsed) or parsed.year <= MIN_YEAR:
        return None
    return _build_iso(parsed.year, parsed.month, parsed.day)


def parse_flexible_date(value: Any) -> str | None:
    """Parse a date cell into an ISO ``YYYY-MM-DD`` string.

    Accepts datetime/date cells, numbers and numeric strings (spreadsheet
    serial, else compact ``YYYYMMDD``), delimited triples and free text.
    Two-digit years get 2000 added; years outside [2000, 2100] are rejected.

    Returns:
        ISO date string, or None when nothing plausible was found.
    """
    try:
        if _is_missing(value) or isinstance(value, bool):
            return None
        if isinstance(value, (datetime, date)):
            return _build_iso(value.year, value.month, value.day)
        if isinstance(value, numbers.Real):
            return _from_number(float(value))
        text = str(value).strip()
        if not text:
            return None
        return _from_text(text)
    except Exception:  # 1 セルの異常で取込全体を止めない
        return None


def date_to_serial(iso_date: str) -> float:
    """Inverse of the serial branch of parse_flexible_date."""
    return float((date.fromisoformat(iso_date) - SERIAL_EPOCH.date()).days)


def parse_flexible_number(value: Any) -> float:
    """Parse a currency-like cell ("₹1,200.50", "-300", "#N/A") into a float.

    Thousands separators and any character other than digits, sign and
    decimal point are dropped; the leading numeric part is used. Empty or
    unparsable content yields 0.0, never NaN.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return 0.0
        return number
    text = _NON_NUMERIC.sub("", str(value))
    match = _NUMBER_PREFIX.match(text)
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except ValueError:  # pragma: no cover - regex guarantees a float literal
        return 0.0
