"""Date wire format helpers.

Reads accept ``YYYY-MM-DD`` (optionally with a trailing time part),
``DD/MM/YYYY`` / ``DD/MM/YY`` (``/``, ``-`` or ``.`` separated) and
spreadsheet serial day numbers. Writes always emit ``YYYY-MM-DD``.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_DMY_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2}|\d{4})$")

# Day zero of spreadsheet serial dates
_SERIAL_EPOCH = date(1899, 12, 30)
_MAX_SERIAL = 2958465  # 9999-12-31


def parse_date(value: Any) -> date | None:
    """Parse a cell value into a date, or None when empty or unrecognised."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if 0 < value <= _MAX_SERIAL:
            return _SERIAL_EPOCH + timedelta(days=int(value))
        return None

    text = str(value).strip()
    if not text:
        return None

    try:
        match = _ISO_RE.match(text)
        if match:
            year, month, day = (int(p) for p in match.groups())
            return date(year, month, day)

        match = _DMY_RE.match(text)
        if match:
            day, month, year = (int(p) for p in match.groups())
            if year < 100:
                year += 2000
            return date(year, month, day)
    except ValueError:
        return None

    return None


def format_date(value: date) -> str:
    return value.isoformat()


def to_wire_date(value: Any) -> str:
    """Canonical ``YYYY-MM-DD`` for parseable input; empty stays empty.

    Text that is not a recognisable date is passed through unchanged.
    """
    if value is None or value == "":
        return ""
    parsed = parse_date(value)
    if parsed is None:
        return str(value).strip()
    return format_date(parsed)


def today() -> date:
    return date.today()


def add_days(days: int, start: date | None = None) -> str:
    """Canonical date ``days`` after ``start`` (default: today)."""
    return format_date((start or today()) + timedelta(days=days))


def days_between(earlier: date, later: date) -> int:
    return abs((later - earlier).days)
