"""
insurance_dues/dates.py - Date and Numeral Utilities

Pension records arrive as free text typed by clerks: Arabic-Indic digits,
day-first or year-first dates, slash or dash separators. Everything in the
engine works on ``datetime.date`` values normalized to UTC calendar days;
month-granular values are pinned to the 1st of the month.

Author: Pension Dues Project
License: MIT
"""

import re
from datetime import date
from typing import Iterator, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


ARABIC_DIGITS = '٠١٢٣٤٥٦٧٨٩'
_DIGIT_MAP = str.maketrans({d: str(i) for i, d in enumerate(ARABIC_DIGITS)})

_SEPARATORS = re.compile(r'[/-]')
_YEAR_MONTH = re.compile(r'^\d{4}-\d{2}$')
_ISO_DAY = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_SLASH_DAY = re.compile(r'^\d{4}/\d{2}/\d{2}$')


# =============================================================================
# NUMERALS
# =============================================================================

def convert_arabic_numerals(value: Optional[str]) -> str:
    """Map Arabic-Indic digits to ASCII digits; other characters pass through."""
    if not value:
        return ''
    return str(value).translate(_DIGIT_MAP)


def parse_amount(value, default: float = 0.0) -> float:
    """
    Parse a numeric table cell or form value.

    Accepts numbers, ASCII or Arabic-Indic digit strings and a trailing '%'.
    Returns ``default`` for empty or non-numeric input.
    """
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    text = convert_arabic_numerals(value).replace('%', '').replace(',', '').strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


# =============================================================================
# PARSING
# =============================================================================

def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a ``D/M/Y`` or ``Y/M/D`` date (slash or dash separated).

    The four-digit segment decides the order. Returns None when the text does
    not match either shape or names a day that does not exist.
    """
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    parts = _SEPARATORS.split(convert_arabic_numerals(value).strip())
    if len(parts) != 3:
        return None

    try:
        if len(parts[2]) == 4:
            day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
        elif len(parts[0]) == 4:
            year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
        else:
            return None
        return date(year, month, day)
    except ValueError:
        return None


def parse_year_month(value: Optional[str]) -> Optional[date]:
    """Parse a strict ``YYYY-MM`` key to the 1st of that month; anything else gives None."""
    if isinstance(value, date):
        return value.replace(day=1)
    text = convert_arabic_numerals(value).strip()
    if not _YEAR_MONTH.match(text):
        return None
    year, month = (int(p) for p in text.split('-'))
    try:
        return date(year, month, 1)
    except ValueError:
        return None


# =============================================================================
# MONTH ARITHMETIC
# =============================================================================

def add_months(value: date, months: int) -> date:
    """Shift a date by whole months, pinned to the 1st."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def add_one_month(year_month: Optional[str]) -> str:
    """Increment a ``YYYY-MM`` key; malformed input gives ''."""
    if not year_month or not _YEAR_MONTH.match(year_month):
        return ''
    year, month = (int(p) for p in year_month.split('-'))
    if not 1 <= month <= 12:
        return ''
    return month_key(add_months(date(year, month, 1), 1))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_start(value: date) -> date:
    return value.replace(day=1)


def iter_months(start: date, end: date) -> Iterator[date]:
    """Yield the 1st of every month from ``start`` through ``end`` inclusive."""
    current = month_start(start)
    while current <= end:
        yield current
        current = add_months(current, 1)


# =============================================================================
# DISPLAY
# =============================================================================

def format_for_display(value: Optional[str]) -> str:
    """
    Convert stored date text to the display convention.

    ``YYYY-MM-DD`` -> ``DD/MM/YYYY``, ``YYYY-MM`` -> ``MM/YYYY``,
    ``YYYY/MM/DD`` -> ``DD/MM/YYYY``. Anything else passes through; empty
    input renders as '-'.
    """
    if isinstance(value, date):
        value = value.isoformat()
    if not value:
        return '-'
    if _ISO_DAY.match(value):
        y, m, d = value.split('-')
        return f"{d}/{m}/{y}"
    if _YEAR_MONTH.match(value):
        y, m = value.split('-')
        return f"{m}/{y}"
    if _SLASH_DAY.match(value):
        y, m, d = value.split('/')
        return f"{d}/{m}/{y}"
    return value


# =============================================================================
# AGE
# =============================================================================

def _days_in_previous_month(value: date) -> int:
    return (value.replace(day=1) - add_months(value, -1)).days


def age_at(birth: date, on: date) -> Tuple[int, int, int]:
    """Completed (years, months, days) between two dates."""
    years = on.year - birth.year
    months = on.month - birth.month
    days = on.day - birth.day
    if days < 0:
        months -= 1
        days += _days_in_previous_month(on)
    if months < 0:
        years -= 1
        months += 12
    return years, months, days


if __name__ == "__main__":
    print("Date utilities self-test")
    print(parse_date('١٥/٠٣/٢٠٢٠'), parse_date('2011/04/01'), parse_date('bad'))
    print(parse_year_month('1985-01'), add_one_month('2020-12'))
    print(format_for_display('2020-06'), format_for_display('2020-06-15'))
    print(age_at(date(1970, 5, 20), date(2020, 3, 10)))
