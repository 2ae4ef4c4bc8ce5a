"""
insurance_dues/tables.py - Authority Lookup Tables and Resolver

The pension authority publishes its schedules as loose string grids:
1. Minimum pension table: date | - | minimum value
2. Periodic bonus tables (current and historical "جدول رقم (N)"):
   date | percentage | - | minimum amount | maximum amount
3. Assignment table: start | end | free-text naming the authoritative
   bonus table for that date range

Rows are not guaranteed to be in date order. Parsed rows are sorted
ascending on load (stable, so equal dates keep table order) and unparseable
rows are skipped with a warning. The grids themselves are never modified.

Author: Pension Dues Project
License: MIT
"""

import pandas as pd
import hashlib
import json
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from dataclasses import dataclass, field
from pathlib import Path
import logging

from .dates import parse_amount, parse_date

logger = logging.getLogger(__name__)


MINIMUM_PENSION_TABLE = 'جدول الحد الأدني للمعاش'
CURRENT_BONUS_TABLE = 'جدول العلاوات الدورية للمعاش'
ASSIGNMENT_TABLE = 'جدول تعيين قيم المعاشات'
REFERENCE_TABLE_PATTERN = re.compile(r'جدول رقم \((\d+)\)')


def reference_table_name(ref_number: int) -> str:
    return f"جدول رقم ({ref_number})"


# =============================================================================
# TABLE RECORDS
# =============================================================================

@dataclass
class PensionTable:
    """A named grid of string cells as supplied by the authority-tables store."""
    name: str
    data: List[List[str]] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    is_visible: bool = True

    @property
    def ref_number(self) -> Optional[int]:
        match = REFERENCE_TABLE_PATTERN.search(self.name)
        return int(match.group(1)) if match else None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'PensionTable':
        return cls(
            name=record['name'],
            data=[[_cell_text(c) for c in row] for row in record.get('data', [])],
            notes=list(record.get('notes') or []),
            is_visible=record.get('isVisible', record.get('is_visible', True)),
        )


@dataclass(frozen=True)
class BonusRow:
    """One periodic bonus: percentage of the pension, bounded per event."""
    date: date
    percentage: float
    minimum: float
    maximum: Optional[float]
    raw_date: str

    @property
    def description(self) -> str:
        return f"علاوة {self.raw_date}"

    @property
    def percentage_label(self) -> str:
        return f"{self.percentage:g}%"


@dataclass(frozen=True)
class MinimumPensionRow:
    date: date
    value: float


def _cell(row: List[str], index: int) -> str:
    return row[index] if len(row) > index and row[index] is not None else ''


def _cell_text(value: Any) -> str:
    """Normalize a spreadsheet/JSON cell to the text the parsers expect."""
    if value is None:
        return ''
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.strftime('%d/%m/%Y')
    if isinstance(value, date):
        return value.strftime('%d/%m/%Y')
    if isinstance(value, float) and pd.isna(value):
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# =============================================================================
# ROW PARSERS
# =============================================================================

def parse_bonus_rows(table: Optional[PensionTable]) -> List[BonusRow]:
    """Parse and date-sort the rows of a bonus table."""
    if table is None:
        return []

    rows = []
    for raw in table.data:
        bonus_date = parse_date(_cell(raw, 0))
        if bonus_date is None:
            logger.warning(f"Skipping bonus row without a valid date in '{table.name}': {raw}")
            continue
        maximum = parse_amount(_cell(raw, 4))
        rows.append(BonusRow(
            date=bonus_date,
            percentage=parse_amount(_cell(raw, 1)),
            minimum=parse_amount(_cell(raw, 3)),
            maximum=maximum or None,
            raw_date=_cell(raw, 0),
        ))
    return sorted(rows, key=lambda r: r.date)


def parse_minimum_rows(table: Optional[PensionTable]) -> List[MinimumPensionRow]:
    """Parse and date-sort the minimum pension table."""
    if table is None:
        return []

    rows = []
    for raw in table.data:
        effective = parse_date(_cell(raw, 0))
        if effective is None:
            logger.warning(f"Skipping minimum pension row without a valid date: {raw}")
            continue
        rows.append(MinimumPensionRow(effective, parse_amount(_cell(raw, 2))))
    return sorted(rows, key=lambda r: r.date)


# =============================================================================
# RESOLVERS
# =============================================================================

def resolve_minimum_pension(on: date, rows: List[MinimumPensionRow]) -> float:
    """Floor in force on ``on``: the latest row dated on or before it, else 0."""
    for row in reversed(rows):
        if row.date <= on:
            return row.value
    return 0.0


def resolve_bonus_table_name(target: date, tables: 'TableSet') -> str:
    """
    Name of the bonus table authoritative on ``target``.

    The first assignment row whose inclusive range contains the date wins.
    Its description must name a "جدول رقم (N)" table or the current bonus
    table; anything else keeps scanning. No match falls back to the current
    bonus table.
    """
    assignment = tables.get(tables.assignment_table_name)
    fallback = tables.current_bonus_table_name
    if assignment is None:
        return fallback

    for row in assignment.data:
        start = parse_date(_cell(row, 0))
        end = parse_date(_cell(row, 1))
        if start is None or end is None:
            continue
        if start <= target <= end:
            description = _cell(row, 2)
            match = REFERENCE_TABLE_PATTERN.search(description)
            if match:
                return reference_table_name(int(match.group(1)))
            if fallback in description:
                return fallback

    return fallback


# =============================================================================
# TABLE SET
# =============================================================================

class TableSet:
    """
    Read-only collection of authority tables, looked up by exact name.

    Parsed rows are cached per table. The SHA-256 ``fingerprint`` of the
    grids identifies the table contents for progression caching.
    """

    def __init__(self, tables: Iterable[PensionTable],
                 minimum_table_name: str = MINIMUM_PENSION_TABLE,
                 current_bonus_table_name: str = CURRENT_BONUS_TABLE,
                 assignment_table_name: str = ASSIGNMENT_TABLE):
        self._tables: Dict[str, PensionTable] = {}
        for table in tables:
            if table.name in self._tables:
                logger.warning(f"Duplicate table '{table.name}', keeping the first one")
                continue
            self._tables[table.name] = table

        self.minimum_table_name = minimum_table_name
        self.current_bonus_table_name = current_bonus_table_name
        self.assignment_table_name = assignment_table_name

        self._bonus_cache: Dict[str, List[BonusRow]] = {}
        self._minimum_rows: Optional[List[MinimumPensionRow]] = None
        self._fingerprint: Optional[str] = None

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: str) -> bool:
        return name in self._tables

    @property
    def names(self) -> List[str]:
        return list(self._tables)

    def get(self, name: str) -> Optional[PensionTable]:
        return self._tables.get(name)

    def bonus_rows(self, name: str) -> Optional[List[BonusRow]]:
        """Sorted rows of the named bonus table, or None when it is missing."""
        if name not in self._tables:
            return None
        if name not in self._bonus_cache:
            self._bonus_cache[name] = parse_bonus_rows(self._tables[name])
        return self._bonus_cache[name]

    def minimum_rows(self) -> Optional[List[MinimumPensionRow]]:
        table = self.get(self.minimum_table_name)
        if table is None:
            return None
        if self._minimum_rows is None:
            self._minimum_rows = parse_minimum_rows(table)
        return self._minimum_rows

    def reference_tables(self) -> List[PensionTable]:
        """Historical "جدول رقم (N)" tables ordered by N."""
        refs = [t for t in self._tables.values() if t.ref_number is not None]
        return sorted(refs, key=lambda t: t.ref_number)

    @property
    def fingerprint(self) -> str:
        if self._fingerprint is None:
            payload = json.dumps(
                [[t.name, t.data] for t in sorted(self._tables.values(), key=lambda t: t.name)],
                ensure_ascii=False,
            )
            self._fingerprint = hashlib.sha256(payload.encode('utf-8')).hexdigest()
        return self._fingerprint

    # -------------------------------------------------------------------------
    # Loaders
    # -------------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]], **kwargs) -> 'TableSet':
        return cls([PensionTable.from_record(r) for r in records], **kwargs)

    @classmethod
    def from_json(cls, filepath: Union[str, Path], **kwargs) -> 'TableSet':
        """Load ``[{"name": ..., "data": [[...]], "notes": [...]}, ...]``."""
        filepath = Path(filepath)
        with open(filepath, encoding='utf-8') as f:
            records = json.load(f)
        tables = cls.from_records(records, **kwargs)
        logger.info(f"Loaded {len(tables)} tables from {filepath.name} "
                    f"(SHA-256: {tables.fingerprint[:16]}...)")
        return tables

    @classmethod
    def from_excel(cls, filepath: Union[str, Path], **kwargs) -> 'TableSet':
        """Load a workbook where every sheet is one table named after the sheet."""
        filepath = Path(filepath)
        sheets = pd.read_excel(filepath, sheet_name=None, header=None, dtype=object)
        tables = []
        for sheet_name, df in sheets.items():
            data = [[_cell_text(v) for v in row] for row in df.itertuples(index=False)]
            tables.append(PensionTable(name=str(sheet_name), data=data))
        table_set = cls(tables, **kwargs)
        logger.info(f"Loaded {len(table_set)} tables from {filepath.name} "
                    f"(SHA-256: {table_set.fingerprint[:16]}...)")
        return table_set
