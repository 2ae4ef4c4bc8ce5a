"""
tests/test_tables.py - Authority table parsing and resolver tests

Author: Pension Dues Project
License: MIT
"""

import json
import pytest
from datetime import date

from insurance_dues.tables import (
    CURRENT_BONUS_TABLE,
    PensionTable,
    TableSet,
    parse_bonus_rows,
    parse_minimum_rows,
    resolve_bonus_table_name,
    resolve_minimum_pension,
)

from conftest import table_records


class TestRowParsing:
    """Rows are parsed defensively and sorted ascending by date."""

    def test_bonus_rows_sorted(self, tables):
        rows = tables.bonus_rows(CURRENT_BONUS_TABLE)
        dates = [r.date for r in rows]
        assert dates == sorted(dates)
        assert dates[0] == date(2008, 7, 1)

    def test_bonus_row_columns(self, tables):
        row = [r for r in tables.bonus_rows(CURRENT_BONUS_TABLE) if r.date == date(2015, 7, 1)][0]
        assert row.percentage == 10.0
        assert row.minimum == 20.0
        assert row.maximum == 80.0
        assert row.description == 'علاوة 01/07/2015'
        assert row.percentage_label == '10%'

    def test_missing_maximum_is_unbounded(self, tables):
        row = [r for r in tables.bonus_rows(CURRENT_BONUS_TABLE) if r.date == date(2020, 7, 1)][0]
        assert row.maximum is None
        assert row.minimum == 150.0

    def test_unparseable_rows_skipped(self):
        table = PensionTable('t', [['التاريخ', 'النسبة'], ['01/07/2019', '15%', '', '', ''], ['bad']])
        rows = parse_bonus_rows(table)
        assert len(rows) == 1
        assert rows[0].percentage == 15.0

    def test_equal_dates_keep_table_order(self):
        table = PensionTable('t', [['01/07/2019', '5%'], ['01/07/2019', '7%']])
        assert [r.percentage for r in parse_bonus_rows(table)] == [5.0, 7.0]

    def test_minimum_rows(self, tables):
        rows = tables.minimum_rows()
        assert [(r.date, r.value) for r in rows] == [(date(2016, 7, 1), 1200.0), (date(2024, 1, 1), 1500.0)]

    def test_missing_table_parses_to_empty(self):
        assert parse_bonus_rows(None) == []
        assert parse_minimum_rows(None) == []


class TestMinimumPension:

    def test_latest_row_on_or_before(self, tables):
        rows = tables.minimum_rows()
        assert resolve_minimum_pension(date(2020, 1, 1), rows) == 1200.0
        assert resolve_minimum_pension(date(2024, 1, 1), rows) == 1500.0

    def test_before_first_row_is_zero(self, tables):
        assert resolve_minimum_pension(date(2010, 1, 1), tables.minimum_rows()) == 0.0


class TestBonusTableResolver:
    """First assignment row whose inclusive range contains the date wins."""

    def test_reference_table_selected(self, reference_tables):
        assert resolve_bonus_table_name(date(2010, 1, 1), reference_tables) == 'جدول رقم (1)'

    def test_end_date_inclusive(self, reference_tables):
        assert resolve_bonus_table_name(date(2012, 6, 30), reference_tables) == 'جدول رقم (1)'

    def test_current_table_by_description(self, reference_tables):
        assert resolve_bonus_table_name(date(2015, 1, 1), reference_tables) == CURRENT_BONUS_TABLE

    def test_no_match_falls_back(self, reference_tables):
        assert resolve_bonus_table_name(date(1995, 1, 1), reference_tables) == CURRENT_BONUS_TABLE

    def test_no_assignment_table_falls_back(self, tables):
        assert resolve_bonus_table_name(date(2010, 1, 1), tables) == CURRENT_BONUS_TABLE


class TestTableSet:

    def test_lookup_by_exact_name(self, tables):
        assert CURRENT_BONUS_TABLE in tables
        assert tables.get('غير موجود') is None
        assert tables.bonus_rows('غير موجود') is None

    def test_reference_tables_ordered_by_number(self, reference_tables):
        refs = reference_tables.reference_tables()
        assert [t.ref_number for t in refs] == [1, 2]
        assert refs[1].notes == ['ملاحظة']

    def test_fingerprint_tracks_contents(self):
        first = TableSet.from_records(table_records())
        same = TableSet.from_records(table_records())
        changed = TableSet.from_records(table_records([{'name': 'x', 'data': [['1']]}]))
        assert first.fingerprint == same.fingerprint
        assert first.fingerprint != changed.fingerprint

    def test_from_json(self, tmp_path):
        path = tmp_path / 'tables.json'
        path.write_text(json.dumps(table_records(), ensure_ascii=False), encoding='utf-8')
        tables = TableSet.from_json(path)
        assert len(tables) == 2
        assert len(tables.bonus_rows(CURRENT_BONUS_TABLE)) == 5

    def test_numeric_cells_normalized(self):
        tables = TableSet.from_records([{'name': 't', 'data': [['01/07/2019', 15.0, None, 20, None]]}])
        assert tables.get('t').data == [['01/07/2019', '15', '', '20', '']]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
