"""
tests/test_dates.py - Date and numeral utility tests

Author: Pension Dues Project
License: MIT
"""

import pytest
from datetime import date

from insurance_dues.dates import (
    add_one_month,
    age_at,
    convert_arabic_numerals,
    format_for_display,
    iter_months,
    month_key,
    parse_amount,
    parse_date,
    parse_year_month,
)


class TestNumerals:
    """Arabic-Indic digits map to ASCII; everything else passes through."""

    def test_arabic_digits_converted(self):
        assert convert_arabic_numerals('٢٠٢٠/٠٣/١٥') == '2020/03/15'

    def test_mixed_text_passes_through(self):
        assert convert_arabic_numerals('علاوة ١٠%') == 'علاوة 10%'

    def test_empty_input(self):
        assert convert_arabic_numerals('') == ''
        assert convert_arabic_numerals(None) == ''

    def test_parse_amount(self):
        assert parse_amount('١٤%') == 14.0
        assert parse_amount('1,250.5') == 1250.5
        assert parse_amount('') == 0.0
        assert parse_amount('abc', default=-1) == -1
        assert parse_amount(7) == 7.0


class TestParseDate:
    """D/M/Y and Y/M/D are told apart by the four-digit segment."""

    def test_day_first(self):
        assert parse_date('15/03/2020') == date(2020, 3, 15)

    def test_year_first_with_dashes(self):
        assert parse_date('2011-04-01') == date(2011, 4, 1)

    def test_arabic_digits(self):
        assert parse_date('٠١/٠٧/٢٠١٦') == date(2016, 7, 1)

    def test_invalid_day_returns_none(self):
        assert parse_date('31/02/2020') is None

    def test_wrong_shape_returns_none(self):
        assert parse_date('2020/03') is None
        assert parse_date('15/03/20') is None
        assert parse_date('') is None

    def test_year_month(self):
        assert parse_year_month('1985-01') == date(1985, 1, 1)
        assert parse_year_month('2020-13') is None
        assert parse_year_month('') is None
        assert parse_year_month('1985/01') is None

    def test_year_month_is_strict(self):
        assert parse_year_month('2020-06-15') is None
        assert parse_year_month('2020-6') is None
        assert parse_year_month('20-06') is None
        assert parse_year_month('2020-06x') is None
        assert parse_year_month(' ٢٠٢٠-٠٦ ') == date(2020, 6, 1)
        assert parse_year_month(date(2020, 6, 15)) == date(2020, 6, 1)


class TestMonthArithmetic:

    def test_add_one_month_rolls_year(self):
        assert add_one_month('2020-12') == '2021-01'
        assert add_one_month('2020-06') == '2020-07'

    def test_add_one_month_malformed(self):
        assert add_one_month('2020-1') == ''
        assert add_one_month('') == ''
        assert add_one_month('2020-13') == ''

    def test_iter_months_inclusive(self):
        months = list(iter_months(date(2020, 11, 1), date(2021, 2, 1)))
        assert [month_key(m) for m in months] == ['2020-11', '2020-12', '2021-01', '2021-02']


class TestDisplay:

    def test_formats(self):
        assert format_for_display('2020-06-15') == '15/06/2020'
        assert format_for_display('2020-06') == '06/2020'
        assert format_for_display('2020/06/15') == '15/06/2020'
        assert format_for_display('free text') == 'free text'
        assert format_for_display('') == '-'


class TestAge:

    def test_completed_components(self):
        assert age_at(date(1970, 3, 10), date(2020, 6, 15)) == (50, 3, 5)

    def test_borrowing_days_and_months(self):
        # 2020-02 has 29 days
        assert age_at(date(1970, 5, 20), date(2020, 3, 10)) == (49, 9, 19)

    def test_exact_birthday(self):
        assert age_at(date(1970, 3, 10), date(2020, 3, 10)) == (50, 0, 0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
