"""
tests/conftest.py - Shared fixtures for the dues engine tests

A small authority-table set whose numbers are easy to follow by hand:
- minimum pension 1200 from 2016-07, 1500 from 2024-01
- bonuses 2008-07 10%, 2011-07 10%, 2015-07 10% (min 20, max 80),
  2016-07 10%, 2020-07 14% (min 150), deliberately listed out of order

Author: Pension Dues Project
License: MIT
"""

from datetime import date

import pytest

from insurance_dues.config import DuesConfig
from insurance_dues.models import InsuranceDuesForm, LawType
from insurance_dues.progression import ProgressionEngine
from insurance_dues.tables import (
    ASSIGNMENT_TABLE,
    CURRENT_BONUS_TABLE,
    MINIMUM_PENSION_TABLE,
    TableSet,
)


MINIMUM_ROWS = [
    ['01/01/2024', '', '1500'],
    ['01/07/2016', '', '1200'],
]

BONUS_ROWS = [
    ['01/07/2020', '14%', '', '150', ''],
    ['01/07/2008', '10%', '', '', ''],
    ['01/07/2011', '10%', '', '', ''],
    ['01/07/2015', '10%', '', '20', '80'],
    ['01/07/2016', '10%', '', '', ''],
]


def table_records(extra=None):
    records = [
        {'name': MINIMUM_PENSION_TABLE, 'data': MINIMUM_ROWS},
        {'name': CURRENT_BONUS_TABLE, 'data': BONUS_ROWS},
    ]
    return records + list(extra or [])


@pytest.fixture
def tables():
    return TableSet.from_records(table_records())


@pytest.fixture
def reference_tables():
    """Current tables plus two historical reference tables and an assignment table."""
    return TableSet.from_records(table_records([
        {'name': 'جدول رقم (2)', 'data': [['01/07/2008', '10%', '', '', '']], 'notes': ['ملاحظة']},
        {'name': 'جدول رقم (1)', 'data': [['01/07/2008', '12%', '', '', '']]},
        {'name': ASSIGNMENT_TABLE, 'data': [
            ['01/01/2000', '30/06/2012', 'العلاوات طبقا لـ جدول رقم (1)'],
            ['01/07/2012', '31/12/2030', CURRENT_BONUS_TABLE],
        ]},
    ]))


@pytest.fixture
def engine(tables):
    return ProgressionEngine(tables)


@pytest.fixture
def config():
    return DuesConfig(as_of_date=date(2021, 1, 1))


@pytest.fixture
def law148_form():
    """Law 148: 1000 -> uplift 120 -> floor 80 -> 2020-07 bonus 168 = 1368."""
    return InsuranceDuesForm(
        law_type=LawType.LAW_148,
        insurance_number='1234567',
        pensioner_name='صاحب المعاش',
        pension_entitlement_date='2020-03',
        normal_basic_pension=1000,
    )


@pytest.fixture
def law79_form():
    return InsuranceDuesForm(
        law_type=LawType.LAW_79,
        pension_entitlement_date='2015-01',
        normal_basic_pension=500,
        variable_pension=100,
    )


@pytest.fixture
def law79_early_form():
    return InsuranceDuesForm(
        law_type=LawType.LAW_79,
        pension_entitlement_date='2005-01',
        normal_basic_pension=200,
        variable_pension=100,
    )
