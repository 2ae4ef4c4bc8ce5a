"""
tests/test_progression.py - Per-law pension progression tests

Checks the timeline properties every law must satisfy:
1. Reconciliation: pension_after == pension_before + bonus + min uplift
2. Monotonic step dates
3. Idempotence of repeated calculation
Plus hand-computed scenarios for each law.

Author: Pension Dues Project
License: MIT
"""

import pytest
from datetime import date

from insurance_dues.models import EventType, InsuranceDuesForm, LawType
from insurance_dues.progression import (
    PensionState,
    ProgressionEngine,
    TimelineEvent,
    calculate_law112,
    compute_progression,
    replay_events,
)
from insurance_dues.rules import clamp_bonus, flat_uplift_112, is_bonus_exception, uplift_constant
from insurance_dues.tables import TableSet

from conftest import table_records


def assert_reconciles(data):
    for step in data.steps:
        if step.event_type.sets_absolute_value:
            continue
        assert step.reconciles(), f"Step '{step.description}' on {step.date} does not reconcile"


def assert_monotonic(data):
    dates = [s.date for s in data.steps]
    assert dates == sorted(dates), f"Step dates out of order: {dates}"


def step_on(data, on, event_type=None):
    matches = [s for s in data.steps if s.date == on and (event_type is None or s.event_type == event_type)]
    assert matches, f"No step on {on}"
    return matches[-1]


class TestReplay:
    """The generic fold only collects what apply_event returns."""

    def test_replay_folds_state(self):
        events = [TimelineEvent(date(2020, 1, 1), EventType.ADDITION, 'a', amount=5),
                  TimelineEvent(date(2020, 2, 1), EventType.ADDITION, 'b', amount=7)]
        seen = []

        def apply_event(state, event):
            seen.append(state.total)
            return state.add(event.amount), []

        assert replay_events(PensionState(10), events, apply_event) == []
        assert seen == [10, 15]


class TestBonusClamp:
    """
    Setup: 10% bonus with minimum 50 and maximum 80 on a pension of 300.
    Expectation: the minimum wins (30 < 50).
    """

    def test_minimum_applies(self):
        assert clamp_bonus(300, 10, 50, 80) == 50

    def test_maximum_applies(self):
        assert clamp_bonus(1000, 10, 50, 80) == 80

    def test_zero_bounds_ignored(self):
        assert clamp_bonus(1000, 10, 0, None) == pytest.approx(100)


class TestLaw148:
    """Uplift 450 - p*0.33, floor at entitlement, then bonuses with the floor."""

    def test_hand_computed_timeline(self, law148_form, tables):
        data = compute_progression(LawType.LAW_148, law148_form, tables)
        values = [s.pension_after for s in data.steps]
        assert values == pytest.approx([1000, 1120, 1200, 1368])

    def test_steps_typed(self, law148_form, tables):
        data = compute_progression(LawType.LAW_148, law148_form, tables)
        assert [s.event_type for s in data.steps] == [
            EventType.INITIAL, EventType.UPLIFT, EventType.MINIMUM_UPLIFT, EventType.BONUS,
        ]
        assert data.steps[2].min_uplift == pytest.approx(80)
        assert data.steps[3].bonus_percentage == '14%'

    def test_injury_pension_added_after_floor(self, tables):
        form = InsuranceDuesForm(law_type=LawType.LAW_148, pension_entitlement_date='2020-03',
                                 normal_basic_pension=1000, injury_basic_pension=200)
        data = compute_progression(LawType.LAW_148, form, tables)
        assert data.steps[3].description == 'إضافة المعاش الأساسي الإصابي'
        assert data.steps[3].pension_after == pytest.approx(1400)
        assert_reconciles(data)

    def test_summary(self, law148_form, tables):
        summary = compute_progression(LawType.LAW_148, law148_form, tables).summary
        assert summary.uplift_value == pytest.approx(120)
        assert summary.monthly_grant == 10
        assert [u.amount for u in summary.minimum_pension_uplifts] == pytest.approx([80])
        assert [g.key for g in summary.exceptional_grants] == ['2022-11', '2023-10']

    def test_properties(self, law148_form, tables):
        data = compute_progression(LawType.LAW_148, law148_form, tables)
        assert_reconciles(data)
        assert_monotonic(data)


class TestLaw79:
    """Two channels; Law 30 addition; split bonus base before April 2011."""

    def test_hand_computed_timeline(self, law79_form, tables):
        data = compute_progression(LawType.LAW_79, law79_form, tables)
        values = [s.pension_after for s in data.steps]
        assert values == pytest.approx([600, 635, 875.45, 955.45, 1200, 1368])

    def test_initial_step_reconciles(self, law79_form, tables):
        first = compute_progression(LawType.LAW_79, law79_form, tables).steps[0]
        assert first.pension_before == 0
        assert first.bonus_amount == pytest.approx(600)
        assert first.reconciles()

    def test_law30_capped_at_35(self, law79_form, tables):
        data = compute_progression(LawType.LAW_79, law79_form, tables)
        assert data.steps[1].description == 'إضافة قانون 30 لسنة 1992'
        assert data.steps[1].bonus_amount == pytest.approx(35)

    def test_bonus_maximum_and_floor(self, law79_form, tables):
        data = compute_progression(LawType.LAW_79, law79_form, tables)
        july_2015 = step_on(data, date(2015, 7, 1))
        assert july_2015.bonus_amount == pytest.approx(80)
        assert july_2015.min_uplift == 0
        july_2016 = step_on(data, date(2016, 7, 1))
        assert july_2016.bonus_amount == pytest.approx(95.545)
        assert july_2016.min_uplift == pytest.approx(149.005)

    def test_pre_april_2011_bonus_on_basic_channel_only(self, law79_early_form, tables):
        data = compute_progression(LawType.LAW_79, law79_early_form, tables)
        # basic 200 + Law 30 35 = 235; the variable 100 is excluded
        assert step_on(data, date(2008, 7, 1)).bonus_amount == pytest.approx(23.5)
        # from July 2011 the whole pension is the base
        july_2011 = step_on(data, date(2011, 7, 1))
        assert july_2011.bonus_amount == pytest.approx(july_2011.pension_before * 0.10)

    def test_pre_2010_uplift_dated_july_2010(self, law79_early_form, tables):
        data = compute_progression(LawType.LAW_79, law79_early_form, tables)
        uplift = step_on(data, date(2010, 7, 1), EventType.UPLIFT)
        assert uplift.bonus_amount == pytest.approx(123.60 - 358.5 * 0.33)

    def test_properties(self, law79_form, law79_early_form, tables):
        for form in (law79_form, law79_early_form):
            data = compute_progression(LawType.LAW_79, form, tables)
            assert_reconciles(data)
            assert_monotonic(data)

    def test_missing_tables_give_empty_timeline(self, law79_form):
        data = compute_progression(LawType.LAW_79, law79_form, TableSet([]))
        assert data.is_empty
        assert data.summary.uplift_value == 0


class TestLaw108:
    """Bonuses between July 2010 and April 2011 do not apply to Law 108."""

    def test_gap_bonus_skipped(self):
        records = table_records()
        records[1] = dict(records[1], data=records[1]['data'] + [['01/10/2010', '5%', '', '', '']])
        tables = TableSet.from_records(records)
        form = InsuranceDuesForm(law_type=LawType.LAW_108, pension_entitlement_date='2005-01',
                                 normal_basic_pension=200)
        data = compute_progression(LawType.LAW_108, form, tables)
        assert all(s.date != date(2010, 10, 1) for s in data.steps)
        assert_reconciles(data)
        assert_monotonic(data)

    def test_hand_computed_start(self, tables):
        form = InsuranceDuesForm(law_type=LawType.LAW_108, pension_entitlement_date='2005-01',
                                 normal_basic_pension=200)
        data = compute_progression(LawType.LAW_108, form, tables)
        values = [s.pension_after for s in data.steps[:4]]
        # 200, Law 30 +35, 2008-07 10% +23.5, uplift 123.60 - 258.5*0.33
        assert values == pytest.approx([200, 235, 258.5, 258.5 + 123.60 - 258.5 * 0.33])


class TestLaw112:
    """
    Setup: Law 112 entitlement 1985-01 (before July 2010).
    Expectation: the initial pension is the fixed value in force, 12.00 from 1981-07.
    """

    def test_fixed_track_initial_value(self, tables):
        data = calculate_law112(date(1985, 1, 1), LawType.LAW_112, tables)
        assert data.steps[0].pension_after == pytest.approx(12.00)

    def test_sadat_uses_own_table(self, tables):
        data = calculate_law112(date(1985, 1, 1), LawType.SADAT, tables)
        assert data.steps[0].pension_after == pytest.approx(10.00)

    def test_fixed_increases_then_uplift_and_grant(self, tables):
        data = calculate_law112(date(1985, 1, 1), LawType.LAW_112, tables)
        fixed = [s for s in data.steps if s.event_type == EventType.FIXED_INCREASE]
        assert fixed[-1].pension_after == pytest.approx(70.00)
        uplift = step_on(data, date(2010, 7, 1), EventType.UPLIFT)
        assert uplift.bonus_amount == pytest.approx(43.60)
        april = step_on(data, date(2011, 4, 1))
        assert april.bonus_amount == pytest.approx(17.00)

    def test_repeated_fixed_value_skipped(self, tables):
        data = calculate_law112(date(1985, 1, 1), LawType.LAW_112, tables)
        # 1999-01 repeats 63.00 and produces no step
        assert all(s.date != date(1999, 1, 1) for s in data.steps)

    def test_bonus_before_april_2011_ignored(self, tables):
        data = calculate_law112(date(1985, 1, 1), LawType.LAW_112, tables)
        assert all(s.date != date(2008, 7, 1) for s in data.steps)
        assert all(s.date != date(2011, 7, 1) for s in data.steps)

    def test_base_pension_after_july_2010(self, tables):
        data = calculate_law112(date(2012, 9, 1), LawType.LAW_112, tables)
        assert data.steps[0].pension_after == pytest.approx(70)
        # flat uplift for 2012-07..2013-06 entitlements
        assert data.steps[1].bonus_amount == pytest.approx(211)

    def test_supplement_to_134(self, tables):
        data = calculate_law112(date(2011, 5, 1), LawType.LAW_112, tables)
        special = step_on(data, date(2011, 7, 1), EventType.SPECIAL_UPLIFT_134)
        assert special.pension_after == pytest.approx(134)

    def test_properties(self, tables):
        for entitlement in (date(1985, 1, 1), date(2005, 3, 1), date(2011, 5, 1), date(2017, 2, 1)):
            for law in (LawType.LAW_112, LawType.SADAT):
                data = calculate_law112(entitlement, law, tables)
                assert_reconciles(data)
                assert_monotonic(data)

    def test_late_entitlement_uses_open_uplift_band(self):
        assert uplift_constant(date(2030, 1, 1)) == 450
        assert flat_uplift_112(date(2030, 1, 1)) == (370, date(2030, 1, 1))


class TestBonusExceptionWindows:
    """
    Setup: current table extended with 2022-04 13% and 2024-03 15% bonuses.
    Expectation: a bonus dated up to two months before entitlement still applies
    when entitlement falls inside its window, stamped on the entitlement date.
    Base 70 + flat uplift 370 is raised to the floor (1200, or 1500 from 2024).
    """

    @pytest.fixture
    def window_tables(self):
        records = table_records()
        records[1] = dict(records[1], data=records[1]['data'] + [
            ['01/04/2022', '13%', '', '', ''],
            ['01/03/2024', '15%', '', '', ''],
        ])
        return TableSet.from_records(records)

    def bonus_steps(self, data, raw_date):
        return [s for s in data.steps
                if s.event_type == EventType.BONUS and s.description.endswith(raw_date)]

    def test_window_membership(self):
        assert is_bonus_exception(date(2022, 4, 1), date(2022, 5, 1))
        assert is_bonus_exception(date(2022, 4, 1), date(2022, 6, 1))
        assert not is_bonus_exception(date(2022, 4, 1), date(2022, 3, 1))
        assert not is_bonus_exception(date(2022, 4, 1), date(2022, 7, 1))
        assert is_bonus_exception(date(2024, 3, 1), date(2024, 3, 1))
        assert not is_bonus_exception(date(2024, 3, 1), date(2023, 5, 1))
        assert not is_bonus_exception(date(2021, 7, 1), date(2021, 8, 1))

    def test_bonus_inside_window_dated_at_entitlement(self, window_tables):
        data = calculate_law112(date(2022, 5, 1), LawType.LAW_112, window_tables)
        steps = self.bonus_steps(data, '01/04/2022')
        assert len(steps) == 1
        assert steps[0].date == date(2022, 5, 1)
        assert steps[0].pension_before == pytest.approx(1200)
        assert steps[0].bonus_amount == pytest.approx(156)

    def test_bonus_after_entitlement_keeps_own_date(self, window_tables):
        data = calculate_law112(date(2022, 3, 1), LawType.LAW_112, window_tables)
        steps = self.bonus_steps(data, '01/04/2022')
        assert len(steps) == 1
        assert steps[0].date == date(2022, 4, 1)
        assert steps[0].bonus_amount == pytest.approx(156)

    def test_bonus_outside_window_skipped(self, window_tables):
        data = calculate_law112(date(2022, 7, 1), LawType.LAW_112, window_tables)
        assert self.bonus_steps(data, '01/04/2022') == []

    def test_march_2024_window(self, window_tables):
        for entitlement in (date(2024, 3, 1), date(2024, 5, 1)):
            data = calculate_law112(entitlement, LawType.LAW_112, window_tables)
            steps = self.bonus_steps(data, '01/03/2024')
            assert len(steps) == 1
            assert steps[0].date == entitlement
            assert steps[0].bonus_amount == pytest.approx(225)
            assert self.bonus_steps(data, '01/04/2022') == []

    def test_properties(self, window_tables):
        for month in range(2, 8):
            for year in (2022, 2024):
                data = calculate_law112(date(year, month, 1), LawType.LAW_112, window_tables)
                assert_reconciles(data)
                assert_monotonic(data)


class TestIdempotence:
    """Identical inputs give identical timelines; changed inputs are not served from cache."""

    def test_repeated_calculation_identical(self, law79_form, tables):
        first = compute_progression(LawType.LAW_79, law79_form, tables)
        second = compute_progression(LawType.LAW_79, law79_form, tables)
        assert first == second

    def test_engine_cache_keyed_by_inputs(self, law79_form, tables):
        engine = ProgressionEngine(tables)
        first = engine.progression(law79_form)
        assert engine.progression(law79_form) is first
        changed = InsuranceDuesForm(law_type=LawType.LAW_79, pension_entitlement_date='2015-01',
                                    normal_basic_pension=800, variable_pension=100)
        assert engine.progression(changed).steps[0].pension_after == pytest.approx(900)


class TestReferenceProgressions:
    """Pre-May-2008 Law 79/108 entitlements carry reference timelines."""

    def test_references_attached(self, law79_early_form, reference_tables):
        engine = ProgressionEngine(reference_tables)
        progressions = engine.all_progressions(law79_early_form, date(2021, 1, 1))
        assert [o.ref_number for o in progressions.others] == [1, 2]
        assert step_on(progressions.main, date(2008, 7, 1)).references == [1, 2]

    def test_entitlement_step_referenced_for_law108_only(self, reference_tables):
        engine = ProgressionEngine(reference_tables)
        refs = {}
        for law in (LawType.LAW_79, LawType.LAW_108):
            form = InsuranceDuesForm(law_type=law, pension_entitlement_date='1991-01',
                                     normal_basic_pension=200)
            refs[law] = engine.all_progressions(form, date(2021, 1, 1)).main.steps[0].references
        assert refs[LawType.LAW_108] == [1, 2]
        assert refs[LawType.LAW_79] == []

    def test_no_references_after_cutoff(self, law79_form, reference_tables):
        engine = ProgressionEngine(reference_tables)
        progressions = engine.all_progressions(law79_form, date(2021, 1, 1))
        assert progressions.others == []

    def test_none_when_unavailable(self, law79_form):
        assert ProgressionEngine(TableSet([])).all_progressions(law79_form, date(2021, 1, 1)) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
