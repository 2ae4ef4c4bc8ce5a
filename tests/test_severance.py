"""
tests/test_severance.py - Severance Grant and Compensation Tests

Author: Pension Dues Project
License: MIT
"""

import pytest
from datetime import date

from insurance_dues.models import DuesType, DuesValidationError, InsuranceDuesForm, LawType
from insurance_dues.severance import (
    LABEL_SEVERANCE_FEE,
    calculate_compensation,
    rounded_age,
    settle_severance,
    severance_grant,
)


def severance_form(**overrides):
    values = dict(
        law_type=LawType.LAW_148,
        pension_entitlement_date='2020-03',
        normal_basic_pension=1000,
        date_of_death='2020-06-15',
        dues_type=DuesType.SEVERANCE,
        severance_date='2021-01-10',
        severance_percentage=50,
    )
    values.update(overrides)
    return InsuranceDuesForm(**values)


class TestSeveranceGrant:
    """
    Setup: pension 100, requested share 80%, cut in 2015.
    Expectation: share capped at 66.67%, 100 * 0.6667 * 12 = 800.04.
    """

    def test_percentage_capped(self):
        assert severance_grant(100, 80, date(2015, 1, 1)) == pytest.approx(800.04)

    def test_post_2020_floor(self):
        assert severance_grant(10, 50, date(2021, 1, 1)) == 500

    def test_pre_2020_floor(self):
        assert severance_grant(10, 50, date(2019, 1, 1)) == 200


class TestSettleSeverance:
    """
    Setup: Law 148, pension 1368 in January 2021, 50% share.
    Expectation: grant 8208, fee 8208 - floor(8208 * 0.998) = 17, net 8191.
    """

    def test_hand_computed(self, engine, config):
        result = settle_severance(engine, severance_form(), config)
        assert result.summary.total_entitlements == pytest.approx(8208)
        fees = [i.value for i in result.summary.deductions if i.label == LABEL_SEVERANCE_FEE]
        assert fees == pytest.approx([17])
        assert result.summary.net_payable == pytest.approx(8191)

    def test_details_record_applied_percentage(self, engine, config):
        result = settle_severance(engine, severance_form(severance_percentage=80), config)
        grant = result.details.severance_grant
        assert grant.percentage == pytest.approx(66.67)
        assert grant.pension == pytest.approx(1368)

    def test_law112_cut_before_2020_is_not_an_error(self, engine, config):
        form = severance_form(law_type=LawType.LAW_112, pension_entitlement_date='1985-01',
                              normal_basic_pension=0, date_of_death='2018-01-01',
                              severance_date='2019-05-01')
        result = settle_severance(engine, form, config)
        assert result.is_error is False
        assert result.simple_result_text
        assert not result.summary.entitlements

    def test_cut_before_death_rejected(self, engine, config):
        with pytest.raises(DuesValidationError):
            settle_severance(engine, severance_form(severance_date='2020-05-01'), config)

    def test_invalid_date_rejected(self, engine, config):
        with pytest.raises(DuesValidationError):
            settle_severance(engine, severance_form(severance_date='31/02/2021'), config)

    def test_deductions_reduce_fee_base(self, engine, config):
        form = severance_form(has_deductions=True,
                              deductions={'government_fund': {'active': True, 'amount': 208}})
        result = settle_severance(engine, form, config)
        # fee on 8000: 8000 - floor(7984) = 16
        fees = [i.value for i in result.summary.deductions if i.label == LABEL_SEVERANCE_FEE]
        assert fees == pytest.approx([16])
        assert result.summary.net_payable == pytest.approx(7984)


class TestCompensation:
    """
    Setup: Law 148, born 1970-03-10, died 2020-06-15, settlement wage 1000.
    Expectation: age 50y 3m 5d rounds to 51, coefficient 0.93,
    compensation 11160 less the capped fee 20, funeral 3600 less 8.
    """

    def form(self):
        return InsuranceDuesForm(
            law_type=LawType.LAW_148, pension_entitlement_date='2020-03', normal_basic_pension=1000,
            date_of_birth='1970-03-10', date_of_death='2020-06-15', no_beneficiaries=True,
        )

    def test_hand_computed(self, engine, config):
        result = calculate_compensation(engine, self.form(), config, 1000)
        assert (result.age_years, result.age_months, result.age_days) == (50, 3, 5)
        assert result.rounded_age == 51
        assert result.coefficient == 0.93
        assert result.gross_compensation == pytest.approx(11160)
        assert result.compensation_fee == pytest.approx(20)
        assert result.net_compensation == pytest.approx(11140)
        assert result.pension_at_death == pytest.approx(1200)
        assert result.gross_funeral_expenses == pytest.approx(3600)
        assert result.funeral_fee == pytest.approx(8)
        assert result.total_net_payable == pytest.approx(14732)

    def test_dates_can_be_overridden(self, engine, config):
        result = calculate_compensation(engine, self.form(), config, 1000,
                                        date_of_birth='1970-06-15')
        assert result.rounded_age == 50
        assert result.coefficient == 1.00

    def test_wage_required(self, engine, config):
        with pytest.raises(DuesValidationError):
            calculate_compensation(engine, self.form(), config, 0)

    def test_death_before_birth_rejected(self, engine, config):
        with pytest.raises(DuesValidationError):
            calculate_compensation(engine, self.form(), config, 1000, date_of_birth='2021-01-01')

    def test_rounded_age(self):
        assert rounded_age(50, 0, 0) == 50
        assert rounded_age(50, 0, 1) == 51
        assert rounded_age(50, 11, 0) == 51


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
