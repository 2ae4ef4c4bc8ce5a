"""
insurance_dues/severance.py - Severance Grant and Additional Compensation

Two lump-sum calculators that sit beside the arrears settlement:

Severance ("منحة القطع"): paid once when a beneficiary's share is cut.
    grant = pension_at_severance * min(pct, cap) / 100 * 12
    floored at 500 EGP from 2020-01-01, 200 EGP before.
    Law 112/Sadat owes nothing for cuts before Law 148 took effect.

Additional compensation: paid when the deceased left no beneficiaries.
    compensation = average_settlement_wage * 12 * coefficient(rounded age)
    plus funeral expenses from the pension at death.

Author: Pension Dues Project
License: MIT
"""

from datetime import date
from typing import Optional, Union
import logging

from .commission import calculate_commission, legacy_rounding_fee
from .config import DuesConfig
from .dates import age_at, format_for_display, parse_date
from .models import (
    CalculationDetails,
    CalculationResult,
    CompensationResult,
    DuesType,
    DuesValidationError,
    GrantDetails,
    InsuranceDuesForm,
    LineItem,
    SettlementSummary,
    TableUnavailableError,
)
from .progression import MSG_NO_PROGRESSION, ProgressionEngine
from .query import pension_at, reference_for_date
from .reporting import pensioner_info, user_input_info
from .rules import LAW148_START, compensation_coefficient, funeral_expenses, is_law_112_family
from .settlement import apply_deductions

logger = logging.getLogger(__name__)


SEVERANCE_FLOOR_POST_2020 = 500.0
SEVERANCE_FLOOR_PRE_2020 = 200.0

LABEL_SEVERANCE_GRANT = 'قيمة المنحة (بعد تطبيق الحد الأدنى)'
LABEL_SEVERANCE_FEE = 'عمولة الصرف لمنحة القطع'
LABEL_SEVERANCE_BUCKET = 'منحة القطع'

MSG_INVALID_SEVERANCE_DATE = "الرجاء إدخال تاريخ قطع صحيح."
MSG_NO_SEVERANCE_BEFORE_148 = "لا يستحق المستفيد منحة قطع حيث أن تاريخ القطع قبل تاريخ العمل بالقانون 148 لسنة 2019."
MSG_SEVERANCE_BEFORE_DEATH = "تاريخ قطع المستفيد يجب أن يكون بعد أو في نفس تاريخ وفاة صاحب المعاش."
MSG_INVALID_WAGE = "الرجاء إدخال متوسط أجر تسوية صحيح."
MSG_INVALID_DATES = "الرجاء إدخال تواريخ ميلاد ووفاة واستحقاق صحيحة."
MSG_DEATH_BEFORE_BIRTH = "تاريخ الوفاة لا يمكن أن يكون قبل تاريخ الميلاد."


# =============================================================================
# SEVERANCE GRANT
# =============================================================================

def severance_grant(pension: float, percentage: float, severance: date,
                    cap: float = 66.67) -> float:
    """Twelve months of the capped share, bounded below by the statutory floor."""
    applied = min(percentage, cap)
    floor = SEVERANCE_FLOOR_POST_2020 if severance >= LAW148_START else SEVERANCE_FLOOR_PRE_2020
    return max(pension * applied / 100.0 * 12, floor)


def settle_severance(engine: ProgressionEngine, form: InsuranceDuesForm,
                     config: DuesConfig) -> CalculationResult:
    """
    Severance settlement for one beneficiary.

    Raises:
        DuesValidationError: Missing/invalid severance date, or a cut dated
            before the pensioner's death
        TableUnavailableError: No progression could be built from the tables
    """
    severance = parse_date(form.severance_date)
    if severance is None:
        raise DuesValidationError(MSG_INVALID_SEVERANCE_DATE)

    if is_law_112_family(form.law_type) and severance < LAW148_START:
        logger.info(f"No severance grant for {form.law_type.value} cut on {severance}")
        return CalculationResult.message(MSG_NO_SEVERANCE_BEFORE_148, is_error=False)

    death = form.death_date
    if death is not None and severance < death:
        raise DuesValidationError(MSG_SEVERANCE_BEFORE_DEATH)

    progressions = engine.all_progressions(form, config.effective_as_of())
    if progressions is None:
        raise TableUnavailableError(MSG_NO_PROGRESSION)
    pension = pension_at(engine, form, severance, include_exceptional_grants=False)
    applied = min(form.severance_percentage, config.severance_percentage_cap)
    grant = severance_grant(pension, form.severance_percentage, severance,
                            config.severance_percentage_cap)

    summary = SettlementSummary(entitlements=[LineItem(LABEL_SEVERANCE_GRANT, grant)])
    outcome = apply_deductions(form.active_deductions(), [(LABEL_SEVERANCE_BUCKET, grant)],
                               shortfall_subject=LABEL_SEVERANCE_BUCKET)
    summary.deductions.extend(outcome.items)

    net = grant - outcome.taken[0]
    if severance >= LAW148_START:
        fee = calculate_commission(net, config.commission_rate, config.commission_cap)
    else:
        fee = 1.0 if net > 0 else 0.0
    if fee > 0:
        summary.deductions.append(LineItem(LABEL_SEVERANCE_FEE, fee))
    summary.totalize()

    details = CalculationDetails(
        kind='severance', law_type=form.law_type, dues_type=DuesType.SEVERANCE,
        severance_grant=GrantDetails(
            formula=f"المعاش × {applied:g}% × 12",
            pension=pension,
            result=grant,
            percentage=applied,
            pension_ref=reference_for_date(engine, form, progressions, severance),
        ),
    )

    logger.info(f"Severance grant on {severance}: {grant:.2f}, net payable {summary.net_payable:.2f}")

    return CalculationResult(
        pensioner_info=pensioner_info(form, include_death=bool(form.date_of_death)),
        user_input_info=user_input_info([
            ('منحة قطع للمستفيد', 'نعم'),
            ('تاريخ القطع', format_for_display(form.severance_date)),
            ('نسبة الاستحقاق المدخلة', f"{form.severance_percentage:g}%"),
            ('النسبة المطبقة (بعد الحد الأقصى)', f"{applied:g}%"),
            ('المعاش في شهر القطع', round(pension, 2)),
        ]),
        summary=summary,
        deduction_notes=outcome.notes,
        deduction_warning=outcome.warning,
        details=details,
        progressions=progressions,
    )


# =============================================================================
# ADDITIONAL COMPENSATION
# =============================================================================

def rounded_age(years: int, months: int, days: int) -> int:
    """Any part of a year counts as a full year."""
    return years + 1 if (months or days) else years


def _lump_sum_fee(amount: float, post_2020: bool, config: DuesConfig) -> float:
    if post_2020:
        return calculate_commission(amount, config.commission_rate, config.commission_cap)
    return legacy_rounding_fee(amount)


def calculate_compensation(engine: ProgressionEngine, form: InsuranceDuesForm, config: DuesConfig,
                           average_settlement_wage: float,
                           date_of_birth: Optional[Union[str, date]] = None,
                           date_of_death: Optional[Union[str, date]] = None) -> CompensationResult:
    """
    Additional compensation and funeral expenses when no beneficiary exists.

    Args:
        engine: Progression engine (for the pension at death)
        form: Pension inputs
        config: Commission settings
        average_settlement_wage: Monthly settlement wage
        date_of_birth: Defaults to the form's date of birth
        date_of_death: Defaults to the form's date of death

    Returns:
        CompensationResult with gross/fee/net for both items

    Raises:
        DuesValidationError: Missing wage, invalid dates or death before birth
        TableUnavailableError: No progression could be built from the tables
    """
    if not average_settlement_wage or average_settlement_wage <= 0:
        raise DuesValidationError(MSG_INVALID_WAGE)

    birth = parse_date(date_of_birth if date_of_birth is not None else form.date_of_birth)
    death = parse_date(date_of_death if date_of_death is not None else form.date_of_death)
    if birth is None or death is None or form.entitlement_date is None:
        raise DuesValidationError(MSG_INVALID_DATES)
    if death < birth:
        raise DuesValidationError(MSG_DEATH_BEFORE_BIRTH)

    progressions = engine.all_progressions(form, config.effective_as_of())
    if progressions is None:
        raise TableUnavailableError(MSG_NO_PROGRESSION)

    years, months, days = age_at(birth, death)
    age = rounded_age(years, months, days)
    coefficient = compensation_coefficient(age)
    post_2020 = death >= LAW148_START

    gross_compensation = average_settlement_wage * 12 * coefficient
    compensation_fee = _lump_sum_fee(gross_compensation, post_2020, config)
    net_compensation = gross_compensation - compensation_fee

    pension = pension_at(engine, form, death, include_exceptional_grants=False)
    gross_funeral, _ = funeral_expenses(form.law_type, death, pension)
    funeral_fee = _lump_sum_fee(gross_funeral, post_2020, config)
    net_funeral = gross_funeral - funeral_fee

    logger.info(f"Compensation at age {age} (coefficient {coefficient}): "
                f"{net_compensation:.2f} + funeral {net_funeral:.2f}")

    return CompensationResult(
        age_years=years,
        age_months=months,
        age_days=days,
        rounded_age=age,
        coefficient=coefficient,
        gross_compensation=gross_compensation,
        compensation_fee=compensation_fee,
        net_compensation=net_compensation,
        pension_at_death=pension,
        gross_funeral_expenses=gross_funeral,
        funeral_fee=funeral_fee,
        net_funeral_expenses=net_funeral,
        total_net_payable=net_compensation + net_funeral,
        pension_ref=reference_for_date(engine, form, progressions, death),
    )
