"""
insurance_dues/settlement.py - Arrears and Grant Settlement Engine

Settles inheritance and beneficiary arrears ("متجمد"):
1. Validate the arrears periods (ordering, cascading continuity)
2. Accumulate, month by month, pension + monthly grant + exceptional grants
   scaled by each period's entitlement percentage, with a commission per month
3. Add funeral expenses and the death grant (inheritance only)
4. Absorb user deductions in priority order: arrears -> death grant -> funeral
5. Charge disbursement commissions and compute the net payable

Every failure is a ``DuesValidationError`` raised before any amount is
computed; a deduction shortfall is only a warning on the result.

Author: Pension Dues Project
License: MIT
"""

import numpy as np
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple
import logging

from .commission import arrears_month_commission, grant_commission
from .config import DuesConfig
from .dates import add_one_month, format_for_display, iter_months, month_key, parse_year_month
from .models import (
    AllProgressions,
    ArrearsPeriod,
    ArrearsPeriodBreakdown,
    CalculationDetails,
    CalculationResult,
    DuesType,
    DuesValidationError,
    GrantDetails,
    InsuranceDuesForm,
    LawType,
    LineItem,
    MonthlyArrearsLine,
    PeriodDetails,
    SettlementSummary,
    TableUnavailableError,
)
from .progression import MSG_NO_PROGRESSION, ProgressionEngine
from .query import current_pension_breakdown, pension_at, reference_for_date
from .reporting import pensioner_info, user_input_info
from .rules import LAW148_START, death_grant, exceptional_grants_in_force, funeral_expenses, monthly_grant_for

logger = logging.getLogger(__name__)


LABEL_PENSION_ARREARS = 'متجمد المعاش'
LABEL_GRANT_ARREARS = 'متجمد المنحة الشهرية'
LABEL_EXCEPTIONAL_ARREARS = 'متجمد المنح الاستثنائية'
LABEL_FUNERAL = 'مصاريف الجنازة'
LABEL_DEATH_GRANT = 'منحة الوفاة'
LABEL_ARREARS_COMMISSION = 'عمولة صرف المتجمد'
LABEL_FUNERAL_COMMISSION = 'عمولة صرف مصاريف الجنازة'
LABEL_DEATH_GRANT_COMMISSION = 'عمولة صرف منحة الوفاة'

MSG_DEATH_REQUIRED = "تاريخ الوفاة مطلوب لحساب مستحقات التوريث."
MSG_SINGLE_PERIOD_DATES = "لحساب المتجمد، الرجاء إدخال تاريخ بداية وتاريخ نهاية المتجمد."
MSG_NO_PERIOD = "لحساب المتجمد، الرجاء إدخال بيانات فترة واحدة صحيحة على الأقل."
MSG_NO_BENEFICIARY_PERIOD = "لحساب متجمد المستفيد، الرجاء إدخال بيانات فترة واحدة صحيحة على الأقل."


# =============================================================================
# PERIOD VALIDATION
# =============================================================================

def collect_periods(form: InsuranceDuesForm) -> List[ArrearsPeriod]:
    """Periods to settle; single-period mode needs both dates."""
    if not form.multiple_periods and not (form.arrears_start_date and form.arrears_end_date):
        raise DuesValidationError(MSG_SINGLE_PERIOD_DATES)
    return form.arrears_periods()


def _month(value: str, index: int) -> date:
    parsed = parse_year_month(value)
    if parsed is None:
        raise DuesValidationError(f"تاريخ غير صحيح في الفترة {index + 1}: {value}")
    return parsed


def validate_periods(form: InsuranceDuesForm, periods: List[ArrearsPeriod],
                     dues_type: DuesType) -> None:
    """
    Enforce ordering and cascading continuity of arrears periods.

    Period 1 may not start before the death month (inheritance) or the
    entitlement month (beneficiary). Period N may not start before
    period N-1's end plus one month. Incomplete periods are ignored.
    """
    for index, period in enumerate(periods):
        if not period.is_complete:
            continue

        if index == 0:
            if dues_type == DuesType.INHERITANCE:
                death = form.death_date
                if death is None:
                    raise DuesValidationError(MSG_DEATH_REQUIRED)
                min_start = month_key(death)
            else:
                min_start = form.pension_entitlement_date
        else:
            previous = periods[index - 1]
            min_start = add_one_month(previous.end_date) if previous.end_date else ''

        start = _month(period.start_date, index)
        end = _month(period.end_date, index)

        floor = parse_year_month(min_start) if min_start else None
        if floor is not None and start < floor:
            source = 'تاريخ الوفاة' if (dues_type == DuesType.INHERITANCE and index == 0) else 'نهاية الفترة السابقة'
            raise DuesValidationError(
                f"تاريخ بداية الفترة {index + 1} ({format_for_display(period.start_date)}) "
                f"لا يمكن أن يكون قبل {source} ({format_for_display(min_start)})."
            )

        if start > end:
            raise DuesValidationError(
                f"في الفترة {index + 1}، تاريخ النهاية ({format_for_display(period.end_date)}) "
                f"لا يمكن أن يكون قبل تاريخ البداية ({format_for_display(period.start_date)})."
            )


# =============================================================================
# ACCUMULATION
# =============================================================================

@dataclass
class ArrearsTotals:
    """Grand totals of an arrears run (already scaled by the period percentages)."""
    pension: float = 0.0
    monthly_grant: float = 0.0
    exceptional: float = 0.0
    commission: float = 0.0
    months: int = 0
    computed_any: bool = False
    breakdown: List[ArrearsPeriodBreakdown] = field(default_factory=list)
    period_details: List[PeriodDetails] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.pension + self.monthly_grant + self.exceptional


def accumulate_arrears(engine: ProgressionEngine, form: InsuranceDuesForm,
                       periods: List[ArrearsPeriod], config: DuesConfig,
                       progressions: Optional[AllProgressions] = None) -> ArrearsTotals:
    """
    Sum pension, monthly grant and exceptional grant arrears over the periods.

    Periods without dates or with a zero percentage are skipped.
    """
    entitlement = form.entitlement_date
    grants = progressions.main.summary.exceptional_grants if progressions else []
    totals = ArrearsTotals()

    for period in periods:
        if not period.is_complete or not period.percentage:
            continue
        start = parse_year_month(period.start_date)
        end = parse_year_month(period.end_date)
        if start is None or end is None or start > end:
            continue

        totals.computed_any = True
        factor = period.percentage / 100.0
        label = f"{format_for_display(period.start_date)} إلى {format_for_display(period.end_date)}"
        details = PeriodDetails(period=label, percentage=period.percentage)

        lines = []
        for month in iter_months(start, end):
            pension = pension_at(engine, form, month, include_exceptional_grants=False)
            grant = monthly_grant_for(month, config.monthly_grant)
            exceptional = exceptional_grants_in_force(grants, entitlement, month)
            total = pension + grant + exceptional
            commission = arrears_month_commission(
                form.law_type, month, total * factor,
                has_variable_pension=form.has_variable_pension, rate=config.commission_rate,
            )
            lines.append(MonthlyArrearsLine(
                month=month_key(month), pension_value=pension, monthly_grant=grant,
                exceptional_grant=exceptional, total=total, commission=commission,
                pension_value_ref=reference_for_date(engine, form, progressions, month),
            ))

        amounts = np.array([[l.pension_value, l.monthly_grant, l.exceptional_grant] for l in lines])
        pension_sum, grant_sum, exceptional_sum = (amounts.sum(axis=0) * factor).tolist()

        totals.pension += pension_sum
        totals.monthly_grant += grant_sum
        totals.exceptional += exceptional_sum
        totals.commission += sum(l.commission for l in lines)
        totals.months += len(lines)

        details.months = len(lines)
        details.total = pension_sum + grant_sum + exceptional_sum
        details.breakdown = lines
        totals.period_details.append(details)
        totals.breakdown.append(ArrearsPeriodBreakdown(label, period.percentage, details.total, len(lines)))

        logger.debug(f"Arrears period {label}: {len(lines)} months, {details.total:.2f}")

    return totals


# =============================================================================
# DEATH-RELATED GRANTS
# =============================================================================

def death_related_grants(engine: ProgressionEngine, form: InsuranceDuesForm,
                         progressions: Optional[AllProgressions] = None
                         ) -> Tuple[GrantDetails, Optional[GrantDetails]]:
    """Funeral expenses and death grant from the pension of the death month."""
    death = form.death_date
    if death is None:
        raise DuesValidationError(MSG_DEATH_REQUIRED)

    pension = pension_at(engine, form, death, include_exceptional_grants=False)
    ref = reference_for_date(engine, form, progressions, death)

    funeral, funeral_formula = funeral_expenses(form.law_type, death, pension)
    grant, grant_formula = death_grant(form.law_type, death, pension)

    funeral_details = GrantDetails(funeral_formula, pension, funeral, pension_ref=ref)
    grant_details = GrantDetails(grant_formula, pension, grant, pension_ref=ref) if grant_formula else None
    return funeral_details, grant_details


# =============================================================================
# DEDUCTIONS
# =============================================================================

@dataclass
class DeductionOutcome:
    """How user deductions were absorbed by the entitlement buckets."""
    items: List[LineItem] = field(default_factory=list)
    taken: List[float] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    warning: Optional[str] = None
    remaining: float = 0.0


def apply_deductions(declared: List[LineItem], buckets: List[Tuple[str, float]],
                     shortfall_subject: str = 'المستحقات') -> DeductionOutcome:
    """
    Absorb declared deductions by bucket priority.

    Args:
        declared: Active user deductions (category label, amount)
        buckets: (label, available amount) in priority order
        shortfall_subject: What ran out, for the warning text

    Returns:
        DeductionOutcome; when only part of the total could be absorbed the
        deducted amount is split across categories in proportion to what
        was declared.
    """
    requested = sum(item.value for item in declared)
    outcome = DeductionOutcome()

    remaining = requested
    for label, available in buckets:
        taken = min(remaining, available)
        remaining -= taken
        outcome.taken.append(taken)
        if taken > 0:
            outcome.notes.append(f"تم خصم مبلغ {taken:.2f} من {label}.")

    deducted = requested - remaining
    if deducted > 0:
        if deducted >= requested:
            outcome.items = list(declared)
        else:
            outcome.items = [LineItem(item.label, deducted * item.value / requested) for item in declared]

    outcome.remaining = remaining
    if remaining > 0:
        outcome.warning = (
            f"تنبيه: تبقى مبلغ {remaining:.2f} من الخصومات لم يتم خصمه لعدم كفاية {shortfall_subject}. "
            "يرجى اتخاذ الإجراءات القانونية لتحصيله."
        )
        logger.warning(f"Deductions exceed entitlements by {remaining:.2f}")
    return outcome


# =============================================================================
# SETTLEMENT
# =============================================================================

def _last_percentage(form: InsuranceDuesForm) -> float:
    if form.multiple_periods:
        for period in reversed(form.periods):
            if period.percentage > 0:
                return period.percentage
        return 100.0
    return form.entitlement_percentage


def settle_arrears(engine: ProgressionEngine, form: InsuranceDuesForm,
                   dues_type: DuesType, config: DuesConfig) -> CalculationResult:
    """
    Full inheritance/beneficiary settlement for a validated form.

    Raises:
        DuesValidationError: Invalid or non-contiguous periods, missing death date
        TableUnavailableError: No progression could be built from the tables
    """
    periods = collect_periods(form)
    validate_periods(form, periods, dues_type)

    as_of = config.effective_as_of()
    progressions = engine.all_progressions(form, as_of)
    if progressions is None:
        raise TableUnavailableError(MSG_NO_PROGRESSION)
    totals = accumulate_arrears(engine, form, periods, config, progressions)

    if not totals.computed_any:
        if dues_type != DuesType.BENEFICIARY:
            raise DuesValidationError(MSG_NO_PERIOD)
        if form.law_type in (LawType.LAW_79, LawType.LAW_108):
            raise DuesValidationError(MSG_NO_BENEFICIARY_PERIOD)

    details = CalculationDetails(kind='arrears', law_type=form.law_type, dues_type=dues_type,
                                 periods=totals.period_details)

    funeral = grant = 0.0
    if dues_type == DuesType.INHERITANCE:
        funeral_details, grant_details = death_related_grants(engine, form, progressions)
        details.funeral_expenses = funeral_details
        details.death_grant = grant_details
        funeral = funeral_details.result
        grant = grant_details.result if grant_details else 0.0

    summary = SettlementSummary()
    for label, value in ((LABEL_PENSION_ARREARS, totals.pension),
                         (LABEL_GRANT_ARREARS, totals.monthly_grant),
                         (LABEL_EXCEPTIONAL_ARREARS, totals.exceptional),
                         (LABEL_FUNERAL, funeral),
                         (LABEL_DEATH_GRANT, grant)):
        if value > 0:
            summary.entitlements.append(LineItem(label, value))

    outcome = apply_deductions(
        form.active_deductions(),
        [(LABEL_PENSION_ARREARS, totals.total), (LABEL_DEATH_GRANT, grant), (LABEL_FUNERAL, funeral)],
    )
    summary.deductions.extend(outcome.items)
    _, from_grant, from_funeral = outcome.taken

    death = form.death_date
    post_2020 = death is not None and death >= LAW148_START
    funeral_fee = grant_commission(funeral - from_funeral, post_2020, config.commission_rate, config.commission_cap)
    grant_fee = grant_commission(grant - from_grant, post_2020, config.commission_rate, config.commission_cap)
    for label, value in ((LABEL_ARREARS_COMMISSION, totals.commission),
                         (LABEL_FUNERAL_COMMISSION, funeral_fee),
                         (LABEL_DEATH_GRANT_COMMISSION, grant_fee)):
        if value > 0:
            summary.deductions.append(LineItem(label, value))
    summary.totalize()

    if form.multiple_periods:
        span, percentage = 'فترات متعددة', None
    else:
        span = (f"{format_for_display(form.arrears_start_date)} "
                f"إلى {format_for_display(form.arrears_end_date)}")
        percentage = f"{form.entitlement_percentage:g}%"
    user_input = user_input_info([
        ('نوع المستحقات', 'مستحقات توريث' if dues_type == DuesType.INHERITANCE else 'مستحقات مستفيد'),
        ('عدد شهور المتجمد', totals.months),
        ('فترة المتجمد', span),
        ('نسبة الاستحقاق', percentage),
    ])

    breakdown = current_pension_breakdown(engine, form, config, percentage=_last_percentage(form))

    logger.info(f"Settled {dues_type.value} arrears: {totals.months} months, "
                f"net payable {summary.net_payable:.2f}")

    return CalculationResult(
        pensioner_info=pensioner_info(form, include_death=True),
        user_input_info=user_input,
        summary=summary,
        arrears_breakdown=totals.breakdown if form.multiple_periods else None,
        current_pension_breakdown=breakdown,
        deduction_notes=outcome.notes,
        deduction_warning=outcome.warning,
        details=details,
        progressions=progressions,
    )
