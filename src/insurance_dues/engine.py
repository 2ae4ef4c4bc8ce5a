"""
insurance_dues/engine.py - Insurance Dues Engine

Validates a dues form against the operative window of its law and routes
it to the right calculator:

    no beneficiaries   -> additional compensation
    (no dues type)     -> current periodic pension
    inheritance        -> arrears + funeral expenses + death grant
    beneficiary        -> arrears
    severance          -> severance grant

Law windows (entitlement date):
    Law 79/108    1990-01-01 <= d < 2020-01-01
    Law 112/Sadat 1980-07-01 <= d < 2020-01-01
    Law 148       d >= 2020-01-01

Author: Pension Dues Project
License: MIT
"""

from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union
import logging

from .config import DuesConfig
from .dates import format_for_display
from .models import (
    AllProgressions,
    CalculationDetails,
    CalculationResult,
    CompensationResult,
    DuesType,
    DuesValidationError,
    InsuranceDuesForm,
    LawScopeError,
    LawType,
    LineItem,
    SettlementSummary,
    TableUnavailableError,
)
from .progression import MSG_NO_PROGRESSION, ProgressionEngine
from .query import PensionQueryResult, current_pension_breakdown, query_pension
from .query import pension_at as query_pension_at
from .reporting import pensioner_info, user_input_info
from .rules import LAW148_START, is_law_112_family
from .settlement import settle_arrears
from .severance import calculate_compensation, settle_severance
from .tables import TableSet

logger = logging.getLogger(__name__)


LAW_79_108_START = date(1990, 1, 1)
LAW_112_START = date(1980, 7, 1)

SUPERSEDED_LAW_NAMES: Dict[LawType, str] = {
    LawType.LAW_79: '79 لسنة 1975',
    LawType.LAW_108: '108 لسنة 1976',
}

MSG_INVALID_ENTITLEMENT = "الرجاء إدخال تاريخ استحقاق صحيح."
MSG_BASIC_PENSION_REQUIRED = "قيمة المعاش الأساسي يجب أن تكون أكبر من صفر."
MSG_DEATH_BEFORE_ENTITLEMENT = "تاريخ وفاة صاحب المعاش يجب أن يكون بعد أو في نفس تاريخ استحقاق المعاش."
MSG_LAW_148_SCOPE = ("العمل بالقانون 148 لسنة 2019 بدأ من 2020/01/01 "
                     "ولا يمكن كتابة تاريخ استحقاق سابق علي العمل بالقانون.")
MSG_LAW_79_108_START = "البرنامج يقوم بحساب المعاشات اعتبارا من أول يناير لعام 1990"
MSG_LAW_112_START = "البرنامج يقوم بحساب المعاشات اعتبارا من أول يوليو لعام 1980"
MSG_LAW_112_SUPERSEDED = ("تم الغاء العمل بالقانون 112 لسنة 1980 ليحل محله القانون 148 لسنة 2019 "
                          "والذي بدأ العمل به اعتبارا من 1/1/2020")
MSG_NO_PERIODIC_DATA = "لم يتم العثور على بيانات لحساب المعاش الدوري."


def superseded_message(law: LawType) -> str:
    return (f"تم الغاء العمل بالقانون {SUPERSEDED_LAW_NAMES[law]} ليحل محله القانون 148 لسنة 2019 "
            "والذي بدأ العمل به اعتبارا من 1/1/2020")


class DuesEngine:
    """Front door of the dues calculation: validation, routing and the periodic pension."""

    def __init__(self, tables: TableSet, config: Optional[DuesConfig] = None):
        self.tables = tables
        self.config = config or DuesConfig()
        self.progressions = ProgressionEngine(tables, self.config.reference_cutoff)

        logger.info(f"DuesEngine initialized: {len(tables)} tables, "
                    f"as-of={self.config.as_of_date or 'today'}")

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_form(self, form: InsuranceDuesForm) -> None:
        """
        Reject forms the engine cannot compute.

        Raises:
            LawScopeError: Entitlement outside the law's operative window
            DuesValidationError: Any other invalid input
        """
        entitlement = form.entitlement_date
        if entitlement is None:
            raise DuesValidationError(MSG_INVALID_ENTITLEMENT)

        law = form.law_type
        if law == LawType.LAW_148:
            if entitlement < LAW148_START:
                raise LawScopeError(MSG_LAW_148_SCOPE)
        elif is_law_112_family(law):
            if entitlement < LAW_112_START:
                raise LawScopeError(MSG_LAW_112_START)
            if entitlement >= LAW148_START:
                raise LawScopeError(MSG_LAW_112_SUPERSEDED)
        else:
            if entitlement < LAW_79_108_START:
                raise LawScopeError(MSG_LAW_79_108_START)
            if entitlement >= LAW148_START:
                raise LawScopeError(superseded_message(law))

        if not is_law_112_family(law) and form.normal_basic_pension <= 0:
            raise DuesValidationError(MSG_BASIC_PENSION_REQUIRED)

        death = form.death_date
        if form.date_of_death and death is None:
            raise DuesValidationError("الرجاء إدخال تاريخ وفاة صحيح.")
        if death is not None and death < entitlement:
            raise DuesValidationError(MSG_DEATH_BEFORE_ENTITLEMENT)

        if form.multiple_periods and len(form.periods) > self.config.max_arrears_periods:
            raise DuesValidationError(
                f"لا يمكن إدخال أكثر من {self.config.max_arrears_periods} فترات للمتجمد."
            )

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def calculate(self, form: InsuranceDuesForm) -> Union[CalculationResult, CompensationResult]:
        """Validate and compute whatever the form asks for."""
        self.validate_form(form)
        logger.info(f"Calculating {form.dues_type.value or 'periodic'} dues "
                    f"under law {form.law_type.value}")

        if form.no_beneficiaries:
            return self.compensation(form)
        if form.dues_type == DuesType.PERIODIC:
            return self.periodic(form)
        if form.dues_type in (DuesType.INHERITANCE, DuesType.BENEFICIARY):
            return settle_arrears(self.progressions, form, form.dues_type, self.config)
        if form.dues_type == DuesType.SEVERANCE:
            return settle_severance(self.progressions, form, self.config)
        raise DuesValidationError(f"Unknown dues type: {form.dues_type}")

    def compensation(self, form: InsuranceDuesForm, average_settlement_wage: Optional[float] = None,
                     date_of_birth: Optional[str] = None,
                     date_of_death: Optional[str] = None) -> CompensationResult:
        wage = form.average_settlement_wage if average_settlement_wage is None else average_settlement_wage
        return calculate_compensation(self.progressions, form, self.config, wage,
                                      date_of_birth, date_of_death)

    # -------------------------------------------------------------------------
    # Periodic pension
    # -------------------------------------------------------------------------

    def periodic(self, form: InsuranceDuesForm) -> CalculationResult:
        """Current monthly pension with its disbursement fee."""
        as_of = self.config.effective_as_of()
        progressions = self.progressions.all_progressions(form, as_of)
        capped = form.law_type == LawType.LAW_148
        breakdown = None
        if progressions is not None:
            breakdown = current_pension_breakdown(self.progressions, form, self.config,
                                                  capped_commission=capped)
        if breakdown is None:
            raise TableUnavailableError(MSG_NO_PROGRESSION if capped else MSG_NO_PERIODIC_DATA)

        summary = SettlementSummary(
            entitlements=[item for item in (
                LineItem('المعاش الحالي', breakdown.current_pension),
                LineItem('المنحة الشهرية', breakdown.monthly_grant),
                LineItem('المنح الاستثنائية', breakdown.exceptional_grant),
            ) if item.value > 0],
            deductions=[LineItem('عمولة الصرف', breakdown.disbursement_fee)] if breakdown.disbursement_fee > 0 else [],
        ).totalize()

        logger.info(f"Periodic pension as of {as_of}: total {breakdown.total_entitlement:.2f}, "
                    f"net {breakdown.net_payable:.2f}")

        return CalculationResult(
            pensioner_info=pensioner_info(form),
            user_input_info=user_input_info([
                ('نوع المستحقات', 'معاش دوري حالي'),
                ('تاريخ الحساب', format_for_display(as_of.isoformat())),
            ]),
            summary=summary,
            current_pension_breakdown=breakdown,
            details=CalculationDetails(kind='periodic', law_type=form.law_type, dues_type=DuesType.PERIODIC),
            progressions=progressions,
        )

    # -------------------------------------------------------------------------
    # Timelines and point queries
    # -------------------------------------------------------------------------

    def progression_for(self, form: InsuranceDuesForm) -> AllProgressions:
        """Main and reference timelines as of the configured date."""
        self.validate_form(form)
        progressions = self.progressions.all_progressions(form, self.config.effective_as_of())
        if progressions is None:
            raise TableUnavailableError(MSG_NO_PROGRESSION)
        return progressions

    def pension_at(self, form: InsuranceDuesForm, target: date,
                   include_exceptional_grants: bool = True) -> float:
        return query_pension_at(self.progressions, form, target, include_exceptional_grants)

    def query(self, form: InsuranceDuesForm, target: date) -> PensionQueryResult:
        progressions = self.progressions.all_progressions(form, self.config.effective_as_of())
        return query_pension(self.progressions, form, target, self.config, progressions)


# =============================================================================
# FACTORY
# =============================================================================

def load_tables(source: Union[str, Path, Iterable[Dict[str, Any]]], config: DuesConfig) -> TableSet:
    """Tables from a .json/.xlsx path or from in-memory records."""
    names = dict(
        minimum_table_name=config.minimum_pension_table,
        current_bonus_table_name=config.current_bonus_table,
        assignment_table_name=config.assignment_table,
    )
    if isinstance(source, (str, Path)):
        path = Path(source)
        if path.suffix.lower() in ('.xlsx', '.xls'):
            return TableSet.from_excel(path, **names)
        return TableSet.from_json(path, **names)
    return TableSet.from_records(source, **names)


def create_engine(config: Optional[Union[Dict[str, Any], DuesConfig]] = None,
                  tables: Optional[Union[TableSet, str, Path, Iterable[Dict[str, Any]]]] = None) -> DuesEngine:
    if config is None:
        config = DuesConfig()
    elif isinstance(config, dict):
        config = DuesConfig(**config)
    if tables is None:
        tables = TableSet([])
    elif not isinstance(tables, TableSet):
        tables = load_tables(tables, config)
    return DuesEngine(tables, config)
