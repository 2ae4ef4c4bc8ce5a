"""
insurance_dues/models.py - Records, Enums and the Validated Dues Form

Three kinds of types live here:
1. Enums for the law, the dues type, deduction categories and timeline events
2. Immutable result records (progression steps, settlement line items,
   breakdowns) produced fresh on every calculation
3. The pydantic ``InsuranceDuesForm`` that normalizes clerk input
   (Arabic-Indic digits, percentage clamping, deduction defaults)

Author: Pension Dues Project
License: MIT
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging

from pydantic import BaseModel, Field, validator

from .dates import convert_arabic_numerals, parse_amount, parse_date, parse_year_month

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class LawType(Enum):
    """Pension laws handled by the engine ("sadat" is a Law 112 sub-variant)."""
    LAW_79 = "79-1975"
    LAW_108 = "108-1976"
    LAW_112 = "112-1980"
    LAW_148 = "148-2019"
    SADAT = "sadat"


class DuesType(Enum):
    """What the user asked to compute."""
    PERIODIC = ""
    INHERITANCE = "inheritance"
    BENEFICIARY = "beneficiary"
    SEVERANCE = "severance"


class DeductionCategory(Enum):
    """User-declared deductions, in display order."""
    NASSER_BANK_INSTALLMENTS = "nasser_bank_installments"
    GOVERNMENT_FUND = "government_fund"
    PRIVATE_FUND = "private_fund"
    ALIMONY = "alimony"
    OTHER = "other"

    @property
    def label(self) -> str:
        return DEDUCTION_LABELS[self]


DEDUCTION_LABELS: Dict[DeductionCategory, str] = {
    DeductionCategory.NASSER_BANK_INSTALLMENTS: 'أقساط بنك ناصر',
    DeductionCategory.GOVERNMENT_FUND: 'مبالغ للصندوق الحكومي',
    DeductionCategory.PRIVATE_FUND: 'مبالغ للصندوق الخاص',
    DeductionCategory.ALIMONY: 'أقساط نفقة',
    DeductionCategory.OTHER: 'أخرى',
}


class EventType(Enum):
    """Kinds of pension-affecting events on a timeline."""
    INITIAL = "initial"
    ADDITION = "addition"
    UPLIFT = "uplift"
    MINIMUM_UPLIFT = "minimum_uplift"
    BONUS = "bonus"
    GRANT = "grant"
    FIXED_INCREASE = "fixed_increase"
    SPECIAL_UPLIFT_134 = "special_uplift_134"

    @property
    def sets_absolute_value(self) -> bool:
        return self in (EventType.FIXED_INCREASE, EventType.SPECIAL_UPLIFT_134)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class DuesCalculationError(ValueError):
    """Base class for every calculation failure shown to the user."""


class DuesValidationError(DuesCalculationError):
    """Invalid or inconsistent input; nothing was computed."""


class LawScopeError(DuesValidationError):
    """Entitlement date outside the operative window of the selected law."""


class TableUnavailableError(DuesCalculationError):
    """A progression could not be built from the available tables."""


# =============================================================================
# PROGRESSION RECORDS
# =============================================================================

@dataclass(frozen=True)
class ExceptionalGrant:
    """One-time monthly top-up effective from a calendar month."""
    effective: date
    amount: float

    @property
    def key(self) -> str:
        return f"{self.effective.year:04d}-{self.effective.month:02d}"


@dataclass(frozen=True)
class MinimumUplift:
    date: date
    amount: float


@dataclass(frozen=True)
class ProgressionStep:
    """One audit-trail entry of a pension timeline."""
    date: date
    description: str
    pension_before: float
    bonus_amount: float
    min_uplift: float
    pension_after: float
    bonus_percentage: Optional[str] = None
    event_type: EventType = EventType.BONUS
    references: Optional[List[int]] = None

    def reconciles(self, tolerance: float = 1e-6) -> bool:
        """pension_after == pension_before + bonus_amount + min_uplift."""
        expected = self.pension_before + self.bonus_amount + self.min_uplift
        return abs(self.pension_after - expected) <= tolerance

    def with_references(self, references: List[int]) -> 'ProgressionStep':
        return replace(self, references=list(references))


@dataclass
class ProgressionSummary:
    """Initial values and totals reported alongside a timeline."""
    basic_pension_at_entitlement: float = 0.0
    variable_pension_at_entitlement: float = 0.0
    initial_normal_basic_pension: float = 0.0
    initial_injury_pension: float = 0.0
    initial_variable_pension: float = 0.0
    initial_special_bonuses: float = 0.0
    uplift_value: float = 0.0
    monthly_grant: float = 0.0
    minimum_pension_uplifts: List[MinimumUplift] = field(default_factory=list)
    exceptional_grants: List[ExceptionalGrant] = field(default_factory=list)


@dataclass
class ProgressionData:
    """A full pension timeline; empty ``steps`` means it could not be computed."""
    summary: ProgressionSummary = field(default_factory=ProgressionSummary)
    steps: List[ProgressionStep] = field(default_factory=list)

    @classmethod
    def empty(cls) -> 'ProgressionData':
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def step_on(self, target: date) -> Optional[ProgressionStep]:
        """Last step dated on or before ``target``."""
        for step in reversed(self.steps):
            if step.date <= target:
                return step
        return None

    def value_on(self, target: date) -> float:
        step = self.step_on(target)
        return step.pension_after if step else 0.0


@dataclass
class ReferenceProgression:
    """Timeline computed against one historical reference table."""
    name: str
    ref_number: int
    data: ProgressionData
    notes: List[str] = field(default_factory=list)


@dataclass
class AllProgressions:
    main: ProgressionData
    others: List[ReferenceProgression] = field(default_factory=list)

    def reference_named(self, name: str) -> Optional[ReferenceProgression]:
        for other in self.others:
            if other.name == name:
                return other
        return None


# =============================================================================
# SETTLEMENT RECORDS
# =============================================================================

@dataclass(frozen=True)
class LineItem:
    label: str
    value: float


@dataclass(frozen=True)
class InfoItem:
    """Label/value pair for the descriptive parts of a result."""
    label: str
    value: Union[str, float, int]


@dataclass
class SettlementSummary:
    entitlements: List[LineItem] = field(default_factory=list)
    deductions: List[LineItem] = field(default_factory=list)
    total_entitlements: float = 0.0
    total_deductions: float = 0.0
    net_payable: float = 0.0

    def totalize(self) -> 'SettlementSummary':
        """Recompute totals from the line items; net never goes below zero."""
        self.total_entitlements = sum(item.value for item in self.entitlements)
        self.total_deductions = sum(item.value for item in self.deductions)
        self.net_payable = max(0.0, self.total_entitlements - self.total_deductions)
        return self


@dataclass
class CurrentPensionBreakdown:
    """Monthly periodic entitlement as disbursed today."""
    current_pension: float
    monthly_grant: float
    exceptional_grant: float
    total_entitlement: float
    disbursement_fee: float
    net_payable: float


@dataclass
class ArrearsPeriodBreakdown:
    period: str
    percentage: float
    amount: float
    months: int


@dataclass
class MonthlyArrearsLine:
    """Undiscounted amounts for one arrears month (before the period percentage)."""
    month: str
    pension_value: float
    monthly_grant: float
    exceptional_grant: float
    total: float
    commission: float = 0.0
    pension_value_ref: Optional[ReferenceProgression] = None


@dataclass
class PeriodDetails:
    period: str
    percentage: float
    months: int = 0
    total: float = 0.0
    breakdown: List[MonthlyArrearsLine] = field(default_factory=list)


@dataclass
class GrantDetails:
    """How a death-related or severance grant was derived."""
    formula: str
    pension: float
    result: float
    percentage: Optional[float] = None
    pension_ref: Optional[ReferenceProgression] = None


@dataclass
class CalculationDetails:
    kind: str
    law_type: LawType
    dues_type: DuesType
    periods: List[PeriodDetails] = field(default_factory=list)
    funeral_expenses: Optional[GrantDetails] = None
    death_grant: Optional[GrantDetails] = None
    severance_grant: Optional[GrantDetails] = None


@dataclass
class CalculationResult:
    """Settlement output; built once per calculation and never mutated after."""
    pensioner_info: List[InfoItem] = field(default_factory=list)
    user_input_info: List[InfoItem] = field(default_factory=list)
    summary: SettlementSummary = field(default_factory=SettlementSummary)
    arrears_breakdown: Optional[List[ArrearsPeriodBreakdown]] = None
    current_pension_breakdown: Optional[CurrentPensionBreakdown] = None
    deduction_notes: List[str] = field(default_factory=list)
    deduction_warning: Optional[str] = None
    simple_result_text: Optional[str] = None
    is_error: bool = False
    details: Optional[CalculationDetails] = None
    progressions: Optional[AllProgressions] = None

    @classmethod
    def message(cls, text: str, is_error: bool = True) -> 'CalculationResult':
        return cls(simple_result_text=text, is_error=is_error)


@dataclass
class CompensationResult:
    """Additional compensation when the deceased left no beneficiaries."""
    age_years: int
    age_months: int
    age_days: int
    rounded_age: int
    coefficient: float
    gross_compensation: float
    compensation_fee: float
    net_compensation: float
    pension_at_death: float
    gross_funeral_expenses: float
    funeral_fee: float
    net_funeral_expenses: float
    total_net_payable: float
    pension_ref: Optional[ReferenceProgression] = None


# =============================================================================
# PYDANTIC INPUT MODELS
# =============================================================================

def _clamp_percentage(value: Any) -> float:
    return min(100.0, max(0.0, parse_amount(value)))


class ArrearsPeriod(BaseModel):
    """One arrears range with its entitlement percentage."""
    start_date: str = Field(default='', description="YYYY-MM")
    end_date: str = Field(default='', description="YYYY-MM")
    percentage: float = Field(default=0.0, description="Entitlement percentage 0-100")

    @validator('start_date', 'end_date', pre=True)
    def normalize_month(cls, v):
        return convert_arabic_numerals(v).strip() if v else ''

    @validator('percentage', pre=True)
    def clamp_percentage(cls, v):
        return _clamp_percentage(v)

    @property
    def is_complete(self) -> bool:
        return bool(self.start_date and self.end_date)


class DeductionEntry(BaseModel):
    active: bool = False
    amount: float = 0.0

    @validator('amount', pre=True)
    def parse_deduction_amount(cls, v):
        return max(0.0, parse_amount(v))


def _default_deductions() -> Dict[DeductionCategory, DeductionEntry]:
    return {category: DeductionEntry() for category in DeductionCategory}


class InsuranceDuesForm(BaseModel):
    """Calculation input as collected from the dues form."""
    law_type: LawType = LawType.LAW_79

    # Pensioner
    insurance_number: str = ''
    pensioner_name: str = ''
    date_of_birth: str = ''
    date_of_death: str = Field(default='', description="YYYY-MM-DD")
    pension_entitlement_date: str = Field(default='', description="YYYY-MM")

    # Pension components
    normal_basic_pension: float = 0.0
    injury_basic_pension: float = 0.0
    variable_pension: float = 0.0
    special_bonuses: float = 0.0
    total_basic_bonuses: float = 0.0

    dues_type: DuesType = DuesType.PERIODIC

    # Arrears
    multiple_periods: bool = False
    arrears_start_date: str = ''
    arrears_end_date: str = ''
    entitlement_percentage: float = 100.0
    periods: List[ArrearsPeriod] = Field(default_factory=list)

    # Deductions
    has_deductions: bool = False
    deductions: Dict[DeductionCategory, DeductionEntry] = Field(default_factory=_default_deductions)

    # Severance
    severance_date: str = ''
    severance_percentage: float = 0.0

    no_beneficiaries: bool = False
    average_settlement_wage: float = 0.0

    @validator('normal_basic_pension', 'injury_basic_pension', 'variable_pension',
               'special_bonuses', 'total_basic_bonuses', 'average_settlement_wage', pre=True)
    def parse_component(cls, v):
        return parse_amount(v)

    @validator('entitlement_percentage', 'severance_percentage', pre=True)
    def clamp_percentage(cls, v):
        return _clamp_percentage(v)

    @validator('date_of_birth', 'date_of_death', 'pension_entitlement_date',
               'arrears_start_date', 'arrears_end_date', 'severance_date', pre=True)
    def normalize_date_text(cls, v):
        if isinstance(v, date):
            return v.isoformat()
        return convert_arabic_numerals(v).strip() if v else ''

    @validator('deductions', pre=True)
    def fill_deductions(cls, v):
        merged = {category.value: DeductionEntry() for category in DeductionCategory}
        for key, entry in (v or {}).items():
            merged[key.value if isinstance(key, DeductionCategory) else key] = entry
        return merged

    # -------------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------------

    @property
    def entitlement_date(self) -> Optional[date]:
        return parse_year_month(self.pension_entitlement_date)

    @property
    def death_date(self) -> Optional[date]:
        return parse_date(self.date_of_death)

    @property
    def basic_channel(self) -> float:
        return self.normal_basic_pension + self.injury_basic_pension

    @property
    def variable_channel(self) -> float:
        return self.variable_pension + self.special_bonuses

    @property
    def has_variable_pension(self) -> bool:
        return self.variable_channel > 0

    def arrears_periods(self) -> List[ArrearsPeriod]:
        """Periods to settle: the list in multi-period mode, else the single range."""
        if self.multiple_periods:
            return list(self.periods)
        return [ArrearsPeriod(start_date=self.arrears_start_date,
                              end_date=self.arrears_end_date,
                              percentage=self.entitlement_percentage)]

    def active_deductions(self) -> List[LineItem]:
        if not self.has_deductions:
            return []
        items = []
        for category in DeductionCategory:
            entry = self.deductions.get(category)
            if entry and entry.active and entry.amount > 0:
                items.append(LineItem(category.label, entry.amount))
        return items
