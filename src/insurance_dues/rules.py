"""
insurance_dues/rules.py - Statutory Constants and Small Pure Rules

Historical facts of the Egyptian pension laws that the progression and
settlement code depend on: uplift bands, the Law 112 fixed-value tracks,
the Law 30/1992 addition, bonus exception windows, exceptional grants,
funeral/death grant formulas and the compensation coefficient table.

These are dated administrative decisions, not patterns. Each one is kept
exactly as issued.

Author: Pension Dues Project
License: MIT
"""

from datetime import date
from typing import Dict, List, Optional, Tuple
import logging

from .models import ExceptionalGrant, LawType

logger = logging.getLogger(__name__)


# =============================================================================
# KEY DATES
# =============================================================================

MONTHLY_GRANT_START = date(1999, 1, 1)
LAW30_START = date(1992, 7, 1)
LAW148_START = date(2020, 1, 1)
UPLIFT_START = date(2010, 7, 1)
APRIL_2011 = date(2011, 4, 1)
JULY_2011 = date(2011, 7, 1)
JANUARY_2012 = date(2012, 1, 1)
FLOOR_ENFORCEMENT_START = date(2016, 7, 1)
REFERENCE_CUTOFF = date(2008, 5, 1)

LAW_112_BASE_PENSION = 70.0
LAW_112_APRIL_2011_GRANT = 17.0
LAW_112_JANUARY_2012_ADDITION = 3.40
LAW_112_SUPPLEMENT_TARGET = 134.0
LAW_148_UPLIFT_CONSTANT = 450.0
UPLIFT_REDUCTION_RATE = 0.33


# =============================================================================
# UPLIFT ("مادة الرفع")
# =============================================================================

class UpliftSchedule:
    """
    Entitlement-date bands for the uplift.

    Laws 79/108 use ``constant - pension * 0.33`` (floored at 0); Law 112
    and Sadat add a flat amount. Bands are (exclusive upper bound,
    formula constant, flat amount); the last band is open-ended.
    """

    BANDS: List[Tuple[Optional[date], float, float]] = [
        (date(2010, 7, 1), 123.60, 43.60),
        (date(2011, 7, 1), 123.60, 43.60),
        (date(2012, 7, 1), 144.00, 64.00),
        (date(2013, 7, 1), 291.00, 211.00),
        (date(2014, 1, 1), 300.00, 220.00),
        (None, 450.00, 370.00),
    ]

    @classmethod
    def band(cls, entitlement: date) -> Tuple[float, float]:
        for upper, constant, flat in cls.BANDS[:-1]:
            if entitlement < upper:
                return constant, flat
        _, constant, flat = cls.BANDS[-1]
        return constant, flat


def uplift_constant(entitlement: date) -> float:
    """Formula constant used by Laws 79/108 for an entitlement date."""
    return UpliftSchedule.band(entitlement)[0]


def formula_uplift(constant: float, pension: float) -> float:
    return max(0.0, constant - pension * UPLIFT_REDUCTION_RATE)


def flat_uplift_112(entitlement: date) -> Tuple[float, date]:
    """
    Flat Law 112/Sadat uplift and the date it takes effect.

    Entitlements before July 2010 receive it on 2010-07-01, later ones on
    the entitlement date itself.
    """
    amount = UpliftSchedule.band(entitlement)[1]
    effective = UPLIFT_START if entitlement < UPLIFT_START else entitlement
    return amount, effective


# =============================================================================
# LAW 30 OF 1992
# =============================================================================

def law30_addition(entitlement: date, normal_basic_pension: float) -> Optional[float]:
    """25% of the normal basic pension, bounded to [20, 35], for 1992-07..2019-12."""
    if not (LAW30_START <= entitlement < LAW148_START):
        return None
    return max(20.0, min(normal_basic_pension * 0.25, 35.0))


# =============================================================================
# LAW 112 / SADAT FIXED-VALUE TRACK
# =============================================================================

class FixedPensionSchedule:
    """Fixed pension values in force before July 2010, per sub-variant."""

    LAW_112: List[Tuple[date, float]] = [
        (date(1980, 7, 1), 10.00), (date(1981, 7, 1), 12.00),
        (date(1991, 6, 1), 17.00), (date(1992, 7, 1), 21.00),
        (date(1993, 7, 1), 25.00), (date(1994, 7, 1), 30.00),
        (date(1995, 7, 1), 36.00), (date(1996, 7, 1), 45.00),
        (date(1997, 7, 1), 57.00), (date(1998, 7, 1), 63.00),
        (date(1999, 1, 1), 63.00), (date(1999, 7, 1), 70.00),
    ]

    SADAT: List[Tuple[date, float]] = [
        (date(1980, 7, 1), 10.00), (date(1981, 7, 1), 10.00),
        (date(1991, 6, 1), 15.00), (date(1992, 7, 1), 18.00),
        (date(1993, 7, 1), 20.00), (date(1994, 7, 1), 24.00),
        (date(1995, 7, 1), 29.00), (date(1996, 7, 1), 37.00),
        (date(1997, 7, 1), 47.00), (date(1998, 7, 1), 52.00),
        (date(1999, 1, 1), 52.00), (date(1999, 7, 1), 58.00),
    ]

    @classmethod
    def get_table(cls, law: LawType) -> List[Tuple[date, float]]:
        return cls.SADAT if law == LawType.SADAT else cls.LAW_112

    @classmethod
    def value_at(cls, law: LawType, on: date) -> float:
        """Last fixed value effective on or before ``on`` (0 before the first row)."""
        value = 0.0
        for effective, amount in cls.get_table(law):
            if effective <= on:
                value = amount
        return value


# =============================================================================
# BONUS EXCEPTION WINDOWS
# =============================================================================

# (bonus year, bonus month, first entitlement month, last entitlement month)
BONUS_EXCEPTION_WINDOWS: List[Tuple[int, int, int, int]] = [
    (2022, 4, 4, 6),
    (2023, 4, 4, 6),
    (2024, 3, 3, 6),
]


def is_bonus_exception(event_date: date, entitlement: date) -> bool:
    """
    True when a bonus dated before entitlement still applies.

    Only the April 2022, April 2023 and March 2024 bonuses qualify, and only
    for entitlements in the same year up to June.
    """
    for year, month, first, last in BONUS_EXCEPTION_WINDOWS:
        if event_date.year == year and event_date.month == month:
            return entitlement.year == year and first <= entitlement.month <= last
    return False


# =============================================================================
# GRANTS
# =============================================================================

EXCEPTIONAL_GRANTS: List[ExceptionalGrant] = [
    ExceptionalGrant(date(2022, 11, 1), 300.0),
    ExceptionalGrant(date(2023, 10, 1), 300.0),
]


def applicable_exceptional_grants(entitlement: date) -> List[ExceptionalGrant]:
    """Grants whose effective month is after the entitlement date."""
    return [g for g in EXCEPTIONAL_GRANTS if entitlement < g.effective]


def exceptional_grants_in_force(grants: List[ExceptionalGrant], entitlement: date,
                                target: date) -> float:
    """Sum of grants with effective month in (entitlement, target]."""
    return sum(g.amount for g in grants if entitlement < g.effective <= target)


def monthly_grant_for(month: date, amount: float = 10.0) -> float:
    return amount if month >= MONTHLY_GRANT_START else 0.0


# =============================================================================
# BONUS CLAMP
# =============================================================================

def clamp_bonus(base: float, percentage: float, minimum: float = 0.0,
                maximum: Optional[float] = None) -> float:
    """Percentage bonus bounded by the per-event minimum and maximum."""
    amount = base * percentage / 100.0
    if minimum:
        amount = max(amount, minimum)
    if maximum:
        amount = min(amount, maximum)
    return amount


# =============================================================================
# DEATH-RELATED GRANTS
# =============================================================================

def is_law_112_family(law: LawType) -> bool:
    return law in (LawType.LAW_112, LawType.SADAT)


def funeral_expenses(law: LawType, death_date: date, pension_at_death: float) -> Tuple[float, str]:
    """Funeral expenses and the formula wording shown to the user."""
    if death_date >= LAW148_START:
        return pension_at_death * 3, "معاش شهر الوفاة × 3"
    if is_law_112_family(law):
        return 20.0, "قيمة ثابتة قدرها 20 جنيه قبل 2020/01/01"
    return max(pension_at_death * 2, 200.0), "الأكبر من (معاش شهر الوفاة × 2) أو 200 جنيه"


def death_grant(law: LawType, death_date: date, pension_at_death: float) -> Tuple[float, Optional[str]]:
    """Death grant; Law 112/Sadat deaths before 2020 carry none."""
    if death_date >= LAW148_START:
        return pension_at_death * 3, "معاش شهر الوفاة × 3"
    if is_law_112_family(law):
        return 0.0, None
    return max(pension_at_death * 3, 200.0), "الأكبر من (معاش شهر الوفاة × 3) أو 200 جنيه"


# =============================================================================
# ADDITIONAL COMPENSATION
# =============================================================================

class CompensationCoefficients:
    """Multiplier of twelve months' settlement wage, by rounded age at death."""

    COEFFICIENTS: Dict[int, float] = {
        25: 2.67, 26: 2.60, 27: 2.53, 28: 2.47, 29: 2.40, 30: 2.33,
        31: 2.27, 32: 2.20, 33: 2.13, 34: 2.07, 35: 2.00, 36: 1.93,
        37: 1.87, 38: 1.80, 39: 1.73, 40: 1.67, 41: 1.60, 42: 1.53,
        43: 1.47, 44: 1.40, 45: 1.33, 46: 1.27, 47: 1.20, 48: 1.13,
        49: 1.07, 50: 1.00, 51: 0.93, 52: 0.87, 53: 0.80, 54: 0.73,
        55: 0.67, 56: 0.60, 57: 0.53, 58: 0.47, 59: 0.40, 60: 0.33,
        61: 0.25, 62: 0.25, 63: 0.20,
    }

    @classmethod
    def get_coefficient(cls, age: int) -> float:
        if age < 25:
            return cls.COEFFICIENTS[25]
        if age > 63:
            return cls.COEFFICIENTS[63]
        return cls.COEFFICIENTS.get(age, 0.0)


def compensation_coefficient(age: int) -> float:
    return CompensationCoefficients.get_coefficient(age)
