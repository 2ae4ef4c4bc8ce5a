"""
insurance_dues/query.py - Point-in-Time Pension Query

Answers "what was this pension worth on date X?" by sampling the right
timeline: Laws 79/108 use the bonus table assigned to X, the other laws
their single timeline. Exceptional grants are added only on request, since
arrears arithmetic needs the raw pension and disbursement totals need the
all-in figure.

Author: Pension Dues Project
License: MIT
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
import logging

from .commission import calculate_commission, periodic_fee
from .config import DuesConfig
from .models import AllProgressions, CurrentPensionBreakdown, InsuranceDuesForm, ReferenceProgression
from .progression import ProgressionEngine, uses_dated_tables
from .rules import exceptional_grants_in_force, monthly_grant_for
from .tables import resolve_bonus_table_name

logger = logging.getLogger(__name__)


@dataclass
class PensionQueryResult:
    """Pension components in force on a queried date."""
    target: date
    pension: float
    monthly_grant: float
    exceptional_grant: float
    total: float
    pension_value_ref: Optional[ReferenceProgression] = None


def pension_at(engine: ProgressionEngine, form: InsuranceDuesForm, target: date,
               include_exceptional_grants: bool = True) -> float:
    """
    Pension value effective on ``target``.

    Args:
        engine: Progression engine holding the tables
        form: Pension inputs (law, entitlement, components)
        target: Date to sample
        include_exceptional_grants: Add grants effective in (entitlement, target]

    Returns:
        ``pension_after`` of the last step dated on or before ``target``
        (0 when there is none or the timeline is unavailable)
    """
    entitlement = form.entitlement_date
    if entitlement is None:
        return 0.0

    timeline = engine.progression_for_date(form, target)
    if timeline.is_empty:
        return 0.0

    value = timeline.value_on(target)
    if include_exceptional_grants:
        value += exceptional_grants_in_force(timeline.summary.exceptional_grants, entitlement, target)
    return value


def reference_for_date(engine: ProgressionEngine, form: InsuranceDuesForm,
                       progressions: Optional[AllProgressions],
                       target: date) -> Optional[ReferenceProgression]:
    """Reference timeline backing a pre-May-2008 Law 79/108 value on ``target``."""
    entitlement = form.entitlement_date
    if progressions is None or entitlement is None or not uses_dated_tables(form.law_type):
        return None
    if entitlement >= engine.reference_cutoff:
        return None
    return progressions.reference_named(resolve_bonus_table_name(target, engine.tables))


def current_pension_breakdown(engine: ProgressionEngine, form: InsuranceDuesForm,
                              config: DuesConfig, percentage: float = 100.0,
                              capped_commission: bool = False) -> Optional[CurrentPensionBreakdown]:
    """
    Monthly periodic entitlement as of the configured date.

    The pension, monthly grant and the exceptional grants in force on that
    date are scaled by ``percentage``. With ``capped_commission`` the fee
    follows the lump-sum rule (Law 148 periodic payments); otherwise net is
    ``floor(total * periodic_net_factor)``.
    """
    as_of = config.effective_as_of()
    timeline = engine.progression_for_date(form, as_of)
    if timeline.is_empty:
        return None

    factor = percentage / 100.0
    pension = pension_at(engine, form, as_of, include_exceptional_grants=False) * factor
    monthly_grant = (timeline.summary.monthly_grant or config.monthly_grant) * factor
    exceptional = exceptional_grants_in_force(
        timeline.summary.exceptional_grants, form.entitlement_date, as_of) * factor
    total = pension + monthly_grant + exceptional

    if capped_commission:
        fee = calculate_commission(total, config.commission_rate, config.commission_cap)
        net = total - fee
    else:
        fee, net = periodic_fee(total, config.periodic_net_factor)

    return CurrentPensionBreakdown(
        current_pension=pension,
        monthly_grant=monthly_grant,
        exceptional_grant=exceptional,
        total_entitlement=total,
        disbursement_fee=fee,
        net_payable=net,
    )


def query_pension(engine: ProgressionEngine, form: InsuranceDuesForm, target: date,
                  config: DuesConfig,
                  progressions: Optional[AllProgressions] = None) -> PensionQueryResult:
    """All components of the pension on ``target`` plus the backing reference timeline."""
    entitlement = form.entitlement_date
    pension = pension_at(engine, form, target, include_exceptional_grants=False)
    timeline = engine.progression_for_date(form, target)
    exceptional = 0.0
    if entitlement is not None and not timeline.is_empty:
        exceptional = exceptional_grants_in_force(timeline.summary.exceptional_grants, entitlement, target)
    grant = monthly_grant_for(target, config.monthly_grant) if pension > 0 else 0.0

    logger.debug(f"Queried {form.law_type.value} pension on {target}: {pension:.2f}")
    return PensionQueryResult(
        target=target,
        pension=pension,
        monthly_grant=grant,
        exceptional_grant=exceptional,
        total=pension + grant + exceptional,
        pension_value_ref=reference_for_date(engine, form, progressions, target),
    )
