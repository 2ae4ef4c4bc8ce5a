"""
insurance_dues/commission.py - Disbursement Commission Rules

Paying out money through the post office costs the beneficiary a fee.
The rule depends on when the money is due:

- From 2020-01-01: 0.2% of the amount, rounded so the beneficiary receives
  a whole number of pounds (optionally capped at 20 plus the piasters).
- Before 2020: a flat fee per disbursement, keyed by law.

Periodic pension fees use their own ``floor(total * 0.998)`` net formula.
It differs from ``calculate_commission`` and is kept separate.

Author: Pension Dues Project
License: MIT
"""

import numpy as np
from datetime import date
from typing import Optional, Tuple
import logging

from .models import LawType
from .rules import LAW148_START

logger = logging.getLogger(__name__)


LAW_79_VARIABLE_FEE_START = date(2014, 2, 1)


def calculate_commission(amount: float, rate: float, cap: Optional[float] = None) -> float:
    """
    Fee that leaves the beneficiary a whole-pound net amount.

    Args:
        amount: Gross amount to disburse
        rate: Proportional rate (0.002 = 0.2%)
        cap: Optional cap on the fee, excluding the piasters of ``amount``

    Returns:
        ``amount - floor(amount - amount * rate)``, bounded by the cap
    """
    if amount <= 0:
        return 0.0
    fee = amount - float(np.floor(amount - amount * rate))
    if cap is not None:
        max_fee = cap + (amount - float(np.floor(amount)))
        fee = min(fee, max_fee)
    return fee


def periodic_fee(total: float, net_factor: float = 0.998) -> Tuple[float, float]:
    """(fee, net) for a monthly periodic payment under Laws 79/108/112."""
    net = float(np.floor(total * net_factor))
    return total - net, net


def legacy_rounding_fee(amount: float) -> float:
    """Pre-2020 compensation fee: one pound plus the piasters, if any."""
    if amount <= 0:
        return 0.0
    fee = 1 + (amount - float(np.floor(amount)))
    return fee if fee > 1 else 0.0


def arrears_month_commission(law: LawType, month: date, amount: float,
                             has_variable_pension: bool = False,
                             rate: float = 0.002) -> float:
    """
    Commission charged on one month of disbursed arrears.

    From 2020 it is proportional and uncapped. Before 2020 it is one pound,
    except Law 79 from February 2014 which charges one pound per component
    (basic and variable).
    """
    if amount <= 0:
        return 0.0
    if month >= LAW148_START:
        return calculate_commission(amount, rate)
    if law == LawType.LAW_79:
        if month >= LAW_79_VARIABLE_FEE_START and has_variable_pension:
            return 2.0
        return 1.0
    if law in (LawType.LAW_108, LawType.LAW_112, LawType.SADAT):
        return 1.0
    return legacy_rounding_fee(amount)


def grant_commission(amount: float, post_2020: bool, rate: float = 0.002,
                     cap: float = 20.0) -> float:
    """Commission on a lump-sum grant (funeral, death or severance)."""
    if amount <= 0:
        return 0.0
    if post_2020:
        return calculate_commission(amount, rate, cap)
    return 1.0
