"""
insurance_dues/config.py - Engine Configuration

The engine's tunables in one pydantic model: authority table names, the
monthly grant, commission rates and the as-of date used for "current"
pension figures. Statutory history (uplift bands, fixed tables, grant
dates) is not configurable and lives in ``rules.py``.

Author: Pension Dues Project
License: MIT
"""

from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json
import logging

from pydantic import BaseModel, Field, validator

from .dates import parse_date
from .rules import REFERENCE_CUTOFF
from .tables import ASSIGNMENT_TABLE, CURRENT_BONUS_TABLE, MINIMUM_PENSION_TABLE

logger = logging.getLogger(__name__)


class DuesConfig(BaseModel):
    """Complete engine configuration."""

    # Authority table names
    minimum_pension_table: str = MINIMUM_PENSION_TABLE
    current_bonus_table: str = CURRENT_BONUS_TABLE
    assignment_table: str = ASSIGNMENT_TABLE

    # Amounts and rates
    monthly_grant: float = Field(default=10.0, ge=0, description="Monthly grant from 1999-01")
    commission_rate: float = Field(default=0.002, ge=0, le=1, description="Post-2020 disbursement rate")
    commission_cap: float = Field(default=20.0, ge=0, description="Cap on lump-sum commissions")
    periodic_net_factor: float = Field(default=0.998, gt=0, le=1,
                                       description="Net share of a periodic payment (floored)")
    severance_percentage_cap: float = Field(default=66.67, gt=0, le=100)

    # Dates
    as_of_date: Optional[date] = Field(default=None, description="Date for current figures (None = today)")
    reference_cutoff: date = REFERENCE_CUTOFF

    max_arrears_periods: int = Field(default=5, ge=1)

    @validator('as_of_date', 'reference_cutoff', pre=True)
    def parse_config_date(cls, v):
        if v is None or isinstance(v, date):
            return v
        parsed = parse_date(str(v))
        if parsed is None:
            raise ValueError(f"Invalid date: {v}")
        return parsed

    def effective_as_of(self) -> date:
        return self.as_of_date or date.today()


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> DuesConfig:
    """Load a JSON config file (optional) and apply overrides on top."""
    values: Dict[str, Any] = {}
    if path:
        path = Path(path)
        with open(path, encoding='utf-8') as f:
            values.update(json.load(f))
        logger.info(f"Loaded configuration from {path.name}")
    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})
    return DuesConfig(**values)
