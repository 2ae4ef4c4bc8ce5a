"""
Insurance Dues Engine

Egyptian government pension dues: pension progression timelines under
Laws 79/1975, 108/1976, 112/1980 (and the Sadat pension) and 148/2019,
point-in-time pension queries, inheritance and beneficiary arrears,
funeral expenses, death and severance grants, and the additional
compensation paid when no beneficiary exists.

Version: 1.0.0

Author: Pension Dues Project
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Pension Dues Project"

from .engine import (
    DuesEngine,
    create_engine,
    load_tables
)

from .config import (
    DuesConfig,
    load_config
)

from .models import (
    # Enums
    LawType,
    DuesType,
    DeductionCategory,
    EventType,

    # Exceptions
    DuesCalculationError,
    DuesValidationError,
    LawScopeError,
    TableUnavailableError,

    # Progression records
    ExceptionalGrant,
    ProgressionStep,
    ProgressionSummary,
    ProgressionData,
    ReferenceProgression,
    AllProgressions,

    # Settlement records
    LineItem,
    InfoItem,
    SettlementSummary,
    CurrentPensionBreakdown,
    ArrearsPeriodBreakdown,
    MonthlyArrearsLine,
    CalculationResult,
    CompensationResult,

    # Input
    ArrearsPeriod,
    DeductionEntry,
    InsuranceDuesForm,
)

from .tables import (
    PensionTable,
    TableSet,
    parse_bonus_rows,
    parse_minimum_rows,
    resolve_bonus_table_name,
    resolve_minimum_pension
)

from .progression import (
    ProgressionEngine,
    replay_events,
    calculate_law79,
    calculate_law108,
    calculate_law112,
    calculate_law148,
    compute_progression
)

from .query import (
    PensionQueryResult,
    pension_at,
    current_pension_breakdown,
    query_pension
)

from .commission import (
    calculate_commission,
    periodic_fee,
    arrears_month_commission,
    grant_commission,
    legacy_rounding_fee
)

from .settlement import (
    validate_periods,
    collect_periods,
    accumulate_arrears,
    death_related_grants,
    apply_deductions,
    settle_arrears
)

from .severance import (
    settle_severance,
    calculate_compensation
)

from .reporting import (
    pensioner_info,
    user_input_info,
    steps_to_dataframe,
    result_to_dataframe,
    monthly_breakdown_to_dataframe,
    DuesReportGenerator,
    generate_dues_report
)

__all__ = [
    # Main engine
    "DuesEngine",
    "create_engine",
    "load_tables",
    "DuesConfig",
    "load_config",

    # Enums
    "LawType",
    "DuesType",
    "DeductionCategory",
    "EventType",

    # Exceptions
    "DuesCalculationError",
    "DuesValidationError",
    "LawScopeError",
    "TableUnavailableError",

    # Records
    "ExceptionalGrant",
    "ProgressionStep",
    "ProgressionSummary",
    "ProgressionData",
    "ReferenceProgression",
    "AllProgressions",
    "LineItem",
    "InfoItem",
    "SettlementSummary",
    "CurrentPensionBreakdown",
    "ArrearsPeriodBreakdown",
    "MonthlyArrearsLine",
    "CalculationResult",
    "CompensationResult",
    "ArrearsPeriod",
    "DeductionEntry",
    "InsuranceDuesForm",

    # Tables
    "PensionTable",
    "TableSet",
    "parse_bonus_rows",
    "parse_minimum_rows",
    "resolve_bonus_table_name",
    "resolve_minimum_pension",

    # Progressions
    "ProgressionEngine",
    "replay_events",
    "calculate_law79",
    "calculate_law108",
    "calculate_law112",
    "calculate_law148",
    "compute_progression",

    # Queries
    "PensionQueryResult",
    "pension_at",
    "current_pension_breakdown",
    "query_pension",

    # Commissions
    "calculate_commission",
    "periodic_fee",
    "arrears_month_commission",
    "grant_commission",
    "legacy_rounding_fee",

    # Settlement
    "validate_periods",
    "collect_periods",
    "accumulate_arrears",
    "death_related_grants",
    "apply_deductions",
    "settle_arrears",
    "settle_severance",
    "calculate_compensation",

    # Reporting
    "pensioner_info",
    "user_input_info",
    "steps_to_dataframe",
    "result_to_dataframe",
    "monthly_breakdown_to_dataframe",
    "DuesReportGenerator",
    "generate_dues_report",
]
