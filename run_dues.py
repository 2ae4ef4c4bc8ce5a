#!/usr/bin/env python3
"""
run_dues.py - Insurance Dues Calculation Runner

Runs one dues calculation from a JSON form and the authority tables:
1. Load the tables (JSON or Excel workbook) and the engine configuration
2. Validate the form against its law
3. Compute the periodic pension, arrears, severance or compensation
4. Print the settlement and optionally write an Excel report

Usage:
    python run_dues.py --form form.json --tables tables.json

    python run_dues.py \\
        --form form.json \\
        --tables tables.xlsx \\
        --as-of 2024-06-30 \\
        --excel dues_report.xlsx \\
        --progression

Exits with status 1 when the calculation is rejected.

Author: Pension Dues Project
"""

import argparse
import json
import sys
import logging
from pathlib import Path
from typing import Any, Dict, Optional

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def load_form(form_path: str) -> Dict[str, Any]:
    with open(form_path, encoding='utf-8') as f:
        return json.load(f)


def print_result(result) -> None:
    """Print a settlement or compensation result to stdout."""
    from insurance_dues import CompensationResult
    from insurance_dues.reporting import compensation_to_dataframe, result_to_dataframe

    print("=" * 70)
    print("INSURANCE DUES")
    print("=" * 70)

    if isinstance(result, CompensationResult):
        print(compensation_to_dataframe(result).to_string(index=False))
        return

    for item in result.pensioner_info + result.user_input_info:
        print(f"{item.label}: {item.value}")
    print()

    if result.simple_result_text:
        print(result.simple_result_text)
        return

    print(result_to_dataframe(result).to_string(index=False))

    for note in result.deduction_notes:
        print(f"  {note}")
    if result.deduction_warning:
        print(f"  {result.deduction_warning}")

    breakdown = result.current_pension_breakdown
    if breakdown is not None:
        print()
        print("Current periodic pension:")
        print(f"  Pension:           {breakdown.current_pension:,.2f}")
        print(f"  Monthly grant:     {breakdown.monthly_grant:,.2f}")
        print(f"  Exceptional grant: {breakdown.exceptional_grant:,.2f}")
        print(f"  Total:             {breakdown.total_entitlement:,.2f}")
        print(f"  Fee:               {breakdown.disbursement_fee:,.2f}")
        print(f"  Net payable:       {breakdown.net_payable:,.2f}")


def run_dues(
    form_path: str,
    tables_path: str,
    config_path: Optional[str] = None,
    as_of: Optional[str] = None,
    excel_path: Optional[str] = None,
    show_progression: bool = False,
) -> int:
    """
    Run one dues calculation.

    Args:
        form_path: JSON file with the form fields
        tables_path: Authority tables (.json or .xlsx)
        config_path: Optional JSON engine configuration
        as_of: Date for current-pension figures (YYYY-MM-DD)
        excel_path: Optional Excel report destination
        show_progression: Print the main progression timeline

    Returns:
        Process exit code
    """
    from insurance_dues import (
        CalculationResult,
        DuesCalculationError,
        InsuranceDuesForm,
        create_engine,
        generate_dues_report,
        load_config,
        steps_to_dataframe,
    )
    from pydantic import ValidationError

    config = load_config(config_path, overrides={'as_of_date': as_of})
    engine = create_engine(config, tables_path)

    try:
        form = InsuranceDuesForm(**load_form(form_path))
        result = engine.calculate(form)
    except ValidationError as e:
        print(f"خطأ في الحساب: {e}")
        return 1
    except DuesCalculationError as e:
        logger.error(f"Calculation rejected: {e}")
        print(f"خطأ في الحساب: {e}")
        return 1

    print_result(result)

    try:
        if show_progression:
            progressions = engine.progression_for(form)
            print()
            print(steps_to_dataframe(progressions.main).to_string(index=False))

        if excel_path and isinstance(result, CalculationResult):
            progression = None if result.progressions else engine.progression_for(form).main
            generate_dues_report(result, excel_path, progression)
    except DuesCalculationError as e:
        logger.error(f"Progression unavailable: {e}")
        return 1

    return 1 if getattr(result, 'is_error', False) else 0


def main():
    parser = argparse.ArgumentParser(
        description='Run an insurance dues calculation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_dues.py --form form.json --tables tables.json

  python run_dues.py \\
      --form form.json \\
      --tables tables.xlsx \\
      --as-of 2024-06-30 \\
      --excel dues_report.xlsx \\
      --progression
"""
    )

    parser.add_argument('--form', type=str, required=True, help='Dues form (JSON)')
    parser.add_argument('--tables', type=str, required=True, help='Authority tables (JSON or Excel)')
    parser.add_argument('--config', type=str, help='Engine configuration (JSON)')
    parser.add_argument('--as-of', type=str, help='Date for current pension figures (YYYY-MM-DD)')
    parser.add_argument('--excel', type=str, help='Output Excel report')
    parser.add_argument('--progression', action='store_true', help='Print the pension progression')

    args = parser.parse_args()

    for path in (args.form, args.tables):
        if not Path(path).exists():
            print(f"ERROR: File not found: {path}")
            sys.exit(1)

    sys.exit(run_dues(
        form_path=args.form,
        tables_path=args.tables,
        config_path=args.config,
        as_of=args.as_of,
        excel_path=args.excel,
        show_progression=args.progression,
    ))


if __name__ == '__main__':
    main()
