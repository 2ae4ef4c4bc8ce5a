"""
insurance_dues/reporting.py - Presentation Mapping and Excel Reporting

Turns engine output into something a clerk can read:
1. Label/value lists for the pensioner and the user's inputs
2. pandas DataFrames for progression steps, settlement lines and
   month-by-month arrears detail
3. An openpyxl workbook (Summary, Progression, Arrears, References)

Nothing here computes an amount.

Author: Pension Dues Project
License: MIT
"""

import pandas as pd
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils.dataframe import dataframe_to_rows

from .dates import format_for_display
from .models import (
    AllProgressions,
    CalculationDetails,
    CalculationResult,
    CompensationResult,
    InfoItem,
    InsuranceDuesForm,
    LawType,
    ProgressionData,
)

logger = logging.getLogger(__name__)


LAW_LABELS: Dict[LawType, str] = {
    LawType.LAW_79: 'القانون 79 لسنة 1975',
    LawType.LAW_108: 'القانون 108 لسنة 1976',
    LawType.LAW_112: 'القانون 112 لسنة 1980',
    LawType.LAW_148: 'القانون 148 لسنة 2019',
    LawType.SADAT: 'القانون 112 لسنة 1980 (معاش السادات)',
}


# =============================================================================
# LABEL/VALUE MAPPING
# =============================================================================

def pensioner_info(form: InsuranceDuesForm, include_death: bool = False) -> List[InfoItem]:
    """Identity block shown above every result."""
    items = [
        InfoItem('الرقم التأميني', form.insurance_number or '-'),
        InfoItem('اسم صاحب المعاش', form.pensioner_name or '-'),
        InfoItem('القانون', LAW_LABELS[form.law_type]),
    ]
    if include_death:
        items.append(InfoItem('تاريخ الوفاة', format_for_display(form.date_of_death)))
    items.append(InfoItem('تاريخ الاستحقاق', format_for_display(form.pension_entitlement_date)))
    return items


def user_input_info(pairs: Iterable[Tuple[str, Any]]) -> List[InfoItem]:
    """Label/value pairs echoing the inputs a result was computed from; None values are dropped."""
    return [InfoItem(label, value) for label, value in pairs if value is not None]


# =============================================================================
# DATAFRAMES
# =============================================================================

STEP_COLUMNS = ['Date', 'Description', 'Pension Before', 'Bonus %', 'Bonus Amount',
                'Min Uplift', 'Pension After', 'References']


def steps_to_dataframe(data: ProgressionData) -> pd.DataFrame:
    """One row per progression step, in timeline order."""
    rows = []
    for step in data.steps:
        rows.append({
            'Date': step.date,
            'Description': step.description,
            'Pension Before': step.pension_before,
            'Bonus %': step.bonus_percentage or '',
            'Bonus Amount': step.bonus_amount,
            'Min Uplift': step.min_uplift,
            'Pension After': step.pension_after,
            'References': ', '.join(str(r) for r in step.references) if step.references else '',
        })
    return pd.DataFrame(rows, columns=STEP_COLUMNS)


def result_to_dataframe(result: CalculationResult) -> pd.DataFrame:
    """Entitlement and deduction lines followed by the three totals."""
    summary = result.summary
    rows = [{'Section': 'المستحقات', 'Item': item.label, 'Amount': item.value}
            for item in summary.entitlements]
    rows += [{'Section': 'الخصومات', 'Item': item.label, 'Amount': item.value}
             for item in summary.deductions]
    rows += [
        {'Section': 'الإجمالي', 'Item': 'إجمالي المستحقات', 'Amount': summary.total_entitlements},
        {'Section': 'الإجمالي', 'Item': 'إجمالي الخصومات', 'Amount': summary.total_deductions},
        {'Section': 'الإجمالي', 'Item': 'صافي المستحق', 'Amount': summary.net_payable},
    ]
    return pd.DataFrame(rows, columns=['Section', 'Item', 'Amount'])


def monthly_breakdown_to_dataframe(details: Optional[CalculationDetails]) -> pd.DataFrame:
    """
    Month-by-month arrears lines across all periods.

    ``Disbursed`` is the month total scaled by the period percentage, the
    amount the commission was charged on.
    """
    columns = ['Period', 'Month', 'Pension', 'Monthly Grant', 'Exceptional Grant',
               'Total', 'Percentage', 'Disbursed', 'Commission', 'Reference']
    rows = []
    for period in (details.periods if details else []):
        for line in period.breakdown:
            rows.append({
                'Period': period.period,
                'Month': line.month,
                'Pension': line.pension_value,
                'Monthly Grant': line.monthly_grant,
                'Exceptional Grant': line.exceptional_grant,
                'Total': line.total,
                'Percentage': period.percentage,
                'Disbursed': line.total * period.percentage / 100.0,
                'Commission': line.commission,
                'Reference': line.pension_value_ref.ref_number if line.pension_value_ref else None,
            })
    return pd.DataFrame(rows, columns=columns)


def compensation_to_dataframe(result: CompensationResult) -> pd.DataFrame:
    rows = [
        ('السن عند الوفاة', f"{result.age_years} سنة و {result.age_months} شهر و {result.age_days} يوم"),
        ('السن المقرب', result.rounded_age),
        ('معامل التعويض', result.coefficient),
        ('التعويض الإضافي', result.gross_compensation),
        ('عمولة صرف التعويض', result.compensation_fee),
        ('صافي التعويض', result.net_compensation),
        ('المعاش في شهر الوفاة', result.pension_at_death),
        ('مصاريف الجنازة', result.gross_funeral_expenses),
        ('عمولة صرف مصاريف الجنازة', result.funeral_fee),
        ('صافي مصاريف الجنازة', result.net_funeral_expenses),
        ('إجمالي صافي المستحق', result.total_net_payable),
    ]
    return pd.DataFrame(rows, columns=['Item', 'Value'])


# =============================================================================
# EXCEL REPORT GENERATOR
# =============================================================================

class DuesReportGenerator:
    """
    Writes a settlement and its progressions to an Excel workbook.

    Sheets: Summary (identity, inputs, line items, current pension),
    Progression (main timeline), Arrears (monthly detail) and References
    (one block per historical reference timeline).
    """

    SHEETS = ["Summary", "Progression", "Arrears", "References"]

    def __init__(self):
        self.workbook = None

        self.currency_format = '#,##0.00'
        self.date_format = 'YYYY-MM-DD'

        self.header_font = Font(bold=True, size=11)
        self.title_font = Font(bold=True, size=14)
        self.header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        self.header_font_white = Font(bold=True, size=11, color="FFFFFF")

    def create_new_workbook(self) -> None:
        self.workbook = Workbook()
        if 'Sheet' in self.workbook.sheetnames:
            del self.workbook['Sheet']
        for sheet_name in self.SHEETS:
            sheet = self.workbook.create_sheet(sheet_name)
            sheet.sheet_view.rightToLeft = True
        logger.info(f"Created workbook with {len(self.SHEETS)} sheets")

    def _sheet(self, name: str):
        if self.workbook is None:
            self.create_new_workbook()
        if name not in self.workbook.sheetnames:
            self.workbook.create_sheet(name)
        return self.workbook[name]

    def _write_frame(self, sheet, df: pd.DataFrame, start_row: int,
                     currency_columns: Iterable[str] = ()) -> int:
        """Write a DataFrame with a styled header; returns the next free row."""
        currency_idx = {df.columns.get_loc(c) + 1 for c in currency_columns if c in df.columns}
        row = start_row
        for r_idx, row_data in enumerate(dataframe_to_rows(df, index=False, header=True)):
            for c_idx, value in enumerate(row_data, start=1):
                cell = sheet.cell(row=row, column=c_idx, value=value)
                if r_idx == 0:
                    cell.font = self.header_font_white
                    cell.fill = self.header_fill
                    cell.alignment = Alignment(horizontal='center')
                elif c_idx in currency_idx:
                    cell.number_format = self.currency_format
            row += 1
        return row

    def _write_info(self, sheet, title: str, items: List[InfoItem], start_row: int) -> int:
        sheet.cell(row=start_row, column=1, value=title).font = self.header_font
        row = start_row + 1
        for item in items:
            sheet.cell(row=row, column=1, value=item.label)
            sheet.cell(row=row, column=2, value=item.value)
            row += 1
        return row + 1

    def populate_summary(self, result: CalculationResult) -> None:
        sheet = self._sheet("Summary")
        sheet['A1'] = "ملخص المستحقات التأمينية"
        sheet['A1'].font = self.title_font

        row = self._write_info(sheet, "بيانات صاحب المعاش", result.pensioner_info, 3)
        row = self._write_info(sheet, "البيانات المدخلة", result.user_input_info, row)

        if result.simple_result_text:
            sheet.cell(row=row, column=1, value=result.simple_result_text).font = self.header_font
            row += 2

        if result.summary.entitlements or result.summary.deductions:
            row = self._write_frame(sheet, result_to_dataframe(result), row, ['Amount']) + 1

        for note in result.deduction_notes:
            sheet.cell(row=row, column=1, value=note)
            row += 1
        if result.deduction_warning:
            sheet.cell(row=row, column=1, value=result.deduction_warning).font = Font(bold=True, color="C00000")
            row += 1

        breakdown = result.current_pension_breakdown
        if breakdown is not None:
            row += 1
            sheet.cell(row=row, column=1, value="المعاش الدوري الحالي").font = self.header_font
            lines = [
                ('المعاش', breakdown.current_pension),
                ('المنحة الشهرية', breakdown.monthly_grant),
                ('المنح الاستثنائية', breakdown.exceptional_grant),
                ('إجمالي المستحق', breakdown.total_entitlement),
                ('عمولة الصرف', breakdown.disbursement_fee),
                ('صافي المستحق', breakdown.net_payable),
            ]
            for i, (label, value) in enumerate(lines, start=row + 1):
                sheet.cell(row=i, column=1, value=label)
                sheet.cell(row=i, column=2, value=value).number_format = self.currency_format

        sheet.column_dimensions['A'].width = 40
        sheet.column_dimensions['B'].width = 30
        sheet.column_dimensions['C'].width = 18

    def populate_progression(self, data: ProgressionData) -> None:
        sheet = self._sheet("Progression")
        sheet['A1'] = "تدرج المعاش"
        sheet['A1'].font = self.title_font
        df = steps_to_dataframe(data)
        self._write_frame(sheet, df, 3, ['Pension Before', 'Bonus Amount', 'Min Uplift', 'Pension After'])
        for col, width in zip('ABCDEFGH', (12, 45, 16, 10, 16, 14, 16, 14)):
            sheet.column_dimensions[col].width = width

    def populate_arrears(self, details: Optional[CalculationDetails]) -> None:
        sheet = self._sheet("Arrears")
        sheet['A1'] = "تفاصيل المتجمد"
        sheet['A1'].font = self.title_font
        df = monthly_breakdown_to_dataframe(details)
        self._write_frame(sheet, df, 3, ['Pension', 'Monthly Grant', 'Exceptional Grant',
                                         'Total', 'Disbursed', 'Commission'])

    def populate_references(self, progressions: Optional[AllProgressions]) -> None:
        sheet = self._sheet("References")
        sheet['A1'] = "الجداول المرجعية"
        sheet['A1'].font = self.title_font
        row = 3
        for other in (progressions.others if progressions else []):
            sheet.cell(row=row, column=1, value=other.name).font = self.header_font
            row += 1
            for note in other.notes:
                sheet.cell(row=row, column=1, value=note)
                row += 1
            row = self._write_frame(sheet, steps_to_dataframe(other.data), row,
                                    ['Pension Before', 'Bonus Amount', 'Min Uplift', 'Pension After'])
            row += 2

    def populate_from_result(self, result: CalculationResult) -> None:
        if self.workbook is None:
            self.create_new_workbook()
        self.populate_summary(result)
        if result.progressions is not None:
            self.populate_progression(result.progressions.main)
        self.populate_arrears(result.details)
        self.populate_references(result.progressions)

    def save(self, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        if self.workbook is None:
            raise ValueError("No workbook to save - call create_new_workbook() first")
        self.workbook.save(output_path)
        logger.info(f"Saved report to: {output_path}")
        return output_path


def generate_dues_report(result: CalculationResult, output_path: Union[str, Path],
                         progression: Optional[ProgressionData] = None) -> Path:
    """
    Write a complete dues workbook.

    Args:
        result: Settlement to report
        output_path: Destination .xlsx
        progression: Timeline to show when the result carries none

    Returns:
        Path to the saved file
    """
    generator = DuesReportGenerator()
    generator.create_new_workbook()
    generator.populate_from_result(result)
    if result.progressions is None and progression is not None:
        generator.populate_progression(progression)
    return generator.save(output_path)
