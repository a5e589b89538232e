from pathlib import Path
from typing import List, Union

import pandas as pd

from config.constants import (
    FEE_COLUMNS, SUMMARY_COLUMNS, SCHEDULE_COLUMNS,
    SHEET_FEES, SHEET_SCHEDULE, SHEET_SUMMARY, SHEET_WARNINGS,
)
from core.schedule_generator import schedule_to_frame
from data_manager.schema import CalculationResult
from utils.formatters import fmt_amount, fmt_days, fmt_rate

WARNING_COLUMNS = ["code", "message"]


def summary_rows(result: CalculationResult) -> List[dict]:
    """Headline figures of a quote as item/value rows"""
    fees = result.fees
    rows = [
        ("Principal", fmt_amount(result.principal)),
        ("Anchor date", result.anchor_date.isoformat()),
        ("Final due date", result.final_due_date.isoformat()),
        ("Term", fmt_days(result.term_days)),
        ("Due dates by", result.calculation_method.value),
        ("Fees deducted from disbursal", fmt_amount(fees.disbursal_fee)),
        ("GST on deducted fees", fmt_amount(fees.disbursal_fee_gst)),
        ("Disbursal amount", fmt_amount(result.disbursal_amount)),
        ("Total interest", fmt_amount(result.total_interest)),
        ("Fees added to repayable", fmt_amount(fees.recurring_fee_total)),
        ("GST on added fees", fmt_amount(fees.recurring_fee_gst)),
        ("Total repayable", fmt_amount(result.total_repayable)),
        ("APR", fmt_rate(result.apr)),
        ("Effective annual rate", fmt_rate(result.effective_annual_rate)),
    ]
    for line in fees.lines:
        rows.append((f"{line.name} ({line.method.label})", fmt_amount(line.total_amount + line.total_gst)))
    return [{"item": item, "value": value} for item, value in rows]


def fees_to_frame(result: CalculationResult) -> pd.DataFrame:
    records = []
    for line in result.fees.lines:
        records.append({
            "name": line.name,
            "percent": float(line.percent),
            "method": line.method.value,
            "method_source": line.method_source.value,
            "amount": float(line.amount),
            "gst": float(line.gst),
            "multiplier": line.multiplier,
            "total_amount": float(line.total_amount),
            "total_gst": float(line.total_gst),
        })
    return pd.DataFrame(records, columns=FEE_COLUMNS)


def export_quote_workbook(result: CalculationResult, filepath: Union[str, Path]) -> Path:
    """Write a quote to an Excel workbook with summary, schedule, fee and warning sheets"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    warnings = [{"code": w.code.value, "message": w.message} for w in result.warnings]

    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        pd.DataFrame(summary_rows(result), columns=SUMMARY_COLUMNS).to_excel(
            writer, sheet_name=SHEET_SUMMARY, index=False)
        schedule_to_frame(result.schedule).to_excel(
            writer, sheet_name=SHEET_SCHEDULE, index=False)
        fees_to_frame(result).to_excel(
            writer, sheet_name=SHEET_FEES, index=False)
        pd.DataFrame(warnings, columns=WARNING_COLUMNS).to_excel(
            writer, sheet_name=SHEET_WARNINGS, index=False)
    return filepath


def read_schedule_sheet(filepath: Union[str, Path]) -> pd.DataFrame:
    """Read the schedule sheet back from an exported workbook"""
    df = pd.read_excel(filepath, sheet_name=SHEET_SCHEDULE, engine="openpyxl")
    return df[SCHEDULE_COLUMNS]
