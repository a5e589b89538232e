"""Excel export tests"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date
from decimal import Decimal
import pytest
import pandas as pd

from config.constants import FeeMethod, SCHEDULE_COLUMNS
from core.calculator import calculate_loan
from data_manager.excel_handler import export_quote_workbook, read_schedule_sheet, summary_rows
from data_manager.schema import CalculationRequest, FeeRule, LoanRecord, MultiInstallment, PlanSnapshot


@pytest.fixture
def quote_result():
    """Three installment salary-day quote with fees"""
    plan = PlanSnapshot(
        repayment=MultiInstallment(3),
        daily_rate=Decimal("0.001"),
        calculate_by_salary_date=True,
        fees=(
            FeeRule("Processing Fee", Decimal("2"), FeeMethod.DEDUCT_FROM_DISBURSAL),
            FeeRule("Post Service Fee", Decimal("1")),
            FeeRule("Documentation Charge", Decimal("0.5")),
        ),
    )
    loan = LoanRecord(principal=Decimal("9000"), disbursed_at=date(2024, 1, 10))
    return calculate_loan(CalculationRequest(loan=loan, plan=plan, salary_day=5))


class TestExportWorkbook:
    def test_creates_all_sheets(self, quote_result, tmp_path):
        path = export_quote_workbook(quote_result, tmp_path / "out" / "quote.xlsx")
        assert path.exists()
        xls = pd.ExcelFile(path, engine="openpyxl")
        assert xls.sheet_names == ["Summary", "Schedule", "Fees", "Warnings"]

    def test_schedule_sheet(self, quote_result, tmp_path):
        path = export_quote_workbook(quote_result, tmp_path / "quote.xlsx")
        df = read_schedule_sheet(path)
        assert list(df.columns) == SCHEDULE_COLUMNS
        assert len(df) == 3
        assert list(df["due_date"]) == ["2024-02-05", "2024-03-05", "2024-04-05"]
        assert df["principal"].sum() == pytest.approx(9000.0)

    def test_fee_and_warning_sheets(self, quote_result, tmp_path):
        path = export_quote_workbook(quote_result, tmp_path / "quote.xlsx")
        fees = pd.read_excel(path, sheet_name="Fees", engine="openpyxl")
        assert list(fees["name"]) == ["Processing Fee", "Post Service Fee", "Documentation Charge"]
        assert list(fees["multiplier"]) == [1, 3, 1]
        warnings = pd.read_excel(path, sheet_name="Warnings", engine="openpyxl")
        assert list(warnings["code"]) == ["ambiguous_fee_method"]


class TestSummaryRows:
    def test_headline_figures(self, quote_result):
        rows = {row["item"]: row["value"] for row in summary_rows(quote_result)}
        assert rows["Principal"] == "₹9,000.00"
        assert rows["Final due date"] == "2024-04-05"
        assert rows["Due dates by"] == "salary_date"
        # processing 180 + GST 32.40, documentation 45 + GST 8.10
        assert rows["Disbursal amount"] == "₹8,734.50"
