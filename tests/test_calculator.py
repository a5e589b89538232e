"""Loan calculation tests"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date
from decimal import Decimal
import pytest

from config.constants import CalculationMethod, FeeMethod, LoanStatus, WarningCode
from core.calculator import (
    apply_frozen_values, calc_frozen_values, calc_interest_days, calculate_loan, check_principal,
)
from core.exceptions import AlreadyFrozenError, InvalidPrincipalError, MissingAnchorDateError
from data_manager.schema import (
    CalculationRequest, FeeRule, LoanRecord, MultiInstallment, PlanSnapshot, SingleRepayment,
)

RATE = Decimal("0.001")
ANCHOR = date(2024, 1, 1)
SINGLE_15 = PlanSnapshot(repayment=SingleRepayment(15), daily_rate=RATE)
FEE_PLAN = PlanSnapshot(
    repayment=SingleRepayment(15),
    daily_rate=RATE,
    fees=(
        FeeRule("Processing Fee", Decimal("10"), FeeMethod.DEDUCT_FROM_DISBURSAL),
        FeeRule("Post Service Fee", Decimal("5"), FeeMethod.ADD_TO_TOTAL),
    ),
)


def _request(principal, plan=SINGLE_15, salary_day=None, anchor=ANCHOR):
    loan = LoanRecord(principal=principal, disbursed_at=anchor)
    return CalculationRequest(loan=loan, plan=plan, salary_day=salary_day)


class TestSinglePayment:
    """Single payment loans"""

    def test_no_fees(self):
        """30000 at 0.1%/day for 15 days from 2024-01-01"""
        result = calculate_loan(_request(Decimal("30000")))
        assert result.final_due_date == date(2024, 1, 15)
        assert result.term_days == 15
        assert result.total_interest == Decimal("450.00")
        assert result.disbursal_amount == Decimal("30000.00")
        assert result.total_repayable == Decimal("30450.00")
        assert result.apr == Decimal("36.50")
        assert result.calculation_method == CalculationMethod.FIXED

    def test_with_fees(self):
        result = calculate_loan(_request(Decimal("10000"), FEE_PLAN))
        # processing 1000 + GST 180 deducted up front
        assert result.disbursal_amount == Decimal("8820.00")
        # post service 500 + GST 90 added to repayment
        assert result.total_repayable == Decimal("10740.00")
        assert result.schedule[0].total == Decimal("10740.00")
        # (1500 + 270 + 150) / 10000 / 15 x 36500
        assert result.apr == Decimal("467.20")
        assert result.effective_annual_rate > 0

    def test_string_principal(self):
        result = calculate_loan(_request("30000"))
        assert result.principal == Decimal("30000.00")

    def test_to_dict(self):
        data = calculate_loan(_request(Decimal("30000"))).to_dict()
        assert data["total_interest"] == "450.00"
        assert data["schedule"][0]["due_date"] == "2024-01-15"
        assert data["warnings"] == []


class TestMultiInstallment:
    def test_salary_day_schedule(self):
        plan = PlanSnapshot(repayment=MultiInstallment(3), daily_rate=RATE, calculate_by_salary_date=True)
        result = calculate_loan(_request(Decimal("9000"), plan, salary_day=5, anchor=date(2024, 1, 10)))
        assert result.due_dates == (date(2024, 2, 5), date(2024, 3, 5), date(2024, 4, 5))
        assert [i.principal for i in result.schedule] == [Decimal("3000.00")] * 3
        assert result.total_interest == Decimal("510.00")
        assert result.total_repayable == Decimal("9510.00")
        assert result.calculation_method == CalculationMethod.SALARY_DATE

    def test_warnings_collected(self):
        plan = PlanSnapshot(repayment=MultiInstallment(2), daily_rate=RATE, calculate_by_salary_date=True,
                            fees=(FeeRule("Documentation Charge", Decimal("1")),))
        result = calculate_loan(_request(Decimal("5000"), plan, salary_day=40))
        codes = {w.code.value for w in result.warnings}
        assert codes == {"ambiguous_fee_method", "invalid_salary_day"}


class TestValidation:
    @pytest.mark.parametrize("principal", [0, "-5", "abc", "NaN", None])
    def test_invalid_principal(self, principal):
        with pytest.raises(InvalidPrincipalError):
            calculate_loan(_request(principal))

    def test_missing_anchor(self):
        loan = LoanRecord(principal=Decimal("1000"))
        with pytest.raises(MissingAnchorDateError):
            calculate_loan(CalculationRequest(loan=loan, plan=SINGLE_15))

    def test_interest_days(self):
        info = calc_interest_days(SINGLE_15, ANCHOR)
        assert info["days"] == 15
        assert info["repayment_date"] == date(2024, 1, 15)
        assert info["calculation_method"] == CalculationMethod.FIXED


class TestFreezing:
    def test_frozen_values(self):
        result = calculate_loan(_request(Decimal("10000"), FEE_PLAN))
        frozen = calc_frozen_values(result)
        assert frozen.processed_amount == Decimal("10000.00")
        assert frozen.processed_interest == Decimal("150.00")
        assert frozen.processed_fees == Decimal("1500.00")
        assert frozen.processed_post_service_fee == Decimal("500.00")
        assert frozen.processed_due_dates == (date(2024, 1, 15),)
        assert frozen.to_dict()["processed_due_date"] == ["2024-01-15"]

    def test_apply_returns_new_record(self):
        loan = LoanRecord(principal=Decimal("10000"), disbursed_at=ANCHOR)
        frozen = calc_frozen_values(calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN)))
        processed = apply_frozen_values(loan, frozen, processed_at=ANCHOR)
        assert processed.is_frozen
        assert processed.status == LoanStatus.PROCESSED
        assert processed.processed_at == ANCHOR
        assert not loan.is_frozen

    def test_freeze_only_once(self):
        loan = LoanRecord(principal=Decimal("10000"), disbursed_at=ANCHOR)
        frozen = calc_frozen_values(calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN)))
        processed = apply_frozen_values(loan, frozen)
        with pytest.raises(AlreadyFrozenError):
            apply_frozen_values(processed, frozen)

    def test_recalculation_reproduces_frozen_values(self):
        loan = LoanRecord(principal=Decimal("10000"), disbursed_at=ANCHOR)
        first = calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN))
        processed = apply_frozen_values(loan, calc_frozen_values(first), processed_at=ANCHOR)

        again = calculate_loan(CalculationRequest(loan=processed, plan=FEE_PLAN))
        assert again.calculation_method == CalculationMethod.SNAPSHOT
        assert again.due_dates == first.due_dates
        assert again.total_interest == first.total_interest
        assert again.total_repayable == first.total_repayable
        assert again.warnings == ()

    def test_frozen_fees_survive_plan_change(self):
        loan = LoanRecord(principal=Decimal("10000"), disbursed_at=ANCHOR)
        processed = apply_frozen_values(
            loan, calc_frozen_values(calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN))),
            processed_at=ANCHOR,
        )
        cheaper = PlanSnapshot(
            repayment=SingleRepayment(15),
            daily_rate=RATE,
            fees=(
                FeeRule("Processing Fee", Decimal("5"), FeeMethod.DEDUCT_FROM_DISBURSAL),
                FeeRule("Post Service Fee", Decimal("5"), FeeMethod.ADD_TO_TOTAL),
            ),
        )
        again = calculate_loan(CalculationRequest(loan=processed, plan=cheaper))
        assert again.fees.disbursal_fee == Decimal("1000.00")
        assert again.fees.total_fees == Decimal("1500.00")
        assert again.disbursal_amount == Decimal("8820.00")
        assert again.total_repayable == Decimal("10740.00")

    def test_frozen_interest_kept_and_mismatch_reported(self):
        loan = LoanRecord(principal=Decimal("10000"), disbursed_at=ANCHOR)
        processed = apply_frozen_values(
            loan, calc_frozen_values(calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN))),
            processed_at=ANCHOR,
        )
        dearer = PlanSnapshot(repayment=SingleRepayment(15), daily_rate=Decimal("0.002"), fees=FEE_PLAN.fees)
        again = calculate_loan(CalculationRequest(loan=processed, plan=dearer))
        assert again.total_interest == Decimal("150.00")
        assert [w.code for w in again.warnings] == [WarningCode.FROZEN_VALUE_MISMATCH]
        assert again.warnings[0].details["field"] == "processed_interest"

    def test_incomplete_breakdown_falls_back_to_plan(self):
        loan = LoanRecord(
            principal=Decimal("10000"), processed_at=ANCHOR, processed_amount=Decimal("10000.00"),
            processed_due_dates=(date(2024, 1, 15),),
            fees_breakdown=({"fee_name": "Post Service Fee", "fee_amount": "500.00"},),
        )
        result = calculate_loan(CalculationRequest(loan=loan, plan=FEE_PLAN))
        assert result.fees.total_fees == Decimal("1500.00")
        assert result.calculation_method == CalculationMethod.SNAPSHOT


class TestCheckPrincipal:
    def test_rounds_to_cents(self):
        assert check_principal("1000.005") == Decimal("1000.01")

    def test_rounds_to_zero_is_invalid(self):
        with pytest.raises(InvalidPrincipalError):
            check_principal("0.004")

    def test_infinity_is_invalid(self):
        with pytest.raises(InvalidPrincipalError):
            check_principal("Infinity")
