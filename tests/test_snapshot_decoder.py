"""Stored data decoder tests"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import json
from datetime import date
from decimal import Decimal
import pytest

from config.constants import ExtensionStatus, FeeMethod, Frequency, LoanStatus, PlanType
from config.settings import DEFAULT_PENALTY_TIERS
from core.exceptions import InvalidPenaltyTiersError, PlanDecodeError
from data_manager.schema import MultiInstallment, SingleRepayment
from data_manager.snapshot_decoder import (
    decode_due_dates, decode_loan_record, decode_penalty_tiers, decode_plan_snapshot,
)

MULTI_SNAPSHOT = json.dumps({
    "plan_id": "P-7",
    "plan_type": "multi_emi",
    "emi_count": 3,
    "emi_frequency": "monthly",
    "interest_percent_per_day": "0.001",
    "calculate_by_salary_date": 1,
    "repayment_days": 15,
    "fees": [
        {"fee_name": "Processing Fee", "fee_percent": "2", "application_method": "deduct_from_disbursal"},
        {"fee_name": "Post Service Fee", "fee_percent": "3"},
    ],
})


class TestPlanSnapshot:
    def test_multi_emi_snapshot(self):
        plan = decode_plan_snapshot(MULTI_SNAPSHOT)
        assert plan.plan_id == "P-7"
        assert plan.plan_type == PlanType.MULTI_INSTALLMENT
        assert plan.repayment == MultiInstallment(3, Frequency.MONTHLY)
        assert plan.daily_rate == Decimal("0.001")
        assert plan.calculate_by_salary_date is True
        assert plan.min_duration_days == 15
        assert [f.name for f in plan.fees] == ["Processing Fee", "Post Service Fee"]
        assert plan.fees[0].application_method == FeeMethod.DEDUCT_FROM_DISBURSAL
        assert plan.fees[1].application_method is None

    def test_single_from_dict(self):
        plan = decode_plan_snapshot({"plan_type": "single", "repayment_days": "30",
                                     "calculate_by_salary_date": "0"})
        assert plan.repayment == SingleRepayment(30)
        assert plan.min_duration_days == 30
        assert plan.calculate_by_salary_date is False
        assert plan.fees == ()

    def test_total_duration_fallback(self):
        plan = decode_plan_snapshot({"plan_type": "single", "total_duration_days": 21})
        assert plan.repayment == SingleRepayment(21)

    def test_type_inferred_from_emi_count(self):
        plan = decode_plan_snapshot({"emi_count": 2})
        assert plan.repayment == MultiInstallment(2)
        assert decode_plan_snapshot({}).repayment == SingleRepayment(15)

    @pytest.mark.parametrize("raw", [
        "{not json",
        "[1, 2]",
        {"plan_type": "balloon"},
        {"plan_type": "multi_emi", "emi_count": 0},
        {"plan_type": "multi_emi", "emi_count": 2, "emi_frequency": "yearly"},
        {"plan_type": "single", "interest_percent_per_day": "-0.1"},
        {"plan_type": "single", "fees": {"fee_name": "x"}},
        {"plan_type": "single", "fees": [{"fee_name": "x", "fee_percent": "1", "application_method": "later"}]},
        {"plan_type": "single", "fees": [{"fee_percent": "1"}]},
    ])
    def test_malformed(self, raw):
        with pytest.raises(PlanDecodeError):
            decode_plan_snapshot(raw)


class TestDueDates:
    def test_json_array(self):
        assert decode_due_dates('["2024-02-05", "2024-03-05"]') == (date(2024, 2, 5), date(2024, 3, 5))

    def test_single_date_with_time(self):
        assert decode_due_dates("2024-01-15 00:00:00") == (date(2024, 1, 15),)

    def test_empty(self):
        assert decode_due_dates(None) is None
        assert decode_due_dates("") is None
        assert decode_due_dates([]) is None

    def test_invalid(self):
        with pytest.raises(PlanDecodeError):
            decode_due_dates("15/01/2024")


class TestLoanRecord:
    row = {
        "id": 7,
        "loan_amount": "10000",
        "status": "active",
        "processed_at": "2024-01-01T10:00:00",
        "processed_amount": "10000.00",
        "processed_post_service_fee": "500",
        "processed_due_date": '["2024-01-15"]',
        "fees_breakdown": json.dumps([{"name": "Post Service Fee", "total_amount": "500.00"}]),
        "extension_count": "1",
        "extension_status": "approved",
    }

    def test_decode_row(self):
        loan = decode_loan_record(self.row)
        assert loan.loan_id == "7"
        assert loan.principal == Decimal("10000.00")
        assert loan.status == LoanStatus.ACTIVE
        assert loan.anchor_date == date(2024, 1, 1)
        assert loan.processed_post_service_fee == Decimal("500.00")
        assert loan.processed_due_dates == (date(2024, 1, 15),)
        assert loan.is_frozen
        assert loan.fees_breakdown[0]["total_amount"] == "500.00"
        assert loan.extension_count == 1
        assert loan.extension_status == ExtensionStatus.APPROVED

    def test_defaults(self):
        loan = decode_loan_record({"principal": 5000, "disbursed_at": "2024-02-01"})
        assert loan.status == LoanStatus.PENDING
        assert loan.extension_status == ExtensionStatus.NONE
        assert loan.processed_due_dates is None
        assert loan.anchor_date == date(2024, 2, 1)

    def test_missing_principal(self):
        with pytest.raises(PlanDecodeError):
            decode_loan_record({"id": 1})

    def test_unknown_status(self):
        with pytest.raises(PlanDecodeError):
            decode_loan_record({"principal": 100, "status": "lost"})

    @pytest.mark.parametrize("field, value", [
        ("extension_count", "abc"),
        ("extension_count", -1),
        ("installments_paid", "1.5"),
        ("processed_amount", "abc"),
        ("processed_interest", "-10"),
        ("interest_paid", "ten"),
    ])
    def test_malformed_field_reported(self, field, value):
        with pytest.raises(PlanDecodeError) as exc_info:
            decode_loan_record({"principal": "10000", field: value})
        assert exc_info.value.details["field"] == field

    def test_whole_number_strings_accepted(self):
        loan = decode_loan_record({"principal": "10000", "installments_paid": "2.0", "interest_paid": "12.5"})
        assert loan.installments_paid == 2
        assert loan.interest_paid == Decimal("12.50")


class TestPenaltyTiers:
    def test_default_table(self):
        tiers = decode_penalty_tiers(DEFAULT_PENALTY_TIERS)
        assert [t.start_day for t in tiers] == [1, 2]
        assert tiers[1].end_day is None
        assert tiers[1].fee_value == Decimal("0.2")

    def test_sorted_by_tier_order(self):
        rows = list(reversed(DEFAULT_PENALTY_TIERS))
        assert [t.tier_order for t in decode_penalty_tiers(json.dumps(rows))] == [1, 2]

    def test_gap_rejected(self):
        rows = [dict(DEFAULT_PENALTY_TIERS[0]), dict(DEFAULT_PENALTY_TIERS[1], days_overdue_start=3)]
        with pytest.raises(InvalidPenaltyTiersError):
            decode_penalty_tiers(rows)

    def test_bad_fee_type(self):
        rows = [dict(DEFAULT_PENALTY_TIERS[0], fee_type="compound"), DEFAULT_PENALTY_TIERS[1]]
        with pytest.raises(InvalidPenaltyTiersError):
            decode_penalty_tiers(rows)

    def test_malformed_json(self):
        with pytest.raises(InvalidPenaltyTiersError):
            decode_penalty_tiers("[{")

    def test_bad_tier_order(self):
        rows = [dict(DEFAULT_PENALTY_TIERS[0], tier_order="first"), DEFAULT_PENALTY_TIERS[1]]
        with pytest.raises(InvalidPenaltyTiersError):
            decode_penalty_tiers(rows)
