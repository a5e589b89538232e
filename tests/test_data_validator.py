"""Input validation tests"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from data_manager.data_validator import (
    validate_amount, validate_count, validate_fee_rule, validate_penalty_tier_fields, validate_plan_fields,
    validate_principal, validate_salary_day,
)


class TestPrincipal:
    def test_valid(self):
        assert validate_principal("10000") == (True, "")
        assert validate_principal(2500.5)[0]

    @pytest.mark.parametrize("value", [0, -1, "abc", None, "inf", "NaN"])
    def test_invalid(self, value):
        ok, message = validate_principal(value)
        assert not ok
        assert message


class TestSalaryDay:
    def test_range(self):
        assert validate_salary_day(1)[0]
        assert validate_salary_day("31")[0]
        assert not validate_salary_day(0)[0]
        assert not validate_salary_day(32)[0]
        assert not validate_salary_day(5.5)[0]
        assert not validate_salary_day(True)[0]


class TestPlanFields:
    def test_valid(self):
        assert validate_plan_fields("multi_emi", 3, "monthly", "0.001", 15, 15) == (True, "")

    def test_invalid_fields(self):
        assert "plan type" in validate_plan_fields("balloon", 1, "monthly", "0.001", 15, 15)[1]
        assert "EMI count" in validate_plan_fields("single", 0, "monthly", "0.001", 15, 15)[1]
        assert "frequency" in validate_plan_fields("single", 1, "yearly", "0.001", 15, 15)[1]
        assert "interest rate" in validate_plan_fields("single", 1, "monthly", "x", 15, 15)[1]
        assert "Repayment days" in validate_plan_fields("single", 1, "monthly", "0.001", 0, 15)[1]
        assert "Minimum duration" in validate_plan_fields("single", 1, "monthly", "0.001", 15, "2.5")[1]


class TestFeeRule:
    def test_valid(self):
        assert validate_fee_rule("Processing Fee", "2", "deduct_from_disbursal") == (True, "")
        assert validate_fee_rule("Post Service Fee", 3, None)[0]

    def test_invalid(self):
        assert not validate_fee_rule("", "2", None)[0]
        assert not validate_fee_rule("Fee", "-1", None)[0]
        assert not validate_fee_rule("Fee", "two", None)[0]
        assert not validate_fee_rule("Fee", "2", "sometimes")[0]


class TestPenaltyTierFields:
    def test_valid(self):
        assert validate_penalty_tier_fields("Daily", 2, None, "percentage", "0.2") == (True, "")
        assert validate_penalty_tier_fields("Flat", 1, 5, "fixed", 100)[0]

    def test_invalid(self):
        assert not validate_penalty_tier_fields("", 1, None, "percentage", "1")[0]
        assert not validate_penalty_tier_fields("A", 0, None, "percentage", "1")[0]
        assert not validate_penalty_tier_fields("A", 5, 3, "percentage", "1")[0]
        assert not validate_penalty_tier_fields("A", 1, None, "compound", "1")[0]
        assert not validate_penalty_tier_fields("A", 1, None, "fixed", "-1")[0]


class TestStoredNumbers:
    def test_count(self):
        assert validate_count(0, "extension_count") == (True, "")
        assert validate_count("3", "extension_count")[0]
        assert not validate_count("1.5", "installments_paid")[0]
        assert not validate_count(-1, "installments_paid")[0]
        assert not validate_count(True, "tier_order")[0]

    def test_amount(self):
        assert validate_amount("10.50", "interest_paid")[0]
        assert not validate_amount("abc", "processed_amount")[0]
        assert not validate_amount("-1", "processed_fees")[0]
        assert "processed_fees" in validate_amount("-1", "processed_fees")[1]
