from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from config.constants import FeeMethod, FeeType, Frequency, PLAN_TYPE_ALIASES
from utils.money import is_finite_positive, to_decimal


def _as_decimal(value) -> Optional[Decimal]:
    try:
        number = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    return number if number.is_finite() else None


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = _as_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def validate_principal(value) -> Tuple[bool, str]:
    """Check a loan principal, returns (ok, error message)"""
    number = _as_decimal(value)
    if number is None:
        return False, f"Principal is not a number: {value!r}"
    if not is_finite_positive(number):
        return False, "Principal must be greater than 0"
    return True, ""


def validate_salary_day(value) -> Tuple[bool, str]:
    day = _as_int(value)
    if day is None or not 1 <= day <= 31:
        return False, f"Salary day must be between 1 and 31, got {value!r}"
    return True, ""


def validate_plan_fields(
    plan_type: str,
    emi_count,
    emi_frequency: str,
    daily_rate,
    repayment_days,
    min_duration_days,
) -> Tuple[bool, str]:
    """Check stored plan snapshot fields, returns (ok, error message)"""
    if plan_type not in PLAN_TYPE_ALIASES:
        return False, f"Unknown plan type: {plan_type!r}"

    count = _as_int(emi_count)
    if count is None or count < 1:
        return False, f"EMI count must be a whole number of at least 1, got {emi_count!r}"

    if emi_frequency not in [e.value for e in Frequency]:
        return False, f"Unknown EMI frequency: {emi_frequency!r}"

    rate = _as_decimal(daily_rate)
    if rate is None or rate < 0:
        return False, f"Daily interest rate must be a non-negative number, got {daily_rate!r}"

    days = _as_int(repayment_days)
    if days is None or days < 1:
        return False, f"Repayment days must be at least 1, got {repayment_days!r}"

    min_days = _as_int(min_duration_days)
    if min_days is None or min_days < 1:
        return False, f"Minimum duration must be at least 1 day, got {min_duration_days!r}"

    return True, ""


def validate_fee_rule(name, percent, application_method) -> Tuple[bool, str]:
    """Check one fee rule from a plan snapshot"""
    if not name or not str(name).strip():
        return False, "Fee name cannot be empty"

    value = _as_decimal(percent)
    if value is None:
        return False, f"Fee '{name}' percent is not a number: {percent!r}"
    if value < 0:
        return False, f"Fee '{name}' percent cannot be negative"

    if application_method not in (None, "") and application_method not in [e.value for e in FeeMethod]:
        return False, f"Fee '{name}' has unknown application method: {application_method!r}"

    return True, ""


def validate_penalty_tier_fields(name, start_day, end_day, fee_type, fee_value) -> Tuple[bool, str]:
    """Check one late fee tier row"""
    if not name or not str(name).strip():
        return False, "Tier name cannot be empty"

    start = _as_int(start_day)
    if start is None or start < 1:
        return False, f"Tier '{name}' must start on day 1 or later, got {start_day!r}"

    if end_day is not None:
        end = _as_int(end_day)
        if end is None:
            return False, f"Tier '{name}' end day is not a whole number: {end_day!r}"
        if end < start:
            return False, f"Tier '{name}' ends before it starts"

    if fee_type not in [e.value for e in FeeType]:
        return False, f"Tier '{name}' has unknown fee type: {fee_type!r}"

    value = _as_decimal(fee_value)
    if value is None or value < 0:
        return False, f"Tier '{name}' fee value must be a non-negative number, got {fee_value!r}"

    return True, ""


def validate_count(value, field_name: str) -> Tuple[bool, str]:
    """Check a non-negative whole number field (extension count, tier order, ...)"""
    number = _as_int(value)
    if number is None:
        return False, f"{field_name} must be a whole number, got {value!r}"
    if number < 0:
        return False, f"{field_name} cannot be negative"
    return True, ""


def validate_amount(value, field_name: str) -> Tuple[bool, str]:
    number = _as_decimal(value)
    if number is None:
        return False, f"{field_name} is not a number: {value!r}"
    if number < 0:
        return False, f"{field_name} cannot be negative"
    return True, ""
