"""
Decoders for stored plan snapshots, loan rows and late fee tier tables.

Stored data arrives as JSON text or loosely typed dicts (numbers as strings,
booleans as 0/1, dates with or without a time part). Everything is checked and
converted to the typed records in ``data_manager.schema`` here so the engine
only ever sees clean values.
"""
import json
import logging
from datetime import date
from typing import Optional, Sequence, Tuple, Union

from config.constants import (
    ExtensionStatus, FeeMethod, FeeType, Frequency, LoanStatus, PlanType, PLAN_TYPE_ALIASES,
)
from config.settings import DEFAULT_DAILY_RATE, DEFAULT_PENALTY_TIERS, DEFAULT_REPAYMENT_DAYS
from core.exceptions import InvalidPenaltyTiersError, PlanDecodeError
from core.penalty import sort_tiers, validate_penalty_tiers
from data_manager.data_validator import (
    validate_amount, validate_count, validate_fee_rule, validate_penalty_tier_fields, validate_plan_fields,
    validate_principal,
)
from data_manager.schema import (
    FeeRule, LoanRecord, MultiInstallment, PenaltyTier, PlanSnapshot, SingleRepayment,
)
from utils.date_utils import parse_date
from utils.money import ZERO, money, to_decimal

logger = logging.getLogger(__name__)


def _missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _first(data: dict, *keys, default=None):
    for key in keys:
        value = data.get(key)
        if not _missing(value):
            return value
    return default


def _load_json(raw, what: str, error=PlanDecodeError):
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise error(f"Malformed {what} JSON: {exc.msg}", {"position": exc.pos})


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _optional_money(row: dict, field_name: str, loan_id=None):
    value = row.get(field_name)
    if _missing(value):
        return None
    ok, message = validate_amount(value, field_name)
    if not ok:
        raise PlanDecodeError(message, {"loan_id": loan_id, "field": field_name})
    return money(value)


def _count(row: dict, field_name: str, default: int = 0, details=None, error=PlanDecodeError) -> int:
    value = _first(row, field_name, default=default)
    ok, message = validate_count(value, field_name)
    if not ok:
        raise error(message, dict(details or {}, field=field_name))
    return int(to_decimal(value))


def _optional_date(value, field_name: str) -> Optional[date]:
    if _missing(value):
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise PlanDecodeError(f"Invalid date in {field_name}: {value!r}", {"field": field_name})


def decode_fee_rule(entry: dict) -> FeeRule:
    if not isinstance(entry, dict):
        raise PlanDecodeError("Fee entry must be an object", {"entry": entry})
    name = _first(entry, "fee_name", "name")
    percent = _first(entry, "fee_percent", "percent", default="0")
    method = _first(entry, "application_method")
    ok, message = validate_fee_rule(name, percent, method)
    if not ok:
        raise PlanDecodeError(message, {"entry": entry})
    return FeeRule(
        name=str(name).strip(),
        percent=to_decimal(percent),
        application_method=FeeMethod(method) if method else None,
    )


def decode_plan_snapshot(raw: Union[str, dict], plan_id: Optional[str] = None) -> PlanSnapshot:
    """Plan snapshot from stored JSON text or a dict.

    ``plan_type`` is ``single``, ``multi_emi`` or ``multi_installment``; when it is
    missing a plan with more than one EMI is treated as multi installment.
    """
    data = _load_json(raw, "plan snapshot")
    if not isinstance(data, dict):
        raise PlanDecodeError("Plan snapshot must be an object", {"type": type(data).__name__})

    emi_count = _first(data, "emi_count", default=1)
    plan_type = _first(data, "plan_type")
    if plan_type is None:
        plan_type = "multi_emi" if str(emi_count).strip() not in ("0", "1") else "single"
    plan_type = str(plan_type).strip().lower()
    frequency = str(_first(data, "emi_frequency", default=Frequency.MONTHLY.value)).strip().lower()
    daily_rate = _first(data, "interest_percent_per_day", "daily_rate", default=DEFAULT_DAILY_RATE)
    repayment_days = _first(data, "repayment_days", "total_duration_days", default=DEFAULT_REPAYMENT_DAYS)
    min_duration = _first(data, "min_duration_days", default=repayment_days)

    ok, message = validate_plan_fields(plan_type, emi_count, frequency, daily_rate, repayment_days, min_duration)
    if not ok:
        raise PlanDecodeError(message, {"plan_id": plan_id or data.get("plan_id")})

    fees = data.get("fees")
    if fees is None:
        fees = []
    if not isinstance(fees, list):
        raise PlanDecodeError("Plan fees must be a list", {"type": type(fees).__name__})

    if PLAN_TYPE_ALIASES[plan_type] == PlanType.SINGLE:
        repayment = SingleRepayment(repayment_days=int(to_decimal(repayment_days)))
    else:
        repayment = MultiInstallment(count=int(to_decimal(emi_count)), frequency=Frequency(frequency))

    return PlanSnapshot(
        repayment=repayment,
        daily_rate=to_decimal(daily_rate),
        calculate_by_salary_date=_as_bool(data.get("calculate_by_salary_date", False)),
        min_duration_days=int(to_decimal(min_duration)),
        fees=tuple(decode_fee_rule(entry) for entry in fees),
        plan_id=plan_id or _first(data, "plan_id", "id"),
    )


def decode_due_dates(value) -> Optional[Tuple[date, ...]]:
    """Stored due dates: JSON array, a list, or a single date (with or without time)"""
    if _missing(value):
        return None
    if isinstance(value, date):
        return (parse_date(value),)
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            value = _load_json(text, "due date")
        else:
            value = [text]
    if not isinstance(value, (list, tuple)):
        raise PlanDecodeError("Due dates must be a date or a list of dates", {"value": value})
    dates = tuple(_optional_date(v, "processed_due_date") for v in value)
    if not dates or any(d is None for d in dates):
        return None
    return dates


def decode_loan_record(row: dict) -> LoanRecord:
    """Loan record from a stored row"""
    if not isinstance(row, dict):
        raise PlanDecodeError("Loan row must be an object", {"type": type(row).__name__})
    loan_id = _first(row, "loan_id", "id")
    principal = _first(row, "principal", "loan_amount", "sanctioned_amount", "principal_amount")
    ok, message = validate_principal(principal)
    if not ok:
        raise PlanDecodeError(message, {"loan_id": loan_id})

    breakdown = _load_json(row.get("fees_breakdown") or [], "fees breakdown")
    if not isinstance(breakdown, list):
        raise PlanDecodeError("Fees breakdown must be a list", {"loan_id": loan_id})

    try:
        status = LoanStatus(_first(row, "status", default=LoanStatus.PENDING.value))
        extension_status = ExtensionStatus(_first(row, "extension_status", default=ExtensionStatus.NONE.value))
    except ValueError as exc:
        raise PlanDecodeError(str(exc), {"loan_id": loan_id})

    interest_paid = _optional_money(row, "interest_paid", loan_id)
    if interest_paid is None:
        interest_paid = ZERO

    return LoanRecord(
        principal=money(principal),
        loan_id=None if loan_id is None else str(loan_id),
        status=status,
        processed_at=_optional_date(row.get("processed_at"), "processed_at"),
        disbursed_at=_optional_date(row.get("disbursed_at"), "disbursed_at"),
        processed_amount=_optional_money(row, "processed_amount", loan_id),
        processed_interest=_optional_money(row, "processed_interest", loan_id),
        processed_fees=_optional_money(row, "processed_fees", loan_id),
        processed_post_service_fee=_optional_money(row, "processed_post_service_fee", loan_id),
        processed_penalty=_optional_money(row, "processed_penalty", loan_id),
        processed_due_dates=decode_due_dates(row.get("processed_due_date")),
        fees_breakdown=tuple(entry for entry in breakdown if isinstance(entry, dict)),
        extension_count=_count(row, "extension_count", details={"loan_id": loan_id}),
        extension_status=extension_status,
        installments_paid=_count(row, "installments_paid", details={"loan_id": loan_id}),
        interest_paid=interest_paid,
    )


def decode_penalty_tier(row: dict) -> PenaltyTier:
    if not isinstance(row, dict):
        raise InvalidPenaltyTiersError("Penalty tier must be an object", {"row": row})
    name = _first(row, "tier_name", "name")
    start = _first(row, "days_overdue_start", "start_day")
    end = _first(row, "days_overdue_end", "end_day")
    fee_type = str(_first(row, "fee_type", default=FeeType.PERCENTAGE.value)).strip().lower()
    fee_value = _first(row, "fee_value")
    ok, message = validate_penalty_tier_fields(name, start, end, fee_type, fee_value)
    if not ok:
        raise InvalidPenaltyTiersError(message, {"row": row})
    return PenaltyTier(
        name=str(name),
        start_day=int(to_decimal(start)),
        end_day=None if end is None else int(to_decimal(end)),
        fee_value=to_decimal(fee_value),
        fee_type=FeeType(fee_type),
        tier_order=_count(row, "tier_order", default=1, details={"row": row}, error=InvalidPenaltyTiersError),
    )


def decode_penalty_tiers(rows: Union[str, Sequence[dict]]) -> Tuple[PenaltyTier, ...]:
    """Late fee tier table, validated for gaps and overlaps"""
    data = _load_json(rows, "penalty tiers", InvalidPenaltyTiersError)
    if not isinstance(data, (list, tuple)):
        raise InvalidPenaltyTiersError("Penalty tiers must be a list", {"type": type(data).__name__})
    tiers = [decode_penalty_tier(row) for row in data]
    validate_penalty_tiers(tiers)
    return tuple(sort_tiers(tiers))


def default_penalty_tiers() -> Tuple[PenaltyTier, ...]:
    return decode_penalty_tiers(DEFAULT_PENALTY_TIERS)
