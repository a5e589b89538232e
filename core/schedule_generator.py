"""
Repayment schedule generator

Builds due dates for a plan (single payment or multi installment, fixed
frequency or pinned to the borrower's salary day) and fills each installment
with its principal, reducing-balance interest and recurring fees. The same
inputs always produce the same schedule, so a frozen due date snapshot and a
live regeneration from the plan must agree.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from config.constants import CalculationMethod, Frequency, WarningCode, SCHEDULE_COLUMNS
from core.exceptions import EngineError, InvalidSalaryDayError, MissingAnchorDateError, PlanDecodeError
from core.interest import calc_reducing_balance
from data_manager.schema import (
    EngineWarning, FeeBreakdown, Installment, LoanRecord, MultiInstallment, PlanSnapshot, SingleRepayment,
)
from utils.date_utils import (
    add_days, add_months, check_salary_day, days_between, resolve_first_due_date, salary_date_for_month,
)
from utils.money import money_floor

logger = logging.getLogger(__name__)

ScheduleOutput = Tuple[List[Installment], CalculationMethod, List[EngineWarning]]


def split_principal(principal: Decimal, count: int) -> List[Decimal]:
    """Equal parts floored to cents; the rounding remainder goes on the last part"""
    if count < 1:
        raise ValueError("count must be at least 1")
    part = money_floor(principal / count)
    parts = [part] * count
    parts[-1] = principal - part * (count - 1)
    return parts


def _fixed_single_due_date(repayment: SingleRepayment, anchor: date) -> date:
    # inclusive count: anchor is day 1
    return add_days(anchor, repayment.repayment_days - 1)


def _fixed_multi_due_dates(repayment: MultiInstallment, anchor: date, min_duration_days: int) -> List[date]:
    frequency = repayment.frequency
    if frequency == Frequency.MONTHLY:
        # every date is taken from the anchor so a short month never shifts later ones
        start = 1
        while days_between(anchor, add_months(anchor, start)) < min_duration_days:
            start += 1
        return [add_months(anchor, start + k) for k in range(repayment.count)]

    first = add_days(anchor, frequency.step_days)
    if days_between(anchor, first) < min_duration_days:
        first = add_days(anchor, min_duration_days - 1)
    return [add_days(first, k * frequency.step_days) for k in range(repayment.count)]


def _salary_due_dates(plan: PlanSnapshot, anchor: date, salary_day: int) -> List[date]:
    first = resolve_first_due_date(anchor, salary_day, plan.min_duration_days)
    return [salary_date_for_month(first, salary_day, k) for k in range(plan.installment_count)]


def resolve_salary_day(plan: PlanSnapshot, salary_day, warnings: List[EngineWarning]) -> Optional[int]:
    """Validated salary day, or None (with a warning) when falling back to fixed dates"""
    try:
        day = check_salary_day(salary_day)
    except InvalidSalaryDayError as exc:
        logger.warning("Plan %s: %s; using fixed frequency", plan.plan_id, exc.message)
        warnings.append(EngineWarning(
            WarningCode.INVALID_SALARY_DAY,
            f"{exc.message}; due dates calculated on fixed frequency",
            {"salary_day": salary_day},
        ))
        return None

    repayment = plan.repayment
    if isinstance(repayment, MultiInstallment) and repayment.frequency != Frequency.MONTHLY:
        logger.warning(
            "Plan %s: salary date pinning needs monthly installments, got %s",
            plan.plan_id, repayment.frequency.value,
        )
        warnings.append(EngineWarning(
            WarningCode.SALARY_DATE_UNSUPPORTED_FREQUENCY,
            f"Salary date pinning ignored for {repayment.frequency.value} installments",
            {"frequency": repayment.frequency.value},
        ))
        return None
    return day


def generate_due_dates(
    plan: PlanSnapshot,
    anchor: date,
    salary_day: Optional[int] = None,
) -> Tuple[List[date], CalculationMethod, List[EngineWarning]]:
    """Due dates for every installment. Returns (dates, method, warnings)"""
    if anchor is None:
        raise MissingAnchorDateError()
    warnings: List[EngineWarning] = []
    day = None
    if plan.calculate_by_salary_date:
        day = resolve_salary_day(plan, salary_day, warnings)

    if day is not None:
        return _salary_due_dates(plan, anchor, day), CalculationMethod.SALARY_DATE, warnings

    repayment = plan.repayment
    if isinstance(repayment, SingleRepayment):
        dates = [_fixed_single_due_date(repayment, anchor)]
    elif isinstance(repayment, MultiInstallment):
        dates = _fixed_multi_due_dates(repayment, anchor, plan.min_duration_days)
    else:
        raise TypeError(f"Unknown repayment variant: {type(repayment).__name__}")
    return dates, CalculationMethod.FIXED, warnings


def build_schedule(
    principal: Decimal,
    plan: PlanSnapshot,
    anchor: date,
    due_dates: Sequence[date],
    fees: Optional[FeeBreakdown] = None,
) -> List[Installment]:
    """Fill installments for given due dates with principal, interest and fees"""
    if not due_dates:
        raise EngineError("Schedule needs at least one due date")
    if due_dates[0] < anchor:
        raise EngineError(
            "First due date is before the anchor date",
            {"anchor_date": anchor, "due_date": due_dates[0]},
        )
    for prev, cur in zip(due_dates, due_dates[1:]):
        if cur <= prev:
            raise EngineError(
                "Due dates must be strictly increasing",
                {"previous": prev, "current": cur},
            )

    fees = fees or FeeBreakdown()
    parts = split_principal(principal, len(due_dates))
    rows = calc_reducing_balance(principal, plan.daily_rate, anchor, due_dates, parts)

    schedule = []
    for number, row in enumerate(rows, start=1):
        fee = fees.recurring_fee_per_installment
        gst = fees.recurring_fee_gst_per_installment
        schedule.append(Installment(
            number=number,
            due_date=row["due_date"],
            period_start=row["period_start"],
            days=row["days"],
            outstanding_principal=row["outstanding"],
            principal=row["principal"],
            interest=row["interest"],
            fee=fee,
            gst=gst,
            total=row["principal"] + row["interest"] + fee + gst,
        ))
    return schedule


def generate_schedule(
    principal: Decimal,
    plan: PlanSnapshot,
    anchor: date,
    salary_day: Optional[int] = None,
    fees: Optional[FeeBreakdown] = None,
) -> ScheduleOutput:
    """Generate the full schedule from the live plan"""
    due_dates, method, warnings = generate_due_dates(plan, anchor, salary_day)
    schedule = build_schedule(principal, plan, anchor, due_dates, fees)
    logger.debug(
        "Generated %d installment(s) from %s to %s (%s)",
        len(schedule), anchor, due_dates[-1], method.value,
    )
    return schedule, method, warnings


def due_dates_match(stored: Sequence[date], regenerated: Sequence[date]) -> bool:
    return tuple(stored) == tuple(regenerated)


def schedule_from_snapshot(
    loan: LoanRecord,
    plan: PlanSnapshot,
    salary_day: Optional[int] = None,
    fees: Optional[FeeBreakdown] = None,
) -> ScheduleOutput:
    """Schedule for a processed loan.

    Frozen due dates are the source of truth when present. For loans never
    extended the plan is regenerated as well and any disagreement is reported.
    Without a snapshot the schedule is regenerated from the plan.
    """
    anchor = loan.anchor_date
    if anchor is None:
        raise MissingAnchorDateError(loan.loan_id)
    principal = loan.effective_principal

    if not loan.is_frozen:
        return generate_schedule(principal, plan, anchor, salary_day, fees)

    stored = list(loan.processed_due_dates)
    if len(stored) != plan.installment_count:
        raise PlanDecodeError(
            "Stored due dates do not match the plan's installment count",
            {"loan_id": loan.loan_id, "stored": len(stored), "expected": plan.installment_count},
        )

    warnings: List[EngineWarning] = []
    if loan.extension_count == 0:
        regenerated, _, regen_warnings = generate_due_dates(plan, anchor, salary_day)
        warnings.extend(regen_warnings)
        if not due_dates_match(stored, regenerated):
            logger.warning(
                "Loan %s: frozen due dates %s differ from regenerated %s",
                loan.loan_id, stored, regenerated,
            )
            warnings.append(EngineWarning(
                WarningCode.DUE_DATE_SNAPSHOT_MISMATCH,
                "Frozen due dates differ from dates regenerated from the plan",
                {"stored": [d.isoformat() for d in stored],
                 "regenerated": [d.isoformat() for d in regenerated]},
            ))

    schedule = build_schedule(principal, plan, anchor, stored, fees)
    return schedule, CalculationMethod.SNAPSHOT, warnings


def schedule_to_frame(schedule: Sequence[Installment]) -> pd.DataFrame:
    """Schedule as a DataFrame with SCHEDULE_COLUMNS"""
    records = []
    for inst in schedule:
        records.append({
            "installment_no": inst.number,
            "due_date": inst.due_date.strftime("%Y-%m-%d"),
            "period_start": inst.period_start.strftime("%Y-%m-%d"),
            "days": inst.days,
            "outstanding_principal": float(inst.outstanding_principal),
            "principal": float(inst.principal),
            "interest": float(inst.interest),
            "fee": float(inst.fee),
            "gst": float(inst.gst),
            "total": float(inst.total),
        })
    return pd.DataFrame(records, columns=SCHEDULE_COLUMNS)
