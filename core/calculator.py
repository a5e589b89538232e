"""Loan calculation: fees, schedule, interest, disbursal, APR, effective rate and freezing"""
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from config.constants import LoanStatus, WarningCode
from config.settings import GST_RATE
from core.exceptions import AlreadyFrozenError, InvalidPrincipalError, MissingAnchorDateError
from core.fees import calc_fees, fees_from_breakdown, is_post_service_fee
from core.interest import calc_apr, calc_effective_annual_rate
from core.schedule_generator import generate_due_dates, generate_schedule, schedule_from_snapshot
from data_manager.schema import (
    CalculationRequest, CalculationResult, EngineWarning, FrozenValues, LoanRecord, PlanSnapshot,
)
from utils.date_utils import days_between
from utils.money import ZERO, is_finite_positive, money, to_decimal

logger = logging.getLogger(__name__)


def check_principal(value) -> Decimal:
    """Principal as a 2-dp Decimal; raises InvalidPrincipalError"""
    try:
        principal = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPrincipalError(value)
    if not principal.is_finite():
        raise InvalidPrincipalError(value)
    principal = money(principal)
    # checked after rounding: 0.004 is a zero principal
    if not is_finite_positive(principal):
        raise InvalidPrincipalError(value)
    return principal


def calc_interest_days(plan: PlanSnapshot, anchor: date, salary_day: Optional[int] = None) -> dict:
    """Inclusive days from anchor to the final due date, with the method used"""
    dates, method, warnings = generate_due_dates(plan, anchor, salary_day)
    return {
        "days": days_between(anchor, dates[-1]),
        "calculation_method": method,
        "repayment_date": dates[-1],
        "warnings": warnings,
    }


def _frozen_total(loan: LoanRecord, field_name: str, frozen, derived: Decimal, warnings) -> Decimal:
    """Frozen value when stored; a differing re-derivation is reported, never used"""
    if frozen is None:
        return derived
    frozen = money(frozen)
    if frozen != derived:
        logger.warning("Loan %s: %s frozen at %s, plan now gives %s", loan.loan_id, field_name, frozen, derived)
        warnings.append(EngineWarning(
            WarningCode.FROZEN_VALUE_MISMATCH,
            f"{field_name} differs from the frozen value; frozen value kept",
            {"field": field_name, "frozen": frozen, "derived": derived},
        ))
    return frozen


def calculate_loan(request: CalculationRequest, gst_rate: Decimal = GST_RATE) -> CalculationResult:
    """Full calculation for one loan under one plan.

    Frozen loans are scheduled on their stored due dates and keep their frozen
    fee lines and interest; everything else is generated from the plan and the
    anchor date.
    """
    loan, plan = request.loan, request.plan
    principal = check_principal(loan.effective_principal)
    anchor = request.anchor_date or loan.anchor_date
    if anchor is None:
        raise MissingAnchorDateError(loan.loan_id)

    use_frozen = loan.is_frozen and request.anchor_date is None
    frozen_fees = fees_from_breakdown(loan.fees_breakdown) if use_frozen else None
    if frozen_fees is not None:
        fees, warnings = frozen_fees, []
    else:
        fees, warnings = calc_fees(principal, plan.fees, plan.installment_count, gst_rate)

    if use_frozen:
        schedule, method, schedule_warnings = schedule_from_snapshot(loan, plan, request.salary_day, fees)
    else:
        schedule, method, schedule_warnings = generate_schedule(
            principal, plan, anchor, request.salary_day, fees,
        )
    warnings.extend(schedule_warnings)

    total_interest = sum((inst.interest for inst in schedule), ZERO)
    if use_frozen:
        total_interest = _frozen_total(
            loan, "processed_interest", loan.processed_interest, total_interest, warnings,
        )
        _frozen_total(loan, "processed_fees", loan.processed_fees, fees.total_fees, warnings)
    disbursal = principal - fees.total_disbursal_deduction
    total_repayable = principal + total_interest + fees.total_repayable_addition
    term_days = days_between(anchor, schedule[-1].due_date)
    apr = calc_apr(fees.total_fees, fees.total_gst, total_interest, principal, term_days)
    effective_rate = calc_effective_annual_rate(
        disbursal, anchor, [(inst.due_date, inst.total) for inst in schedule],
    )

    logger.info(
        "Loan %s: principal=%s disbursal=%s interest=%s repayable=%s apr=%s (%s)",
        loan.loan_id, principal, disbursal, total_interest, total_repayable, apr, method.value,
    )
    return CalculationResult(
        principal=principal,
        anchor_date=anchor,
        calculation_method=method,
        disbursal_amount=disbursal,
        total_interest=total_interest,
        fees=fees,
        total_repayable=total_repayable,
        apr=apr,
        effective_annual_rate=effective_rate,
        schedule=tuple(schedule),
        warnings=tuple(warnings),
    )


def calc_frozen_values(result: CalculationResult) -> FrozenValues:
    """Values to store once when the loan is processed"""
    post_service_fee = sum(
        (line.total_amount for line in result.fees.lines if is_post_service_fee(line.name)),
        ZERO,
    )
    return FrozenValues(
        processed_amount=result.principal,
        processed_interest=result.total_interest,
        processed_fees=result.fees.total_fees,
        processed_post_service_fee=post_service_fee,
        processed_due_dates=result.due_dates,
        disbursal_amount=result.disbursal_amount,
        total_repayable=result.total_repayable,
        fees_breakdown=tuple(line.to_dict() for line in result.fees.lines),
        schedule=tuple(inst.to_dict() for inst in result.schedule),
    )


def apply_frozen_values(
    loan: LoanRecord,
    frozen: FrozenValues,
    processed_at: Optional[date] = None,
) -> LoanRecord:
    """New loan record carrying the frozen values; a loan is frozen only once"""
    if loan.is_frozen:
        raise AlreadyFrozenError(loan.loan_id)
    return replace(
        loan,
        status=LoanStatus.PROCESSED,
        processed_at=processed_at or loan.processed_at,
        processed_amount=frozen.processed_amount,
        processed_interest=frozen.processed_interest,
        processed_fees=frozen.processed_fees,
        processed_post_service_fee=frozen.processed_post_service_fee,
        processed_due_dates=frozen.processed_due_dates,
        fees_breakdown=frozen.fees_breakdown,
    )
