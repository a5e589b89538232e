"""
Loan extension calculator

An extension pushes the remaining due dates out (to the next month's salary
date for salary-pinned plans, by a fixed number of days otherwise) in
exchange for an extension fee, GST on it and the interest accrued so far.
Principal and frozen fees are never touched, so the outstanding balance before
and after an extension is the same.
"""
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from config.constants import ExtensionStatus, FeeSource
from config.settings import (
    EXTENSION_FEE_RATE, EXTENSION_WINDOW_AFTER, EXTENSION_WINDOW_BEFORE,
    FIXED_EXTENSION_DAYS, GST_RATE, MAX_EXTENSIONS,
)
from core.exceptions import (
    ExtensionInvariantError, ExtensionLimitExceededError, ExtensionNotAllowedError, MissingAnchorDateError,
)
from core.fees import resolve_post_service_fee
from core.interest import calc_interest_till_date
from core.penalty import assess_loan_penalty
from core.schedule_generator import build_schedule, generate_due_dates, resolve_salary_day
from data_manager.schema import (
    EngineWarning, ExtensionQuote, ExtensionRecord, ExtensionWindow, LoanRecord, PenaltyTier,
    PlanSnapshot, ResolvedAmount,
)
from data_manager.snapshot_decoder import default_penalty_tiers
from utils.date_utils import add_days, salary_date_for_month
from utils.money import money

logger = logging.getLogger(__name__)


def extension_window(due_date: date, as_of: date) -> ExtensionWindow:
    return ExtensionWindow(
        start_date=add_days(due_date, -EXTENSION_WINDOW_BEFORE),
        end_date=add_days(due_date, EXTENSION_WINDOW_AFTER),
        as_of=as_of,
    )


def check_extension_eligibility(
    loan: LoanRecord,
    due_dates: Sequence[date],
    as_of: date,
    max_extensions: int = MAX_EXTENSIONS,
) -> ExtensionWindow:
    """Raise if the loan cannot be extended on ``as_of``; return the window otherwise.

    Only the first installment can be extended, and only from 5 days before
    until 15 days after its due date.
    """
    if loan.anchor_date is None:
        raise MissingAnchorDateError(loan.loan_id)
    if loan.extension_count >= max_extensions:
        raise ExtensionLimitExceededError(loan.extension_count, max_extensions)
    if loan.extension_status == ExtensionStatus.PENDING:
        raise ExtensionNotAllowedError(
            "A pending extension request already exists",
            {"loan_id": loan.loan_id},
        )
    if loan.installments_paid > 0:
        raise ExtensionNotAllowedError(
            "Only the first installment can be extended",
            {"loan_id": loan.loan_id, "installments_paid": loan.installments_paid},
        )
    if not due_dates:
        raise ExtensionNotAllowedError("Due date not found", {"loan_id": loan.loan_id})

    window = extension_window(due_dates[0], as_of)
    if not window.is_within_window:
        if as_of < window.start_date:
            reason = f"Extension window opens on {window.start_date.isoformat()}"
        else:
            reason = f"Extension window expired on {window.end_date.isoformat()}"
        raise ExtensionNotAllowedError(reason, window.to_dict())
    return window


def resolve_original_due_dates(
    loan: LoanRecord,
    plan: PlanSnapshot,
    salary_day: Optional[int] = None,
) -> Tuple[Tuple[date, ...], List[EngineWarning]]:
    """Current due dates: the frozen snapshot, or the plan regenerated from the anchor"""
    if loan.is_frozen:
        return tuple(loan.processed_due_dates), []
    if loan.anchor_date is None:
        raise MissingAnchorDateError(loan.loan_id)
    dates, _, warnings = generate_due_dates(plan, loan.anchor_date, salary_day)
    return tuple(dates), warnings


def calc_new_due_dates(
    due_dates: Sequence[date],
    plan: PlanSnapshot,
    salary_day: Optional[int] = None,
    installments_paid: int = 0,
) -> Tuple[Tuple[date, ...], int, List[EngineWarning]]:
    """Shift every unpaid due date. Returns (new_dates, extension_period_days, warnings)

    Salary-pinned plans move each date to the salary date of the following
    month; other plans move by FIXED_EXTENSION_DAYS. Paid installments keep
    their dates.
    """
    if installments_paid >= len(due_dates):
        raise ExtensionNotAllowedError(
            "No unpaid installments left to extend",
            {"installments_paid": installments_paid, "installments": len(due_dates)},
        )
    warnings: List[EngineWarning] = []
    day = None
    if plan.calculate_by_salary_date:
        day = resolve_salary_day(plan, salary_day, warnings)

    if day is not None:
        def shift(d):
            return salary_date_for_month(d, day, 1)
    else:
        def shift(d):
            return add_days(d, FIXED_EXTENSION_DAYS)

    paid = list(due_dates[:installments_paid])
    moved = [shift(d) for d in due_dates[installments_paid:]]
    new_dates = tuple(paid + moved)
    period_days = (new_dates[installments_paid] - due_dates[installments_paid]).days
    return new_dates, period_days, warnings


def calc_extension_fees(
    principal: Decimal,
    daily_rate: Decimal,
    anchor: date,
    as_of: date,
    fee_rate: Decimal = EXTENSION_FEE_RATE,
    gst_rate: Decimal = GST_RATE,
) -> dict:
    """Extension fee, GST on it and interest accrued from anchor to as_of (inclusive)"""
    fee = money(principal * fee_rate)
    gst = money(fee * gst_rate)
    interest, days = calc_interest_till_date(principal, daily_rate, anchor, as_of)
    return {
        "extension_fee": fee,
        "gst": gst,
        "interest_till_date": interest,
        "interest_days": days,
        "total": fee + gst + interest,
    }


def _balance(loan: LoanRecord, post_service_fee: Decimal, gst_rate: Decimal) -> Decimal:
    return money(loan.effective_principal) + post_service_fee + money(post_service_fee * gst_rate)


def calc_outstanding_balance(
    loan: LoanRecord,
    plan: Optional[PlanSnapshot] = None,
    gst_rate: Decimal = GST_RATE,
) -> Tuple[Decimal, ResolvedAmount]:
    """Principal + post service fee + GST on it. Returns (balance, resolved fee)"""
    post_service_fee = resolve_post_service_fee(loan, plan, gst_rate)
    return _balance(loan, post_service_fee.amount, gst_rate), post_service_fee


def _extended_loan(loan: LoanRecord, record: ExtensionRecord) -> LoanRecord:
    return replace(
        loan,
        processed_due_dates=record.new_due_dates,
        extension_count=loan.extension_count + 1,
        extension_status=ExtensionStatus.APPROVED,
        interest_paid=loan.interest_paid + record.interest_till_date,
    )


def quote_extension(
    loan: LoanRecord,
    plan: PlanSnapshot,
    salary_day: Optional[int],
    as_of: date,
    tiers: Optional[Sequence[PenaltyTier]] = None,
) -> ExtensionQuote:
    """Everything the borrower pays now for the next extension and the new due dates"""
    original, warnings = resolve_original_due_dates(loan, plan, salary_day)
    window = check_extension_eligibility(loan, original, as_of)
    anchor = loan.anchor_date
    principal = money(loan.effective_principal)

    new_dates, period_days, shift_warnings = calc_new_due_dates(
        original, plan, salary_day, loan.installments_paid,
    )
    warnings.extend(shift_warnings)
    charges = calc_extension_fees(principal, plan.daily_rate, anchor, as_of)

    schedule = build_schedule(principal, plan, anchor, original)
    if tiers is None:
        tiers = default_penalty_tiers()
    penalty = assess_loan_penalty(schedule, loan.installments_paid, as_of, tiers)

    outstanding_before, post_service_fee = calc_outstanding_balance(loan, plan)
    record = ExtensionRecord(
        extension_number=loan.extension_count + 1,
        original_due_dates=original,
        new_due_dates=new_dates,
        extension_period_days=period_days,
        extension_fee=charges["extension_fee"],
        gst=charges["gst"],
        interest_till_date=charges["interest_till_date"],
        interest_days=charges["interest_days"],
        penalty=penalty.total,
        total_payable_now=charges["total"] + penalty.total,
        outstanding_before=outstanding_before,
        outstanding_after=outstanding_before,
    )
    # balance of the record apply_extension will write
    outstanding_after, _ = calc_outstanding_balance(_extended_loan(loan, record), plan)
    if outstanding_after != outstanding_before:
        raise ExtensionInvariantError(
            "Extension would change the outstanding balance",
            {"loan_id": loan.loan_id, "before": outstanding_before, "after": outstanding_after},
        )

    logger.info(
        "Loan %s extension #%d: %s -> %s, payable now %s",
        loan.loan_id, record.extension_number, record.original_due_date,
        record.new_due_date, record.total_payable_now,
    )
    return ExtensionQuote(
        record=record,
        window=window,
        penalty=penalty,
        post_service_fee=post_service_fee,
        warnings=tuple(warnings),
    )


def apply_extension(loan: LoanRecord, quote: ExtensionQuote, gst_rate: Decimal = GST_RATE) -> LoanRecord:
    """Approved extension applied to a new loan record.

    The loan must still owe what it owed when the extension was quoted;
    a changed principal or post service fee raises ExtensionInvariantError.
    """
    record = quote.record
    if loan.extension_count >= MAX_EXTENSIONS:
        raise ExtensionLimitExceededError(loan.extension_count, MAX_EXTENSIONS)
    if record.extension_number != loan.extension_count + 1:
        raise ExtensionNotAllowedError(
            "Extension quote does not match the loan's extension count",
            {"loan_id": loan.loan_id, "quote_number": record.extension_number,
             "extension_count": loan.extension_count},
        )

    extended = _extended_loan(loan, record)
    post_service_fee = resolve_post_service_fee(extended)
    if post_service_fee.source == FeeSource.DEFAULT:
        # fee came from the plan when quoted
        post_service_fee = quote.post_service_fee
    outstanding = _balance(extended, post_service_fee.amount, gst_rate)
    if outstanding != record.outstanding_after:
        raise ExtensionInvariantError(
            "Outstanding balance changed since the extension was quoted",
            {"loan_id": loan.loan_id, "quoted": record.outstanding_after, "now": outstanding},
        )
    return extended
