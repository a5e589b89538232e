"""Tiered late payment penalties."""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Sequence

from config.constants import FeeType
from config.settings import GST_RATE
from core.exceptions import InvalidPenaltyTiersError
from data_manager.schema import Installment, PenaltyAssessment, PenaltyLine, PenaltyTier
from utils.money import ZERO, money

logger = logging.getLogger(__name__)


def calc_days_overdue(due_date: date, as_of: date) -> int:
    """Whole days past the due date; the day after the due date is day 1"""
    return max(0, (as_of - due_date).days)


def sort_tiers(tiers: Sequence[PenaltyTier]) -> List[PenaltyTier]:
    return sorted(tiers, key=lambda t: (t.tier_order, t.start_day))


def validate_penalty_tiers(tiers: Sequence[PenaltyTier]) -> None:
    """Reject tier tables that would leave days ungoverned or charge them twice.

    Tiers in ``tier_order`` must start at day 1, be contiguous, and only the
    last one may be open ended.
    """
    ordered = sort_tiers(tiers)
    if not ordered:
        raise InvalidPenaltyTiersError("Penalty tier table is empty")

    expected_start = 1
    for index, tier in enumerate(ordered):
        details = {"tier": tier.name, "tier_order": tier.tier_order}
        if tier.fee_value < 0:
            raise InvalidPenaltyTiersError("Penalty fee value cannot be negative", details)
        if tier.start_day != expected_start:
            kind = "gap" if tier.start_day > expected_start else "overlap"
            raise InvalidPenaltyTiersError(
                f"Penalty tiers have a {kind} at day {expected_start}",
                dict(details, expected_start=expected_start, start_day=tier.start_day),
            )
        if tier.end_day is None:
            if index != len(ordered) - 1:
                raise InvalidPenaltyTiersError("Only the last penalty tier may be open ended", details)
            return
        if tier.end_day < tier.start_day:
            raise InvalidPenaltyTiersError(
                "Penalty tier ends before it starts",
                dict(details, start_day=tier.start_day, end_day=tier.end_day),
            )
        expected_start = tier.end_day + 1


def calc_penalty(
    principal,
    days_overdue: int,
    tiers: Sequence[PenaltyTier],
    gst_rate: Decimal = GST_RATE,
) -> PenaltyAssessment:
    """Late fee on ``principal`` for ``days_overdue`` days.

    Percentage tiers charge ``principal x value% x days`` for the days of
    [1, days_overdue] inside their range; fixed tiers charge their value once
    as soon as the range is reached. GST is applied once on the summed base.
    Days covered by no tier contribute nothing.
    """
    principal = money(principal)
    if days_overdue <= 0 or principal <= 0:
        return PenaltyAssessment.none(principal)

    lines = []
    base = ZERO
    for tier in sort_tiers(tiers):
        days = tier.overlap_days(days_overdue)
        if days <= 0:
            continue
        if tier.fee_type == FeeType.FIXED:
            amount = money(tier.fee_value)
        else:
            amount = money(principal * tier.fee_value / Decimal(100) * days)
        lines.append(PenaltyLine(tier.name, days, amount))
        base += amount

    gst = money(base * gst_rate)
    assessment = PenaltyAssessment(
        days_overdue=days_overdue,
        principal=principal,
        base=base,
        gst=gst,
        total=base + gst,
        lines=tuple(lines),
    )
    logger.debug(
        "Penalty for %d day(s) on %s: base=%s gst=%s",
        days_overdue, principal, assessment.base, assessment.gst,
    )
    return assessment


def overdue_installments(
    schedule: Sequence[Installment],
    installments_paid: int,
    as_of: date,
) -> List[Installment]:
    return [inst for inst in schedule[installments_paid:] if inst.due_date < as_of]


def assess_loan_penalty(
    schedule: Sequence[Installment],
    installments_paid: int,
    as_of: date,
    tiers: Sequence[PenaltyTier],
    gst_rate: Decimal = GST_RATE,
) -> PenaltyAssessment:
    """Penalty for a loan as of a date, computed from scratch each time.

    Overdue principal is the principal of every unpaid installment past its due
    date; days overdue is counted from the oldest of them.
    """
    overdue = overdue_installments(schedule, installments_paid, as_of)
    if not overdue:
        return PenaltyAssessment.none()
    overdue_principal = sum((inst.principal for inst in overdue), ZERO)
    days = max(calc_days_overdue(inst.due_date, as_of) for inst in overdue)
    return calc_penalty(overdue_principal, days, tiers, gst_rate)
