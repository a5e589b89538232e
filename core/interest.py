"""Interest accrual: bullet, reducing balance, APR and effective rate."""
from datetime import date
from decimal import Decimal
from typing import List, Sequence, Tuple

import numpy as np
from scipy import optimize

from config.settings import APR_DAYS_BASIS, RATE_PRECISION
from core.exceptions import EngineError
from utils.date_utils import add_days, days_between
from utils.money import ZERO, money


def calc_period_interest(outstanding: Decimal, daily_rate: Decimal, start: date, end: date) -> Decimal:
    """Simple interest on ``outstanding`` for the inclusive range start..end"""
    days = days_between(start, end)
    if days <= 0:
        return ZERO
    return money(outstanding * daily_rate * days)


def calc_bullet_interest(principal: Decimal, daily_rate: Decimal, anchor: date, due: date) -> Decimal:
    """Single payment: principal x rate x inclusive days anchor..due"""
    return calc_period_interest(principal, daily_rate, anchor, due)


def calc_interest_till_date(principal: Decimal, daily_rate: Decimal, anchor: date, as_of: date) -> Tuple[Decimal, int]:
    """Interest accrued from anchor up to as_of (inclusive). Returns (interest, days)

    The anchor day itself counts, so a same-day request accrues one day.
    """
    if as_of < anchor:
        raise EngineError(
            "Interest date is before the anchor date", {"anchor_date": anchor, "as_of": as_of},
        )
    days = days_between(anchor, as_of)
    return money(principal * daily_rate * days), days


def calc_reducing_balance(
    principal: Decimal,
    daily_rate: Decimal,
    anchor: date,
    due_dates: Sequence[date],
    principal_parts: Sequence[Decimal],
) -> List[dict]:
    """Per-period interest on the outstanding principal at each period start.

    Period 1 runs from the anchor to the first due date; each later period runs
    from the day after the previous due date. Outstanding principal drops by
    the installment's principal after each period.
    """
    if len(due_dates) != len(principal_parts):
        raise ValueError("due_dates and principal_parts must have the same length")

    rows = []
    outstanding = principal
    period_start = anchor
    for due, part in zip(due_dates, principal_parts):
        days = days_between(period_start, due)
        interest = calc_period_interest(outstanding, daily_rate, period_start, due)
        rows.append({
            "period_start": period_start,
            "due_date": due,
            "days": days,
            "outstanding": outstanding,
            "principal": part,
            "interest": interest,
        })
        outstanding = outstanding - part
        period_start = add_days(due, 1)
    return rows


def calc_total_interest(rows: Sequence[dict]) -> Decimal:
    return sum((row["interest"] for row in rows), ZERO)


def calc_apr(
    total_fees: Decimal,
    total_gst: Decimal,
    total_interest: Decimal,
    principal: Decimal,
    term_days: int,
) -> Decimal:
    """APR = ((fees + GST + interest) / principal) / term days x 36500"""
    if principal <= 0 or term_days <= 0:
        return ZERO
    charges = total_fees + total_gst + total_interest
    return money(charges / principal / Decimal(term_days) * APR_DAYS_BASIS)


def calc_effective_annual_rate(disbursal: Decimal, anchor: date, payments: Sequence[Tuple[date, Decimal]]) -> float:
    """Annualised IRR (%) of the borrower's actual cash flows.

    Disbursal is received on the anchor date; each payment is made on its due
    date. Solved for a daily rate, compounded over 365 days.
    """
    if disbursal <= 0 or not payments:
        return 0.0
    offsets = np.array([0] + [(d - anchor).days for d, _ in payments], dtype=float)
    flows = np.array([-float(disbursal)] + [float(amount) for _, amount in payments])

    def npv(rate):
        return float(np.sum(flows / (1 + rate) ** offsets))

    try:
        daily_irr = optimize.brentq(npv, -0.01, 0.5)
    except (ValueError, RuntimeError):
        return 0.0
    annual = (1 + daily_irr) ** 365 - 1
    return round(annual * 100, RATE_PRECISION)
