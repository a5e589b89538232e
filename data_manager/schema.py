from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Tuple, Union

from config.constants import (
    PlanType, Frequency, FeeMethod, FeeMethodSource, FeeType,
    LoanStatus, ExtensionStatus, CalculationMethod, FeeSource, WarningCode,
)
from config.settings import DEFAULT_REPAYMENT_DAYS, DEFAULT_DAILY_RATE
from utils.money import ZERO


def _amount(value: Decimal) -> str:
    return f"{value:.2f}"


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class FeeRule:
    name: str
    percent: Decimal
    application_method: Optional[FeeMethod] = None  # None = not declared in stored data


@dataclass(frozen=True)
class SingleRepayment:
    repayment_days: int = DEFAULT_REPAYMENT_DAYS

    @property
    def plan_type(self) -> PlanType:
        return PlanType.SINGLE

    @property
    def installment_count(self) -> int:
        return 1


@dataclass(frozen=True)
class MultiInstallment:
    count: int
    frequency: Frequency = Frequency.MONTHLY

    @property
    def plan_type(self) -> PlanType:
        return PlanType.MULTI_INSTALLMENT

    @property
    def installment_count(self) -> int:
        return self.count


Repayment = Union[SingleRepayment, MultiInstallment]


@dataclass(frozen=True)
class PlanSnapshot:
    repayment: Repayment
    daily_rate: Decimal = DEFAULT_DAILY_RATE
    calculate_by_salary_date: bool = False
    min_duration_days: int = DEFAULT_REPAYMENT_DAYS
    fees: Tuple[FeeRule, ...] = ()
    plan_id: Optional[str] = None

    @property
    def plan_type(self) -> PlanType:
        return self.repayment.plan_type

    @property
    def installment_count(self) -> int:
        return self.repayment.installment_count


@dataclass(frozen=True)
class FeeLine:
    name: str
    percent: Decimal
    method: FeeMethod
    method_source: FeeMethodSource
    amount: Decimal  # one occurrence
    gst: Decimal  # GST on one occurrence
    multiplier: int
    total_amount: Decimal
    total_gst: Decimal

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "percent": str(self.percent),
            "method": self.method.value,
            "method_source": self.method_source.value,
            "amount": _amount(self.amount),
            "gst": _amount(self.gst),
            "multiplier": self.multiplier,
            "total_amount": _amount(self.total_amount),
            "total_gst": _amount(self.total_gst),
        }


@dataclass(frozen=True)
class FeeBreakdown:
    disbursal_fee: Decimal = ZERO
    disbursal_fee_gst: Decimal = ZERO
    recurring_fee_per_installment: Decimal = ZERO
    recurring_fee_gst_per_installment: Decimal = ZERO
    recurring_fee_total: Decimal = ZERO
    recurring_fee_gst: Decimal = ZERO
    lines: Tuple[FeeLine, ...] = ()

    @property
    def total_disbursal_deduction(self) -> Decimal:
        return self.disbursal_fee + self.disbursal_fee_gst

    @property
    def total_repayable_addition(self) -> Decimal:
        return self.recurring_fee_total + self.recurring_fee_gst

    @property
    def total_fees(self) -> Decimal:
        return self.disbursal_fee + self.recurring_fee_total

    @property
    def total_gst(self) -> Decimal:
        return self.disbursal_fee_gst + self.recurring_fee_gst

    def to_dict(self) -> dict:
        return {
            "disbursal_fee": _amount(self.disbursal_fee),
            "disbursal_fee_gst": _amount(self.disbursal_fee_gst),
            "recurring_fee_total": _amount(self.recurring_fee_total),
            "recurring_fee_gst": _amount(self.recurring_fee_gst),
            "total_disbursal_deduction": _amount(self.total_disbursal_deduction),
            "total_repayable_addition": _amount(self.total_repayable_addition),
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class Installment:
    number: int
    due_date: date
    period_start: date
    days: int
    outstanding_principal: Decimal  # at period start
    principal: Decimal
    interest: Decimal
    fee: Decimal
    gst: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "installment_no": self.number,
            "due_date": self.due_date.isoformat(),
            "period_start": self.period_start.isoformat(),
            "days": self.days,
            "outstanding_principal": _amount(self.outstanding_principal),
            "principal": _amount(self.principal),
            "interest": _amount(self.interest),
            "fee": _amount(self.fee),
            "gst": _amount(self.gst),
            "total": _amount(self.total),
        }


@dataclass(frozen=True)
class EngineWarning:
    code: WarningCode
    message: str
    details: dict = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }


@dataclass(frozen=True)
class LoanRecord:
    principal: Decimal
    loan_id: Optional[str] = None
    status: LoanStatus = LoanStatus.PENDING
    processed_at: Optional[date] = None
    disbursed_at: Optional[date] = None
    # frozen at processing time
    processed_amount: Optional[Decimal] = None
    processed_interest: Optional[Decimal] = None
    processed_fees: Optional[Decimal] = None
    processed_post_service_fee: Optional[Decimal] = None
    processed_penalty: Optional[Decimal] = None
    processed_due_dates: Optional[Tuple[date, ...]] = None
    fees_breakdown: Tuple[dict, ...] = ()
    # extension / repayment progress
    extension_count: int = 0
    extension_status: ExtensionStatus = ExtensionStatus.NONE
    installments_paid: int = 0
    interest_paid: Decimal = ZERO

    @property
    def anchor_date(self) -> Optional[date]:
        """Day 1 for interest: processed date, falling back to disbursed date"""
        return self.processed_at or self.disbursed_at

    @property
    def is_frozen(self) -> bool:
        return bool(self.processed_due_dates)

    @property
    def effective_principal(self) -> Decimal:
        if self.processed_amount is not None:
            return self.processed_amount
        return self.principal


@dataclass(frozen=True)
class CalculationRequest:
    loan: LoanRecord
    plan: PlanSnapshot
    salary_day: Optional[int] = None
    anchor_date: Optional[date] = None  # overrides the loan's anchor


@dataclass(frozen=True)
class CalculationResult:
    principal: Decimal
    anchor_date: date
    calculation_method: CalculationMethod
    disbursal_amount: Decimal
    total_interest: Decimal
    fees: FeeBreakdown
    total_repayable: Decimal
    apr: Decimal
    effective_annual_rate: float
    schedule: Tuple[Installment, ...]
    warnings: Tuple[EngineWarning, ...] = ()

    @property
    def due_dates(self) -> Tuple[date, ...]:
        return tuple(inst.due_date for inst in self.schedule)

    @property
    def final_due_date(self) -> date:
        return self.schedule[-1].due_date

    @property
    def term_days(self) -> int:
        return (self.final_due_date - self.anchor_date).days + 1

    def to_dict(self) -> dict:
        return {
            "principal": _amount(self.principal),
            "anchor_date": self.anchor_date.isoformat(),
            "calculation_method": self.calculation_method.value,
            "disbursal_amount": _amount(self.disbursal_amount),
            "total_interest": _amount(self.total_interest),
            "fees": self.fees.to_dict(),
            "total_repayable": _amount(self.total_repayable),
            "apr": _amount(self.apr),
            "effective_annual_rate": round(self.effective_annual_rate, 4),
            "term_days": self.term_days,
            "schedule": [inst.to_dict() for inst in self.schedule],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class FrozenValues:
    """Values the persistence layer writes exactly once at processing time"""
    processed_amount: Decimal
    processed_interest: Decimal
    processed_fees: Decimal
    processed_post_service_fee: Decimal
    processed_due_dates: Tuple[date, ...]
    disbursal_amount: Decimal
    total_repayable: Decimal
    fees_breakdown: Tuple[dict, ...]
    schedule: Tuple[dict, ...]

    def to_dict(self) -> dict:
        return {
            "processed_amount": _amount(self.processed_amount),
            "processed_interest": _amount(self.processed_interest),
            "processed_fees": _amount(self.processed_fees),
            "processed_post_service_fee": _amount(self.processed_post_service_fee),
            "processed_due_date": [d.isoformat() for d in self.processed_due_dates],
            "disbursal_amount": _amount(self.disbursal_amount),
            "total_repayable": _amount(self.total_repayable),
            "fees_breakdown": list(self.fees_breakdown),
            "emi_schedule": list(self.schedule),
        }


@dataclass(frozen=True)
class ResolvedAmount:
    amount: Decimal
    source: FeeSource


@dataclass(frozen=True)
class PenaltyTier:
    name: str
    start_day: int
    end_day: Optional[int]  # None = open ended
    fee_value: Decimal
    fee_type: FeeType = FeeType.PERCENTAGE
    tier_order: int = 1

    def overlap_days(self, days_overdue: int) -> int:
        """Days of [1, days_overdue] governed by this tier"""
        start = max(self.start_day, 1)
        end = days_overdue if self.end_day is None else min(self.end_day, days_overdue)
        return max(0, end - start + 1)


@dataclass(frozen=True)
class PenaltyLine:
    tier_name: str
    days: int
    amount: Decimal


@dataclass(frozen=True)
class PenaltyAssessment:
    days_overdue: int
    principal: Decimal
    base: Decimal
    gst: Decimal
    total: Decimal
    lines: Tuple[PenaltyLine, ...] = ()

    @classmethod
    def none(cls, principal: Decimal = ZERO) -> "PenaltyAssessment":
        return cls(days_overdue=0, principal=principal, base=ZERO, gst=ZERO, total=ZERO)

    def to_dict(self) -> dict:
        return {
            "days_overdue": self.days_overdue,
            "principal": _amount(self.principal),
            "base": _amount(self.base),
            "gst": _amount(self.gst),
            "total": _amount(self.total),
            "lines": [
                {"tier": line.tier_name, "days": line.days, "amount": _amount(line.amount)}
                for line in self.lines
            ],
        }


@dataclass(frozen=True)
class ExtensionWindow:
    start_date: date
    end_date: date
    as_of: date

    @property
    def is_within_window(self) -> bool:
        return self.start_date <= self.as_of <= self.end_date

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "as_of": self.as_of.isoformat(),
            "is_within_window": self.is_within_window,
        }


@dataclass(frozen=True)
class ExtensionRecord:
    extension_number: int
    original_due_dates: Tuple[date, ...]
    new_due_dates: Tuple[date, ...]
    extension_period_days: int
    extension_fee: Decimal
    gst: Decimal
    interest_till_date: Decimal
    interest_days: int
    penalty: Decimal
    total_payable_now: Decimal
    outstanding_before: Decimal
    outstanding_after: Decimal

    @property
    def original_due_date(self) -> date:
        return self.original_due_dates[-1]

    @property
    def new_due_date(self) -> date:
        return self.new_due_dates[-1]

    def to_dict(self) -> dict:
        return {
            "extension_number": self.extension_number,
            "original_due_dates": [d.isoformat() for d in self.original_due_dates],
            "new_due_dates": [d.isoformat() for d in self.new_due_dates],
            "new_due_date": self.new_due_date.isoformat(),
            "extension_period_days": self.extension_period_days,
            "extension_fee": _amount(self.extension_fee),
            "gst": _amount(self.gst),
            "interest_till_date": _amount(self.interest_till_date),
            "interest_days": self.interest_days,
            "penalty": _amount(self.penalty),
            "total_payable_now": _amount(self.total_payable_now),
            "outstanding_before": _amount(self.outstanding_before),
            "outstanding_after": _amount(self.outstanding_after),
        }


@dataclass(frozen=True)
class ExtensionQuote:
    record: ExtensionRecord
    window: ExtensionWindow
    penalty: PenaltyAssessment
    post_service_fee: ResolvedAmount
    warnings: Tuple[EngineWarning, ...] = ()

    def to_dict(self) -> dict:
        data = self.record.to_dict()
        data["window"] = self.window.to_dict()
        data["penalty_detail"] = self.penalty.to_dict()
        data["post_service_fee"] = _amount(self.post_service_fee.amount)
        data["post_service_fee_source"] = self.post_service_fee.source.value
        data["warnings"] = [w.to_dict() for w in self.warnings]
        return data
