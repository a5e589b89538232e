"""Fee engine: per-rule fee amounts, GST and disbursal/repayable split.

Every fee rule is charged as ``principal x percent / 100`` plus GST on that
amount. Rules added to the total repayable recur with every installment and
are multiplied by the installment count; rules deducted from disbursal are
charged once.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

from config.constants import FeeMethod, FeeMethodSource, FeeSource, WarningCode, POST_SERVICE_FEE_MARKER
from config.settings import GST_RATE
from data_manager.schema import (
    EngineWarning, FeeBreakdown, FeeLine, FeeRule, LoanRecord, PlanSnapshot, ResolvedAmount,
)
from utils.money import ZERO, money, to_decimal

logger = logging.getLogger(__name__)


def is_post_service_fee(name: Optional[str]) -> bool:
    return bool(name) and POST_SERVICE_FEE_MARKER in name.lower()


def resolve_fee_method(rule: FeeRule) -> Tuple[FeeMethod, FeeMethodSource]:
    """Decide how a fee is applied.

    The post service fee is always added to the total, whatever the stored
    method says. Other rules use their declared method; rules with no declared
    method default to deduction from disbursal.
    """
    if is_post_service_fee(rule.name):
        return FeeMethod.ADD_TO_TOTAL, FeeMethodSource.NAME_CONVENTION
    if rule.application_method is not None:
        return rule.application_method, FeeMethodSource.DECLARED
    return FeeMethod.DEDUCT_FROM_DISBURSAL, FeeMethodSource.DEFAULT


def calc_fee_line(
    principal: Decimal,
    rule: FeeRule,
    installment_count: int = 1,
    gst_rate: Decimal = GST_RATE,
) -> FeeLine:
    method, source = resolve_fee_method(rule)
    amount = money(principal * rule.percent / Decimal(100))
    gst = money(amount * gst_rate)
    multiplier = installment_count if method == FeeMethod.ADD_TO_TOTAL else 1
    return FeeLine(
        name=rule.name,
        percent=rule.percent,
        method=method,
        method_source=source,
        amount=amount,
        gst=gst,
        multiplier=multiplier,
        total_amount=amount * multiplier,
        total_gst=gst * multiplier,
    )


def calc_fees(
    principal,
    rules: Iterable[FeeRule],
    installment_count: int = 1,
    gst_rate: Decimal = GST_RATE,
) -> Tuple[FeeBreakdown, List[EngineWarning]]:
    """Resolve fee rules into a FeeBreakdown. Returns (breakdown, warnings)"""
    principal = to_decimal(principal)
    lines = []
    warnings = []
    for rule in rules:
        if rule.percent <= 0:
            logger.debug("Skipping fee %r with non-positive percent %s", rule.name, rule.percent)
            continue
        line = calc_fee_line(principal, rule, installment_count, gst_rate)
        if line.method_source == FeeMethodSource.DEFAULT:
            logger.warning(
                "Fee %r has no application method; assuming %s",
                rule.name, line.method.value,
            )
            warnings.append(EngineWarning(
                WarningCode.AMBIGUOUS_FEE_METHOD,
                f"Fee '{rule.name}' has no application method, assumed {line.method.value}",
                {"fee_name": rule.name, "assumed_method": line.method.value},
            ))
        lines.append(line)

    return _assemble_breakdown(lines), warnings


def _assemble_breakdown(lines: List[FeeLine]) -> FeeBreakdown:
    deducted = [l for l in lines if l.method == FeeMethod.DEDUCT_FROM_DISBURSAL]
    recurring = [l for l in lines if l.method == FeeMethod.ADD_TO_TOTAL]
    return FeeBreakdown(
        disbursal_fee=sum((l.total_amount for l in deducted), ZERO),
        disbursal_fee_gst=sum((l.total_gst for l in deducted), ZERO),
        recurring_fee_per_installment=sum((l.amount for l in recurring), ZERO),
        recurring_fee_gst_per_installment=sum((l.gst for l in recurring), ZERO),
        recurring_fee_total=sum((l.total_amount for l in recurring), ZERO),
        recurring_fee_gst=sum((l.total_gst for l in recurring), ZERO),
        lines=tuple(lines),
    )


def _breakdown_post_service_fee(entries: Iterable[dict]) -> Optional[Decimal]:
    for entry in entries:
        name = entry.get("name") or entry.get("fee_name")
        if not is_post_service_fee(name):
            continue
        # stored breakdown holds the total across installments
        raw = entry.get("total_amount") or entry.get("amount") or entry.get("fee_amount")
        if raw in (None, ""):
            continue
        return money(raw)
    return None


def _fee_line_from_entry(entry: dict) -> FeeLine:
    return FeeLine(
        name=entry["name"],
        percent=to_decimal(entry["percent"]),
        method=FeeMethod(entry["method"]),
        method_source=FeeMethodSource(entry["method_source"]),
        amount=money(entry["amount"]),
        gst=money(entry["gst"]),
        multiplier=int(entry["multiplier"]),
        total_amount=money(entry["total_amount"]),
        total_gst=money(entry["total_gst"]),
    )


def fees_from_breakdown(entries: Iterable[dict]) -> Optional[FeeBreakdown]:
    """FeeBreakdown rebuilt from fee lines frozen at processing time.

    Returns None when there are no entries or they are not complete fee lines
    (e.g. a breakdown written by another system), so the caller can fall back
    to the plan.
    """
    entries = list(entries)
    if not entries:
        return None
    try:
        lines = [_fee_line_from_entry(entry) for entry in entries]
    except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
        logger.warning("Stored fee breakdown is incomplete (%s); fees taken from the plan", exc)
        return None
    return _assemble_breakdown(lines)


def resolve_post_service_fee(
    loan: LoanRecord,
    plan: Optional[PlanSnapshot] = None,
    gst_rate: Decimal = GST_RATE,
) -> ResolvedAmount:
    """Total post service fee (all installments) and where it came from.

    Resolution order: frozen processed value, stored fee breakdown, plan
    snapshot rule, zero.
    """
    if loan.processed_post_service_fee is not None:
        return ResolvedAmount(money(loan.processed_post_service_fee), FeeSource.FROZEN)

    from_breakdown = _breakdown_post_service_fee(loan.fees_breakdown)
    if from_breakdown is not None:
        return ResolvedAmount(from_breakdown, FeeSource.BREAKDOWN)

    if plan is not None:
        for rule in plan.fees:
            if is_post_service_fee(rule.name) and rule.percent > 0:
                line = calc_fee_line(loan.effective_principal, rule, plan.installment_count, gst_rate)
                return ResolvedAmount(line.total_amount, FeeSource.PLAN)

    return ResolvedAmount(ZERO, FeeSource.DEFAULT)
