from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

from config.settings import AMOUNT_PRECISION

CENT = Decimal(10) ** -AMOUNT_PRECISION
ZERO = Decimal(0).quantize(CENT)


def to_decimal(value) -> Decimal:
    """Parse numbers and numeric strings into Decimal without float artefacts"""
    if isinstance(value, Decimal):
        return value
    if value is None:
        raise InvalidOperation("None is not a number")
    if isinstance(value, bool):
        raise InvalidOperation("bool is not a number")
    return Decimal(str(value).strip())


def money(value) -> Decimal:
    """Always return a 2-decimal Decimal with HALF_UP rounding"""
    if value is None:
        value = 0
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_floor(value) -> Decimal:
    """Truncate to whole cents"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def is_finite_positive(value: Decimal) -> bool:
    return value.is_finite() and value > 0
