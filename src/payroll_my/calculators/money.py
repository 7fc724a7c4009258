"""Decimal coercion and rounding for ringgit amounts.

Amounts are RM with 2 fractional digits; rates carry 4. Every rounding in the
calculators goes through this module so one rounding mode is used throughout:
half-away-from-zero (``ROUND_HALF_UP`` in ``decimal`` terms), never banker's.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from payroll_my.exceptions import InvalidWageInput

ZERO = Decimal("0")
CENTS = Decimal("0.01")
RINGGIT = Decimal("1")
RATE_PRECISION = Decimal("0.0001")


def to_decimal(field: str, value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce an input to a non-negative Decimal.

    ``None`` maps to ``default``. Booleans, non-numeric strings, NaN and
    infinities are rejected, as are negative values.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidWageInput(field, value, "must be numeric")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidWageInput(field, value, "must be numeric") from None
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        raise InvalidWageInput(field, value, "must be numeric")

    if not result.is_finite():
        raise InvalidWageInput(field, value, "must be finite")
    if result < 0:
        raise InvalidWageInput(field, value, "must not be negative")
    return result


def to_money(field: str, value: Any) -> Decimal:
    """Coerce to a non-negative amount rounded to cents."""
    return round_cents(to_decimal(field, value))


def to_rate(field: str, value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce to a non-negative rate with 4 fractional digits."""
    return to_decimal(field, value, default).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


def round_cents(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_ringgit(amount: Decimal) -> Decimal:
    """Round to a whole ringgit, half away from zero."""
    return amount.quantize(RINGGIT, rounding=ROUND_HALF_UP)


def money_str(amount: Decimal) -> str:
    """Canonical string form used in snapshots and fingerprints."""
    return str(round_cents(amount))
