"""
Decimal money helpers.

Every amount the engine produces is a ``Decimal`` quantized to cents with
ROUND_HALF_UP.  Inputs may arrive as ``int``, ``float``, ``str`` or
``Decimal``; floats are routed through ``str`` so ``17.4`` becomes
``Decimal("17.4")`` rather than its binary expansion.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .exceptions import InvalidInput

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number, field: str = "amount") -> Decimal:
    """Convert *value* to a finite ``Decimal`` or raise ``InvalidInput``."""
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be numeric, got bool")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidInput(f"{field} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidInput(f"{field} must be finite, got {value!r}")
    return result


def round2(value: Number) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percentage: int) -> Decimal:
    """``amount * percentage / 100`` rounded to cents."""
    return round2(amount * Decimal(percentage) / Decimal(100))
