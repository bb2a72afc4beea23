"""
Values -- Decimal helpers shared by every costing computation.

Responsibility:
    Normalise raw numeric inputs to Decimal and round at output boundaries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: floats are converted through ``str`` so
      ``0.1`` becomes ``Decimal("0.1")`` and not its binary expansion.
    - Output rounding is ROUND_HALF_UP to two places; intermediate values
      keep full precision.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a numeric input to Decimal.

    None, empty strings and non-numeric values map to ``default``, mirroring
    the COALESCE(col, 0) reads of nullable rate columns.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        result = Decimal(str(value)) if not isinstance(value, int) else Decimal(value)
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def quantize(value: Decimal, places: int) -> Decimal:
    """Round to ``places`` decimal places, ROUND_HALF_UP."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round2(value: Decimal) -> Decimal:
    """Round a monetary or percentage value to two places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percent(value: Decimal) -> Decimal:
    """Convert a percentage (20) to a fraction (0.2)."""
    return value / HUNDRED
