"""
Quantity and cost value helpers.

Every quantity and cost in the core is a ``Decimal`` with at most 9 decimal
places, matching the Numeric(38, 9) column type.  Floats are rejected at the
boundary.
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
SCALE = Decimal("0.000000001")


def to_decimal(value) -> Decimal:
    """Coerce an int, str or Decimal to Decimal.  Floats are not accepted."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Quantities and costs must be Decimal, int or str, got {type(value).__name__}"
        )
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def quantize(value: Decimal) -> Decimal:
    """Round to the 9-place storage scale (half up)."""
    return value.quantize(SCALE, rounding=ROUND_HALF_UP)


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator quantized, or 0 when the denominator is 0."""
    if denominator == ZERO:
        return ZERO
    return quantize(numerator / denominator)
