"""
Spreadsheet-compatible rounding used by every pricing formula.
"""
import math
from decimal import Decimal

# Decimal digits kept on the x / significance quotient before ceiling
QUOTIENT_PRECISION = 6


def _decimals(significance: float) -> int:
    """Digits after the point in the significance as written (0.25 -> 2, 5 -> 0)."""
    exponent = Decimal(repr(significance)).normalize().as_tuple().exponent
    return max(-exponent, 0) if isinstance(exponent, int) else 0


def ceiling_to_significance(x: float, significance: float) -> float:
    """
    Round ``x`` up to the nearest multiple of ``significance`` (Excel CEILING).

    The quotient is rounded to a fixed precision before ``ceil`` so binary
    drift such as 3.0000000000004 does not bump the result a whole step.
    A significance of 0 returns ``x`` unchanged.
    """
    if significance == 0:
        return x

    quotient = round(x / significance, QUOTIENT_PRECISION)
    result = math.ceil(quotient) * significance

    # Strip drift from the multiplication (850.8000000004 -> 850.8)
    return round(result, max(_decimals(significance), 2))
