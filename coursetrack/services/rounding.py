from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(numerator: int, denominator: int, places: int = 2) -> Decimal:
    """``numerator / denominator`` rounded half away from zero.

    Built-in round() rounds half to even (round(0.5) == 0), which would
    make 1-of-2 sessions attended read as 0%.  Exact Decimal division
    also keeps 2/3 at 66.67 rather than depending on float
    representation.
    """
    if denominator == 0:
        return Decimal(0)
    quantum = Decimal(1).scaleb(-places)
    return (Decimal(numerator) / Decimal(denominator)).quantize(
        quantum, rounding=ROUND_HALF_UP
    )


def percentage(part: int, whole: int, places: int = 2) -> float:
    """100 * part / whole, rounded half up; 0.0 when ``whole`` is 0."""
    return float(round_half_up(100 * part, whole, places))
