"""
Decimal Utilities
assessment_engine/scoring/utils.py

Provides precision-safe decimal math for scoring calculations.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Union

Number = Union[int, float, Decimal]


def to_decimal(value: Number, places: int = 4) -> Decimal:
    """Convert float to Decimal with explicit precision."""
    return Decimal(str(value)).quantize(
        Decimal(10) ** -places, rounding=ROUND_HALF_UP
    )


def round_half_up(value: Number, places: int = 1) -> Decimal:
    """Round half away from zero (2.25 -> 2.3), unlike builtin round()."""
    if isinstance(value, Decimal):
        return value.quantize(Decimal(10) ** -places, rounding=ROUND_HALF_UP)
    return to_decimal(value, places)


def round_half_up_int(value: Number) -> int:
    return int(round_half_up(value, 0))


def weighted_mean(
    values: Sequence[Number],
    weights: Sequence[Number],
    places: int = 1,
) -> Optional[Decimal]:
    """
    Calculate weighted mean normalized by the weights actually supplied.

    Formula: Σ(value_i × weight_i) / Σ(weight_i)
    Returns None if there is nothing to average (no values or zero weight).
    """
    if len(values) != len(weights):
        raise ValueError("values and weights must have same length")

    dec_values: List[Decimal] = [Decimal(str(v)) for v in values]
    dec_weights: List[Decimal] = [Decimal(str(w)) for w in weights]

    total_weight = sum(dec_weights, Decimal("0"))
    if total_weight == 0:
        return None

    numerator = sum((v * w for v, w in zip(dec_values, dec_weights)), Decimal("0"))
    return round_half_up(numerator / total_weight, places)


def mean(values: Sequence[Number], places: int = 1) -> Optional[Decimal]:
    """Arithmetic mean, None for an empty input."""
    if not values:
        return None
    return weighted_mean(values, [1] * len(values), places)
