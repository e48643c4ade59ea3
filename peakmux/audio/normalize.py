"""
Linear range mapping for normalized peak output.
"""

from typing import Optional, Sequence, Tuple

from peakmux.audio.peak_reducer import INT16_MAX, INT16_MIN
from peakmux.errors import MalformedInput

# Decimal digits kept in normalized output
NORMALIZE_PRECISION = 6

NormalizeRange = Tuple[float, float]


def normalize(
    value: int,
    from_low: int = INT16_MIN,
    from_high: int = INT16_MAX,
    to_low: float = 0.0,
    to_high: float = 1.0,
) -> float:
    """
    Map value from [from_low, from_high] onto [to_low, to_high].

    No clamping is applied. A reversed target range (to_low > to_high) is
    honoured as given. The result is rounded to NORMALIZE_PRECISION digits.
    """
    scaled = to_low + (value - from_low) / (from_high - from_low) * (to_high - to_low)
    return round(scaled, NORMALIZE_PRECISION)


def validate_range(normalize_range: Optional[Sequence[float]]) -> Optional[NormalizeRange]:
    """
    Check a user supplied normalization range.

    Args:
        normalize_range: None, or a sequence of exactly two numbers [low, high]

    Returns:
        The range as a (low, high) float tuple, or None

    Raises:
        MalformedInput: If the range does not hold exactly two numbers
    """
    if normalize_range is None:
        return None
    try:
        bounds = tuple(float(bound) for bound in normalize_range)
    except (TypeError, ValueError):
        raise MalformedInput(
            f"normalize_range must be two numbers [min, max] or None, got {normalize_range!r}"
        )
    if len(bounds) != 2:
        raise MalformedInput(
            f"normalize_range must have exactly 2 values [min, max], got {len(bounds)}"
        )
    return bounds[0], bounds[1]
